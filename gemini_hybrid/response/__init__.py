from .sanitizer import ResponseSanitizer
from .validation import conformance_errors, ensure_conforms

__all__ = ["ResponseSanitizer", "conformance_errors", "ensure_conforms"]
