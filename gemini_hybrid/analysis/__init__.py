from .schema_analyzer import ComplexityAnalyzer, fingerprint

__all__ = ["ComplexityAnalyzer", "fingerprint"]
