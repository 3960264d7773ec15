"""
Recovery of a JSON payload from free-form model output
"""

import json
import logging
import re
from typing import Any

from ..exceptions import InvalidJSONError

log = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```[ \t]*[\w+-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


class ResponseSanitizer:
    """Strips fences and surrounding prose from model output.

    Steps, in order:
      1. take the interior of a fenced code block, if there is one
      2. drop everything before the first opening brace
      3. drop everything after the brace that closes it

    The returned text is a slice of the input, never a re-serialization.
    """

    def clean(self, raw_text: str, *, expect_array: bool = False) -> str:
        """Return the JSON payload embedded in ``raw_text``.

        Raises:
            InvalidJSONError: If no opening/closing pair can be found.
        """
        if not raw_text:
            raise InvalidJSONError("Empty response")

        opener = "[" if expect_array else "{"
        text = self._unfence(raw_text, opener)

        start = text.find(opener)
        if start == -1:
            raise InvalidJSONError(f"No '{opener}' found in response")

        end = self._matching_close(text, start)
        if end is None:
            # Unbalanced: keep everything up to the last closer.
            end = text.rfind(_CLOSERS[opener])
            if end <= start:
                raise InvalidJSONError(
                    f"No closing '{_CLOSERS[opener]}' found in response"
                )
            log.debug("Unbalanced JSON in response; cutting at last closer")
        return text[start : end + 1]

    def parse(self, raw_text: str, *, expect_array: bool = False) -> Any:
        """``clean`` followed by ``json.loads``."""
        cleaned = self.clean(raw_text, expect_array=expect_array)
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise InvalidJSONError(f"Response is not valid JSON: {e.msg}") from e

    @staticmethod
    def _unfence(text: str, opener: str) -> str:
        for match in _FENCE_PATTERN.finditer(text):
            interior = match.group(1)
            if opener in interior:
                return interior
        return text

    @staticmethod
    def _matching_close(text: str, start: int) -> int | None:
        """Index of the bracket closing ``text[start]``, ignoring string contents."""
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch in "{[":
                depth += 1
            elif ch in "}]":
                depth -= 1
                if depth == 0:
                    return i
        return None
