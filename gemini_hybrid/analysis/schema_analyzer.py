"""Schema complexity scoring and fingerprinting."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import TYPE_CHECKING

from ..constants import (
    DEFAULT_COMPLEXITY_THRESHOLD,
    DEFAULT_MAX_ANALYSIS_DEPTH,
    DEFAULT_NESTED_WEIGHT,
    DEFAULT_UNION_PENALTY,
)
from ..schema import Schema, SchemaKind

if TYPE_CHECKING:
    from ..config import HybridSettings

log = logging.getLogger(__name__)


class ComplexityAnalyzer:
    """Scores a schema by how likely native constrained decoding is to fail.

    Object properties count 1.0 each at the root and ``nested_weight`` below
    it. Every union adds ``union_penalty`` on top of its variants, which are
    scored at the union's own depth. Nodes at or below ``max_depth`` are not
    counted. Scores are pure functions of the schema.
    """

    def __init__(
        self,
        *,
        threshold: float = DEFAULT_COMPLEXITY_THRESHOLD,
        union_penalty: float = DEFAULT_UNION_PENALTY,
        nested_weight: float = DEFAULT_NESTED_WEIGHT,
        max_depth: int = DEFAULT_MAX_ANALYSIS_DEPTH,
    ):
        self.threshold = threshold
        self.union_penalty = union_penalty
        self.nested_weight = nested_weight
        self.max_depth = max_depth

    @classmethod
    def from_settings(cls, settings: HybridSettings) -> ComplexityAnalyzer:
        return cls(
            threshold=settings.complexity_threshold,
            union_penalty=settings.union_penalty,
            nested_weight=settings.nested_weight,
            max_depth=settings.max_analysis_depth,
        )

    def weight(self, depth: int) -> float:
        return 1.0 if depth == 0 else self.nested_weight

    def score(self, schema: Schema, depth: int = 0, max_depth: int | None = None) -> float:
        """Return the complexity score of ``schema`` rooted at ``depth``."""
        limit = self.max_depth if max_depth is None else max_depth
        if depth >= limit:
            return 0.0

        if schema.kind is SchemaKind.OBJECT:
            total = len(schema.properties) * self.weight(depth)
            for _, child in schema.properties:
                total += self.score(child, depth + 1, limit)
            return total
        if schema.kind is SchemaKind.ARRAY:
            if schema.items is None:
                return 0.0
            return self.score(schema.items, depth + 1, limit)
        if schema.kind is SchemaKind.UNION:
            return self.union_penalty + sum(
                self.score(variant, depth, limit) for variant in schema.variants
            )
        return 0.0

    def is_complex(self, schema: Schema) -> bool:
        """True when the score is strictly above the threshold."""
        score = self.score(schema)
        log.debug("Schema '%s' scored %.2f (threshold %.2f)", schema.name, score, self.threshold)
        return score > self.threshold


def fingerprint(schema: Schema) -> str:
    """Stable hash of a schema's structure.

    Property order, ``required`` order and union variant order do not affect
    the result.
    """
    canonical = json.dumps(
        schema.canonical(), sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
