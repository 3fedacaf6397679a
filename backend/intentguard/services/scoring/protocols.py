"""
Scorer Protocol — Abstract base for pluggable corpus scorers.

WHAT THIS IS:
The one capability the matrix builder needs from the outside world:
"how strongly does this document talk about this category?"

CONTRACT:
- score(category, text) returns a finite float >= 0
- 0 means "no presence"; there is no upper bound
- it must be deterministic for identical inputs (builds are reproducible)

The matrix builder enforces the first point with ensure_valid_score() and
raises ScorerContractError on anything negative, NaN or infinite.

IMPLEMENTATIONS:
- KeywordScorer: keyword coverage + frequency (no external calls)
- EmbeddingScorer: OpenAI embedding cosine similarity

USAGE:
    class MyScorer(CorpusScorer):
        def score(self, category, text) -> float:
            return 1.0 if category.name in text else 0.0
"""

import math
from abc import ABC, abstractmethod

from intentguard.services.taxonomy.models import Category


class ScorerContractError(ValueError):
    """A scorer returned something that is not a finite, non-negative number."""


class CorpusScorer(ABC):
    """Abstract base class for corpus scorers."""

    @property
    def scorer_name(self) -> str:
        """Human-readable name, used in logs."""
        return type(self).__name__

    async def prepare(self, categories, documents) -> int:
        """
        Optional async warm-up before a build (e.g. fetching embeddings).

        score() itself is sync so the builder can fan it out on threads.
        Returns the number of items prepared; the default does nothing.
        """
        return 0

    @abstractmethod
    def score(self, category: Category, text: str) -> float:
        """
        Presence strength of a category in a document.

        Args:
            category: The category being measured
            text: The document text

        Returns:
            Non-negative presence strength
        """
        pass


def ensure_valid_score(value: float, category: Category, source_id: str) -> float:
    """Return the score as float, or raise if it breaks the scorer contract."""
    value = float(value)
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ScorerContractError(
            f"Scorer returned {value!r} for category '{category.code}' "
            f"on document '{source_id}' (expected finite value >= 0)"
        )
    return value
