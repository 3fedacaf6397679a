"""
Orthogonality Checker.

WHAT THIS DOES:
Measures how independent the categories are. For each category we build a
presence vector (its score in every sample document), then compute the
Pearson correlation between every pair of vectors.

WHY THIS MATTERS:
A trust debt matrix assumes its axes measure different things. If
"security" and "auth" rise and fall together across the corpus, their cells
double-count the same divergence and both categories look worse than they
are. Such pairs are candidates for merging (or for splitting into cleaner
concepts).

ADVISORY ONLY:
Flags are logged and reported; nothing is blocked. The caller decides
whether to rebalance.

METRICS:
- flagged pairs: |r| > ceiling (default 0.05, configurable)
- mean_abs_correlation / max_abs_correlation across all pairs
- orthogonality_score = 1 - mean_abs_correlation (1.0 = fully independent)

A category with constant presence (zero variance) has no defined
correlation; such pairs count as 0.

USAGE:
    report = validate_orthogonality(snapshot.categories, KeywordScorer(), docs)
    for pair in report.flagged_pairs:
        print(pair.first_code, pair.second_code, pair.correlation)
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from intentguard.config import get_settings
from intentguard.services.scoring.models import CorpusDocument
from intentguard.services.scoring.protocols import CorpusScorer, ensure_valid_score
from intentguard.services.taxonomy.models import Category

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrelatedPair:
    """Two categories whose presence moves together across the corpus."""

    first_stable_id: str
    second_stable_id: str
    first_code: str
    second_code: str
    correlation: float


@dataclass
class OrthogonalityReport:
    """Result of an orthogonality check."""

    ceiling: float
    document_count: int
    pair_count: int
    flagged_pairs: list[CorrelatedPair] = field(default_factory=list)
    mean_abs_correlation: float = 0.0
    max_abs_correlation: float = 0.0

    @property
    def is_orthogonal(self) -> bool:
        """True if no pair exceeded the ceiling."""
        return not self.flagged_pairs

    @property
    def orthogonality_score(self) -> float:
        """1 - mean |r|, in [0, 1]."""
        return max(0.0, min(1.0, 1.0 - self.mean_abs_correlation))


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Sample Pearson correlation, 0.0 when either side has no variance."""
    n = len(xs)
    if n < 2:
        return 0.0

    mean_x = sum(xs) / n
    mean_y = sum(ys) / n
    cov = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    var_x = sum((x - mean_x) ** 2 for x in xs)
    var_y = sum((y - mean_y) ** 2 for y in ys)

    if var_x == 0 or var_y == 0:
        return 0.0

    return max(-1.0, min(1.0, cov / math.sqrt(var_x * var_y)))


def validate_orthogonality(
    categories: Sequence[Category],
    scorer: CorpusScorer,
    documents: Sequence[CorpusDocument],
    ceiling: Optional[float] = None,
) -> OrthogonalityReport:
    """
    Check pairwise independence of categories over a sample corpus.

    Args:
        categories: Categories to check (usually the active snapshot)
        scorer: Scorer used to build presence vectors
        documents: Sample corpus (both roles are fine)
        ceiling: Max tolerated |r|. Defaults to config value.

    Returns:
        OrthogonalityReport with flagged pairs and aggregate metrics
    """
    if ceiling is None:
        ceiling = get_settings().correlation_ceiling

    ordered_docs = sorted(documents, key=lambda d: d.source_id)
    presence = [
        [ensure_valid_score(scorer.score(category, doc.text), category, doc.source_id)
         for doc in ordered_docs]
        for category in categories
    ]

    flagged = []
    abs_values = []
    for i in range(len(categories)):
        for j in range(i + 1, len(categories)):
            r = pearson_correlation(presence[i], presence[j])
            abs_values.append(abs(r))
            if abs(r) > ceiling:
                flagged.append(CorrelatedPair(
                    first_stable_id=categories[i].stable_id,
                    second_stable_id=categories[j].stable_id,
                    first_code=categories[i].code,
                    second_code=categories[j].code,
                    correlation=r,
                ))

    flagged.sort(key=lambda p: abs(p.correlation), reverse=True)

    report = OrthogonalityReport(
        ceiling=ceiling,
        document_count=len(ordered_docs),
        pair_count=len(abs_values),
        flagged_pairs=flagged,
        mean_abs_correlation=sum(abs_values) / len(abs_values) if abs_values else 0.0,
        max_abs_correlation=max(abs_values, default=0.0),
    )

    if flagged:
        top = flagged[0]
        logger.warning(
            f"Orthogonality: {len(flagged)}/{report.pair_count} pairs above {ceiling:.0%} "
            f"(worst {top.first_code}/{top.second_code} r={top.correlation:.2f})"
        )
    else:
        logger.info(f"Orthogonality: all {report.pair_count} pairs within {ceiling:.0%}")

    return report
