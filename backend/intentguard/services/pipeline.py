"""
Trust Debt Pipeline — Orchestrates one measurement run for one subject.

WHAT THIS DOES:
Turns a taxonomy and two corpora (intent + reality) into a graded record
and the identity vector the permission engine reads.

WHY THIS EXISTS:
- Keeps API routes thin and focused on HTTP concerns
- Fixes the stage order in one place (data only ever flows downstream)
- Makes a whole run testable without a database

PIPELINE STAGES:
1. Snapshot: freeze the active taxonomy (a concurrent rebalance can't leak in)
2. Prepare: let the scorer warm up (embeddings are fetched here)
3. Orthogonality: advisory independence check of the categories
4. Build: presence matrices → trust debt matrix
5. Grade: units, letter grade, per-category health
6. Identity: health scores + sovereignty for the permission engine

There is no corpus acquisition stage; callers supply the documents.

USAGE:
    pipeline = TrustDebtPipeline(manager, KeywordScorer())
    result = await pipeline.run("repo-main", documents)
    print(result.record.grade, result.identity.sovereignty_score)
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from intentguard.services.grading.engine import GradingEngine
from intentguard.services.grading.models import GradeRecord
from intentguard.services.matrix.builder import EmptyTaxonomyError, MatrixBuilder, MatrixBuildResult
from intentguard.services.permissions.identity import derive_identity
from intentguard.services.permissions.models import IdentityVector
from intentguard.services.scoring.models import CorpusDocument
from intentguard.services.scoring.protocols import CorpusScorer
from intentguard.services.taxonomy.manager import TaxonomyManager
from intentguard.services.taxonomy.models import TaxonomySnapshot
from intentguard.services.taxonomy.orthogonality import OrthogonalityReport, validate_orthogonality

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Intermediate result tracking through the pipeline."""

    # Input
    subject: str
    documents: list[CorpusDocument] = field(default_factory=list)

    # Snapshot stage
    snapshot: Optional[TaxonomySnapshot] = None

    # Orthogonality stage (None when skipped)
    orthogonality: Optional[OrthogonalityReport] = None

    # Build stage
    build: Optional[MatrixBuildResult] = None

    # Grade stage
    record: Optional[GradeRecord] = None

    # Identity stage
    identity: Optional[IdentityVector] = None


class TrustDebtPipeline:
    """
    Runs snapshot → build → grade → identity for a subject.

    The manager and scorer are injected; the builder and grading engine
    default to config-driven instances.
    """

    def __init__(
        self,
        manager: TaxonomyManager,
        scorer: CorpusScorer,
        builder: Optional[MatrixBuilder] = None,
        grading: Optional[GradingEngine] = None,
        check_orthogonality: bool = True,
    ):
        """
        Initialize the pipeline.

        Args:
            manager: Source of the active taxonomy
            scorer: Corpus scorer used for both presence and orthogonality
            builder: Matrix builder. Defaults to one built around `scorer`.
            grading: Grading engine. Its history receives every record.
            check_orthogonality: Run the advisory orthogonality stage
        """
        self.manager = manager
        self.scorer = scorer
        self.builder = builder or MatrixBuilder(scorer)
        self.grading = grading or GradingEngine()
        self.check_orthogonality = check_orthogonality

    async def run(self, subject: str, documents: Sequence[CorpusDocument]) -> PipelineResult:
        """
        Run the full pipeline.

        Args:
            subject: Who/what is being measured
            documents: Intent and reality documents (roles set per document)

        Returns:
            PipelineResult with every stage's output

        Raises:
            EmptyTaxonomyError: If no categories are active
        """
        logger.info(f"Pipeline starting for '{subject}' ({len(documents)} documents)")

        result = PipelineResult(subject=subject, documents=list(documents))

        # Stage 1: Snapshot
        self._stage_snapshot(result)

        # Stage 2: Prepare scorer
        await self.scorer.prepare(result.snapshot.categories, result.documents)

        # Stage 3: Orthogonality (advisory)
        if self.check_orthogonality:
            self._stage_orthogonality(result)

        # Stage 4: Build matrices
        result.build = self.builder.build(result.snapshot, result.documents)

        # Stage 5: Grade
        self._stage_grade(result)

        # Stage 6: Identity
        result.identity = derive_identity(result.record, subject=subject)

        logger.info(
            f"Pipeline complete for '{subject}': {result.record.total_units:.1f} units, "
            f"grade {result.record.grade.value}, "
            f"sovereignty={result.identity.sovereignty_score:.3f}"
        )

        return result

    # =========================================================================
    # STAGES
    # =========================================================================

    def _stage_snapshot(self, result: PipelineResult) -> None:
        result.snapshot = self.manager.snapshot()
        if result.snapshot.is_empty:
            raise EmptyTaxonomyError(
                f"Cannot measure '{result.subject}': taxonomy v{result.snapshot.version} "
                "has no active categories"
            )

    def _stage_orthogonality(self, result: PipelineResult) -> None:
        """Flags correlated categories. Never stops the run."""
        result.orthogonality = validate_orthogonality(
            result.snapshot.categories,
            self.scorer,
            result.documents,
        )

    def _stage_grade(self, result: PipelineResult) -> None:
        orthogonality_score = (
            result.orthogonality.orthogonality_score
            if result.orthogonality is not None and result.orthogonality.pair_count > 0
            else None
        )
        result.record = self.grading.grade(
            result.build.trust_debt,
            subject=result.subject,
            taxonomy_version=result.snapshot.version,
            orthogonality_score=orthogonality_score,
        )
        self.grading.append_history(result.record)


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

async def run_trust_debt_pipeline(
    subject: str,
    documents: Sequence[CorpusDocument],
    manager: TaxonomyManager,
    scorer: CorpusScorer,
) -> PipelineResult:
    """
    Convenience function to run the trust debt pipeline.

    Example:
        result = await run_trust_debt_pipeline("repo-main", docs, manager, KeywordScorer())
    """
    pipeline = TrustDebtPipeline(manager, scorer)
    return await pipeline.run(subject, documents)
