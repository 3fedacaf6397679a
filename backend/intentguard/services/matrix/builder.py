"""
Matrix Builder.

WHAT THIS DOES:
Turns a taxonomy snapshot and two corpora into the Trust Debt matrix.

STEP 1: PRESENCE MATRICES (one per role)
For each document d of the role, with s_i = scorer(category_i, d):

    P[i][j] += s_i × s_j × d.weight              (co-occurrence)
    P[i][i] += 0.5 × s_i × d.weight              (self-coherence boost)

STEP 2: TRUST DEBT MATRIX

    diagonal  [i][i] = |I[i][i] - R[i][i]|
    upper i<j [i][j] = |I[i][j] - R[i][j]| × reality_emphasis
    lower i>j [i][j] = |I[j][i] - R[j][i]| × intent_emphasis

EXAMPLE (one doc per role, two categories "A", "B"):
    intent doc:  s_A = 1.0, s_B = 0.0
    reality doc: s_A = 1.0, s_B = 1.0

    I = [[1.5, 0.0],      R = [[1.5, 1.0],
         [0.0, 0.0]]           [1.0, 1.5]]

    TD = [[0.0, 1.0 × 1.5],
          [1.0 × 1.8, 1.5]]
    → reality coupled A↔B without documenting it

EDGE CASES:
- No documents for a role → all-zero presence matrix. The resulting debt is
  real (everything on the other side is undocumented or undelivered) and is
  recorded as such.
- Scores are folded in source_id order, so results are bit-for-bit
  reproducible even when scoring runs on a thread pool.

USAGE:
    builder = MatrixBuilder(KeywordScorer())
    result = builder.build(manager.snapshot(), documents)
    print(result.trust_debt.value(0, 1))
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

from intentguard.config import get_settings
from intentguard.services.matrix.models import PresenceMatrix, TrustDebtMatrix
from intentguard.services.scoring.models import CorpusDocument, DocumentRole
from intentguard.services.scoring.protocols import CorpusScorer, ensure_valid_score
from intentguard.services.taxonomy.models import Category, TaxonomySnapshot

logger = logging.getLogger(__name__)


class EmptyTaxonomyError(ValueError):
    """A build was requested against a snapshot with no active categories."""


@dataclass
class MatrixBuildResult:
    """Everything a single build produced."""

    snapshot: TaxonomySnapshot
    intent: PresenceMatrix
    reality: PresenceMatrix
    trust_debt: TrustDebtMatrix


class MatrixBuilder:
    """
    Builds presence and trust debt matrices.

    Pipeline position:
    TaxonomySnapshot + Corpora → [MatrixBuilder] → GradingEngine → ...
    """

    def __init__(
        self,
        scorer: CorpusScorer,
        reality_emphasis: Optional[float] = None,
        intent_emphasis: Optional[float] = None,
        diagonal_self_boost: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the builder.

        Args:
            scorer: Corpus scorer used for every (category, document) pair
            reality_emphasis: Upper-triangle factor. Defaults to config value.
            intent_emphasis: Lower-triangle factor. Defaults to config value.
            diagonal_self_boost: Diagonal self-coherence factor. Defaults to config value.
            max_workers: Threads used for scoring (1 = inline). Defaults to config value.
        """
        settings = get_settings()
        self.scorer = scorer
        self.reality_emphasis = (
            reality_emphasis if reality_emphasis is not None else settings.reality_emphasis
        )
        self.intent_emphasis = (
            intent_emphasis if intent_emphasis is not None else settings.intent_emphasis
        )
        self.diagonal_self_boost = (
            diagonal_self_boost if diagonal_self_boost is not None else settings.diagonal_self_boost
        )
        self.max_workers = max_workers if max_workers is not None else settings.scoring_max_workers

    # =========================================================================
    # FULL BUILD
    # =========================================================================

    def build(
        self,
        snapshot: TaxonomySnapshot,
        documents: Sequence[CorpusDocument],
    ) -> MatrixBuildResult:
        """
        Build both presence matrices and the trust debt matrix.

        Args:
            snapshot: Taxonomy snapshot taken at the start of the run
            documents: Documents of both roles

        Returns:
            MatrixBuildResult with intent, reality and trust debt matrices
        """
        if snapshot.is_empty:
            raise EmptyTaxonomyError(
                f"Taxonomy version {snapshot.version} has no active categories"
            )

        intent = self.build_presence_matrix(snapshot.categories, documents, DocumentRole.INTENT)
        reality = self.build_presence_matrix(snapshot.categories, documents, DocumentRole.REALITY)

        trust_debt = self.build_trust_debt_matrix(intent, reality)
        trust_debt.taxonomy_version = snapshot.version

        logger.info(
            f"Built matrices for taxonomy v{snapshot.version}: {len(snapshot)} categories, "
            f"{intent.document_count} intent docs, {reality.document_count} reality docs"
        )

        return MatrixBuildResult(
            snapshot=snapshot,
            intent=intent,
            reality=reality,
            trust_debt=trust_debt,
        )

    # =========================================================================
    # PRESENCE MATRIX
    # =========================================================================

    def build_presence_matrix(
        self,
        categories: Sequence[Category],
        documents: Sequence[CorpusDocument],
        role: DocumentRole,
    ) -> PresenceMatrix:
        """
        Build the presence matrix for one role.

        Documents of the other role are ignored. An empty selection yields
        an all-zero matrix.
        """
        categories = tuple(categories)
        role_docs = sorted(
            (d for d in documents if d.role == role),
            key=lambda d: (d.source_id, d.text),
        )
        matrix = PresenceMatrix.zeros(role, categories)
        matrix.document_count = len(role_docs)

        if not role_docs:
            logger.info(f"No {role.value} documents: {role.value} presence matrix is all zero")
            return matrix

        doc_scores = self._score_documents(categories, role_docs)

        # Fixed fold order (sorted by source_id) keeps float sums reproducible
        n = len(categories)
        values = matrix.values
        for doc, scores in zip(role_docs, doc_scores):
            for i in range(n):
                s_i = scores[i]
                if s_i == 0:
                    continue
                row = values[i]
                for j in range(n):
                    row[j] += s_i * scores[j] * doc.weight
                row[i] += self.diagonal_self_boost * s_i * doc.weight

        return matrix

    def _score_documents(
        self,
        categories: tuple[Category, ...],
        documents: list[CorpusDocument],
    ) -> list[list[float]]:
        """Score every category against every document, in document order."""

        def score_one(doc: CorpusDocument) -> list[float]:
            return [
                ensure_valid_score(self.scorer.score(category, doc.text), category, doc.source_id)
                for category in categories
            ]

        if self.max_workers <= 1 or len(documents) < 2:
            return [score_one(doc) for doc in documents]

        # Executor.map preserves input order regardless of completion order
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(score_one, documents))

    # =========================================================================
    # TRUST DEBT MATRIX
    # =========================================================================

    def build_trust_debt_matrix(
        self,
        intent: PresenceMatrix,
        reality: PresenceMatrix,
    ) -> TrustDebtMatrix:
        """
        Combine two presence matrices into the asymmetric trust debt matrix.

        Both matrices must be indexed by the same categories in the same order.
        """
        if intent.stable_ids != reality.stable_ids:
            raise ValueError("Intent and reality matrices are indexed by different categories")

        n = intent.size
        values = [[0.0] * n for _ in range(n)]

        for i in range(n):
            for j in range(n):
                if i == j:
                    values[i][j] = abs(intent.values[i][i] - reality.values[i][i])
                elif i < j:
                    gap = abs(intent.values[i][j] - reality.values[i][j])
                    values[i][j] = gap * self.reality_emphasis
                else:
                    gap = abs(intent.values[j][i] - reality.values[j][i])
                    values[i][j] = gap * self.intent_emphasis

        return TrustDebtMatrix(
            categories=intent.categories,
            values=values,
            intent=intent,
            reality=reality,
            reality_emphasis=self.reality_emphasis,
            intent_emphasis=self.intent_emphasis,
        )
