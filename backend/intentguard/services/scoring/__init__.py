# Corpus scoring
#
# The matrix builder only knows the CorpusScorer interface.
# - KeywordScorer: keyword coverage/frequency, no external calls
# - EmbeddingScorer: OpenAI embeddings + cosine similarity

from intentguard.services.scoring.models import CorpusDocument, DocumentRole
from intentguard.services.scoring.protocols import (
    CorpusScorer,
    ScorerContractError,
    ensure_valid_score,
)
from intentguard.services.scoring.keyword_scorer import KeywordScorer
from intentguard.services.scoring.embedding_scorer import EmbeddingScorer

__all__ = [
    "CorpusDocument",
    "DocumentRole",
    "CorpusScorer",
    "ScorerContractError",
    "ensure_valid_score",
    "KeywordScorer",
    "EmbeddingScorer",
]
