"""
OpenAI Embedding Scorer.

WHAT THIS DOES:
Scores category presence by semantic similarity instead of keyword hits:
presence = max(0, cosine(embedding(category), embedding(document)))

WHY TWO PHASES:
The scorer interface is synchronous and pure (the matrix builder may call it
from worker threads). Embeddings need async network calls. So:

PREPARE (async, once per build):
    await scorer.prepare(categories, documents)
        → batch-embed every category descriptor and document text
        → cache vectors by text

SCORE (sync, many times):
    scorer.score(category, text)
        → cache lookup + cosine similarity, no I/O

Calling score() on text that was never prepared is a programming error and
raises KeyError rather than silently returning 0.

CATEGORY DESCRIPTOR:
"name: keyword1, keyword2, ..." gives the model more than a bare label.

MODEL:
text-embedding-3-small by default (configurable via EMBEDDING_MODEL).

USAGE:
    scorer = EmbeddingScorer()
    await scorer.prepare(snapshot.categories, documents)
    builder = MatrixBuilder(scorer)
"""

import logging
from typing import Iterable, Optional

from openai import AsyncOpenAI

from intentguard.config import get_settings
from intentguard.services.scoring.models import CorpusDocument
from intentguard.services.scoring.protocols import CorpusScorer
from intentguard.services.taxonomy.models import Category
from intentguard.services.vectors import cosine_similarity

logger = logging.getLogger(__name__)

# Batch size for OpenAI API (max is 2048, but 100 is safer for memory)
BATCH_SIZE = 100

# Max tokens for the embedding model; rough estimate of 4 chars per token
MAX_TOKENS = 8000


def category_descriptor(category: Category) -> str:
    """Text that represents a category in embedding space."""
    if category.keywords:
        return f"{category.name}: {', '.join(category.keywords)}"
    return category.name


class EmbeddingScorer(CorpusScorer):
    """
    Cosine-similarity scorer backed by OpenAI embeddings.

    The client is injectable so tests (and alternative providers exposing
    the same `embeddings.create` shape) can stand in for OpenAI.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        settings = get_settings()
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.embedding_model
        self._vectors: dict[str, list[float]] = {}

    # =========================================================================
    # PREPARE (async)
    # =========================================================================

    async def prepare(
        self,
        categories: Iterable[Category],
        documents: Iterable[CorpusDocument],
    ) -> int:
        """
        Embed every category descriptor and document text not yet cached.

        Returns:
            Number of new texts embedded
        """
        texts = [category_descriptor(c) for c in categories]
        # score() never looks up empty text, and the API rejects it
        texts += [doc.text for doc in documents if doc.text]

        pending = []
        for text in texts:
            if text not in self._vectors and text not in pending:
                pending.append(text)

        for start in range(0, len(pending), BATCH_SIZE):
            batch = pending[start:start + BATCH_SIZE]
            logger.info(f"Embedding batch of {len(batch)} texts...")
            try:
                vectors = await self.embed_texts(batch)
            except Exception as e:
                logger.error(f"Failed to embed batch: {e}")
                raise
            for text, vector in zip(batch, vectors):
                self._vectors[text] = vector

        logger.info(f"Prepared {len(pending)} new embeddings ({len(self._vectors)} cached)")
        return len(pending)

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed up to BATCH_SIZE texts in a single API call."""
        if not texts:
            return []

        if len(texts) > BATCH_SIZE:
            raise ValueError(f"Too many texts ({len(texts)}), max is {BATCH_SIZE}")

        processed_texts = [text[:MAX_TOKENS * 4] for text in texts]

        response = await self.client.embeddings.create(
            model=self.model,
            input=processed_texts,
        )

        # Response data is in same order as input
        return [item.embedding for item in response.data]

    # =========================================================================
    # SCORE (sync)
    # =========================================================================

    def score(self, category: Category, text: str) -> float:
        if not text:
            return 0.0

        descriptor = category_descriptor(category)
        if descriptor not in self._vectors or text not in self._vectors:
            raise KeyError(
                f"No embedding prepared for category '{category.code}' or document text; "
                "call prepare() before building"
            )

        similarity = cosine_similarity(self._vectors[descriptor], self._vectors[text])

        # Negative alignment means "not about this", never negative presence
        return max(0.0, similarity)
