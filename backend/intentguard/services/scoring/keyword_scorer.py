"""
Keyword Scorer.

WHAT THIS DOES:
Scores how present a category is in a document by counting its keywords.
No network, no model: the default scorer for builds and tests.

FORMULA:
score = keyword_coverage × 0.7 + frequency_boost × 0.3

Where:
- keyword_coverage = distinct keywords found / total keywords
- frequency_boost = min(1, total matches / (2 × total keywords))

Matching ignores case and only starts where no word character precedes,
so "test" matches "tests" and "testing" but not "latest", and ".env"
matches "copy .env first".

EXAMPLE:
    keywords = ["auth", "token", "secret"]
    text = "Rotate the auth token. Auth must never log tokens."

    found = {auth: 2, token: 2}          → coverage = 2/3 = 0.67
    matches = 4                          → boost = min(1, 4/6) = 0.67
    score = 0.67 × 0.7 + 0.67 × 0.3 = 0.67

USAGE:
    scorer = KeywordScorer()
    strength = scorer.score(category, document.text)
"""

import logging
import re
from functools import lru_cache
from typing import Optional

from intentguard.services.scoring.protocols import CorpusScorer
from intentguard.services.taxonomy.models import Category

logger = logging.getLogger(__name__)

COVERAGE_WEIGHT = 0.7
FREQUENCY_WEIGHT = 0.3


@lru_cache(maxsize=1024)
def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(keyword), re.IGNORECASE)


class KeywordScorer(CorpusScorer):
    """
    Keyword coverage/frequency scorer.

    Keywords come from the category itself (Category.keywords). An optional
    override map, keyed by category name, replaces them; handy when the
    taxonomy was generated without keyword lists.
    """

    def __init__(self, keyword_overrides: Optional[dict[str, list[str]]] = None):
        self.keyword_overrides = keyword_overrides or {}

    def keywords_for(self, category: Category) -> list[str]:
        """Keywords used for a category (override, declared, or its name)."""
        if category.name in self.keyword_overrides:
            return list(self.keyword_overrides[category.name])
        if category.keywords:
            return list(category.keywords)
        # No keywords declared: fall back to the name's own words
        return [word for word in re.split(r"[\s_\-]+", category.name) if word]

    def score(self, category: Category, text: str) -> float:
        keywords = self.keywords_for(category)
        if not text or not keywords:
            return 0.0

        found = 0
        total_matches = 0
        for keyword in keywords:
            matches = len(_keyword_pattern(keyword).findall(text))
            if matches > 0:
                found += 1
                total_matches += matches

        if total_matches == 0:
            return 0.0

        coverage = found / len(keywords)
        frequency_boost = min(1.0, total_matches / (len(keywords) * 2))

        return coverage * COVERAGE_WEIGHT + frequency_boost * FREQUENCY_WEIGHT
