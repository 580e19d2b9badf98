"""Threshold set used by every matching call site."""

from dataclasses import dataclass
from typing import Optional

from config import Settings, settings as default_settings


@dataclass(frozen=True)
class MatchingThresholds:
    # Entity resolution scores are 0-100 and must be strictly exceeded.
    category_fuzzy: float = 85.0
    brand_fuzzy: float = 85.0
    # Non-authoritative category pre-scan (previews only, never creates).
    category_prescan: float = 75.0
    # Product phase 2 works on counts of shared meaningful words.
    product_min_words: int = 3
    product_candidate_floor: int = 2
    product_accept_score: int = 3
    word_similarity: float = 85.0
    entity_create_attempts: int = 3

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "MatchingThresholds":
        source = source or default_settings
        return cls(
            category_fuzzy=source.category_fuzzy_threshold,
            brand_fuzzy=source.brand_fuzzy_threshold,
            category_prescan=source.category_prescan_threshold,
            product_min_words=source.product_min_words,
            product_candidate_floor=source.product_candidate_floor,
            product_accept_score=source.product_accept_score,
            word_similarity=source.word_similarity_threshold,
            entity_create_attempts=source.entity_create_attempts,
        )
