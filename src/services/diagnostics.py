"""Read-only helpers for inspecting how the matcher sees a pair of texts or a name."""

from dataclasses import dataclass
from typing import List, Optional

from models import EntityType
from services.catalog_store import CatalogEntity, CatalogStore
from services.entity_resolver import best_fuzzy_match
from services.product_matcher import count_shared_words
from services.similarity import char_similarity, similarity_score, word_overlap_bonus
from services.text_normalizer import extract_meaningful_words, normalize_text
from services.thresholds import MatchingThresholds


@dataclass
class TextComparison:
    text_a: str
    text_b: str
    normalized_a: str
    normalized_b: str
    char_similarity: float
    word_bonus: float
    score: float
    words_a: List[str]
    words_b: List[str]
    shared_words: int


@dataclass
class EntityPreview:
    entity_type: EntityType
    name: str
    threshold: float
    exact: bool
    match: Optional[CatalogEntity]
    score: float


def compare_texts(text_a: str, text_b: str, thresholds: Optional[MatchingThresholds] = None) -> TextComparison:
    thresholds = thresholds or MatchingThresholds()
    normalized_a = normalize_text(text_a)
    normalized_b = normalize_text(text_b)
    words_a = extract_meaningful_words(text_a)
    words_b = extract_meaningful_words(text_b)

    return TextComparison(
        text_a=text_a,
        text_b=text_b,
        normalized_a=normalized_a,
        normalized_b=normalized_b,
        char_similarity=round(char_similarity(normalized_a, normalized_b), 2),
        word_bonus=round(word_overlap_bonus(normalized_a, normalized_b), 2),
        score=round(similarity_score(normalized_a, normalized_b), 2),
        words_a=words_a,
        words_b=words_b,
        shared_words=count_shared_words(words_a, words_b, thresholds.word_similarity),
    )


def preview_entity(
    store: CatalogStore,
    entity_type: EntityType,
    name: str,
    thresholds: Optional[MatchingThresholds] = None,
) -> EntityPreview:
    """Report what resolving ``name`` would return, without creating anything.

    Categories use the looser pre-scan threshold, brands their resolution threshold.
    """
    thresholds = thresholds or MatchingThresholds()
    if entity_type == EntityType.CATEGORY:
        threshold = thresholds.category_prescan
    else:
        threshold = thresholds.brand_fuzzy

    entity = store.find_entity_exact(entity_type, name)
    if entity is not None:
        return EntityPreview(entity_type, name, threshold, True, entity, 100.0)

    entity, score = best_fuzzy_match(store, entity_type, name, threshold)
    return EntityPreview(entity_type, name, threshold, False, entity, round(score, 2))
