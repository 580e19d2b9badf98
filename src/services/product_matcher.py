"""
Two-phase resolution of input titles to catalog products.

Phase 1 looks for byte-identical titles owned by the user. Phase 2 runs only
over records phase 1 left unresolved and compares meaningful words against
catalog products nobody has claimed yet. Each accepted match claims both the
record title and the product, so one generic catalog title cannot absorb
several input records.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from models import Product
from models.schemas import InputRecord
from services.catalog_store import CatalogStore
from services.errors import StoreError
from services.similarity import char_similarity
from services.text_normalizer import extract_meaningful_words, normalize_text
from services.thresholds import MatchingThresholds

logger = logging.getLogger(__name__)


class MatchPhase(str, enum.Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass
class ProcessedSet:
    """Titles and products consumed during one run."""

    titles: Set[str] = field(default_factory=set)
    product_ids: Set[int] = field(default_factory=set)

    def claim(self, normalized_title: str, product_id: Optional[int] = None) -> None:
        self.titles.add(normalized_title)
        if product_id is not None:
            self.product_ids.add(product_id)

    def is_title_claimed(self, normalized_title: str) -> bool:
        return normalized_title in self.titles

    def is_product_claimed(self, product: Product) -> bool:
        return product.id in self.product_ids or normalize_text(product.title) in self.titles

    def __len__(self) -> int:
        return len(self.titles)


@dataclass
class ProductMatch:
    index: int
    record: InputRecord
    product: Optional[Product] = None
    phase: Optional[MatchPhase] = None
    score: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.product is not None


def _compact(word: str) -> str:
    return word.replace("-", "").replace(".", "")


def words_match(a: str, b: str, similarity_threshold: float) -> bool:
    if a == b:
        return True
    if _compact(a) and _compact(a) == _compact(b):
        return True
    return char_similarity(a, b) >= similarity_threshold


def count_shared_words(
    words: Sequence[str], candidate_words: Sequence[str], similarity_threshold: float
) -> int:
    """Count words of ``words`` that pair with a distinct word of ``candidate_words``.

    Identical words pair first; the rest pair with a candidate word that is
    equal once hyphens and dots are removed or whose character similarity
    reaches ``similarity_threshold`` (``x-200``/``x200``, ``productt``/``product``).
    """
    remaining = list(candidate_words)
    pending: List[str] = []
    shared = 0

    for word in words:
        if word in remaining:
            remaining.remove(word)
            shared += 1
        else:
            pending.append(word)

    for word in pending:
        for candidate in remaining:
            if words_match(word, candidate, similarity_threshold):
                remaining.remove(candidate)
                shared += 1
                break

    return shared


class ProductMatcher:
    def __init__(
        self,
        store: CatalogStore,
        user_id: int,
        processed: Optional[ProcessedSet] = None,
        thresholds: Optional[MatchingThresholds] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.processed = processed if processed is not None else ProcessedSet()
        self.thresholds = thresholds or MatchingThresholds()
        self._word_cache: Dict[int, List[str]] = {}

    def match_all(self, records: Iterable[Tuple[int, InputRecord]]) -> Iterator[ProductMatch]:
        """Yield one ``ProductMatch`` per record: all phase 1 results, then phase 2."""
        records = list(records)
        resolved: Set[int] = set()

        logger.info(f"Phase 1: exact title lookup for {len(records)} records")
        for index, record in records:
            try:
                product = self.match_exact(record)
            except StoreError as exc:
                # Records whose lookup failed skip phase 2.
                logger.error(f"Exact lookup failed for '{record.title}': {exc}")
                resolved.add(index)
                yield ProductMatch(index, record, reason="lookup failed", error=str(exc))
                continue
            if product is not None:
                resolved.add(index)
                yield ProductMatch(index, record, product, MatchPhase.EXACT)

        logger.info(f"Phase 2: word-overlap lookup for {len(records) - len(resolved)} records")
        for index, record in records:
            if index in resolved:
                continue
            try:
                yield self.match_fuzzy(index, record)
            except StoreError as exc:
                logger.error(f"Word-overlap lookup failed for '{record.title}': {exc}")
                yield ProductMatch(index, record, reason="lookup failed", error=str(exc))

    def match_exact(self, record: InputRecord) -> Optional[Product]:
        product = self.store.find_product_exact(self.user_id, record.title)
        if product is None:
            logger.info(f"No exact product for '{record.title}'")
            return None

        self.processed.claim(normalize_text(record.title), product.id)
        logger.info(f"Exact product match '{record.title}' -> {product.id}")
        return product

    def match_fuzzy(self, index: int, record: InputRecord) -> ProductMatch:
        normalized_title = normalize_text(record.title)
        if self.processed.is_title_claimed(normalized_title):
            logger.info(f"Title '{record.title}' was already claimed in this run")
            return ProductMatch(index, record, reason="title already claimed")

        title_words = extract_meaningful_words(record.title)
        if len(title_words) < self.thresholds.product_min_words:
            logger.info(
                f"Title '{record.title}' has {len(title_words)} meaningful words, skipping fuzzy lookup"
            )
            return ProductMatch(index, record, reason="too few meaningful words")

        best_match: Optional[Product] = None
        best_score = 0
        best_exact = 0
        title_word_set = set(title_words)

        for product in self._unclaimed_products():
            product_words = self._product_words(product)
            score = count_shared_words(title_words, product_words, self.thresholds.word_similarity)
            if score < self.thresholds.product_candidate_floor:
                continue
            # Identical words break ties between equally scored candidates.
            exact = len(title_word_set.intersection(product_words))
            if (score, exact) > (best_score, best_exact):
                best_match = product
                best_score = score
                best_exact = exact
                logger.debug(
                    f"New candidate for '{record.title}': '{product.title}' "
                    f"({score} shared words, {exact} identical)"
                )

        if best_match is None or best_score < self.thresholds.product_accept_score:
            logger.info(
                f"No fuzzy product for '{record.title}' "
                f"(best {best_score}, need {self.thresholds.product_accept_score})"
            )
            return ProductMatch(index, record, score=best_score or None, reason="no candidate above threshold")

        self.processed.claim(normalized_title, best_match.id)
        logger.info(
            f"Fuzzy product match '{record.title}' -> '{best_match.title}' "
            f"({best_score} shared words, id={best_match.id})"
        )
        return ProductMatch(index, record, best_match, MatchPhase.FUZZY, best_score)

    def _unclaimed_products(self) -> List[Product]:
        products = self.store.list_products(self.user_id, exclude_ids=self.processed.product_ids)
        return [product for product in products if not self.processed.is_product_claimed(product)]

    def _product_words(self, product: Product) -> List[str]:
        words = self._word_cache.get(product.id)
        if words is None:
            words = extract_meaningful_words(product.title)
            self._word_cache[product.id] = words
        return words
