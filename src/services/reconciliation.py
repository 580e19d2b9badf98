"""
Batch reconciliation of external product records against the catalog.

A ``ReconciliationRun`` validates the batch, lets ``ProductMatcher`` resolve
titles to catalog products, and for every match replaces the product's
category set (atomically), links its brand and merges its specifications.
Only an unreadable source fails the run; every other problem is contained to
the record or sub-step it happened in and shows up in the stats.
"""

import enum
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Union

from config import settings
from models import EntityType, Product
from models.schemas import CategoryRef, InputRecord
from services.catalog_store import CatalogStore
from services.entity_resolver import EntityResolver
from services.errors import RecordInvalid, SourceError, StoreError
from services.product_matcher import ProcessedSet, ProductMatch, ProductMatcher
from services.record_source import build_record, load_records, parse_records
from services.thresholds import MatchingThresholds

logger = logging.getLogger(__name__)

# Login prompt scraped from the source site instead of a real spec row.
JUNK_SPEC_ENTRY = ("ترب", "ورود / ثبت نام")


class RunState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RecordStatus(str, enum.Enum):
    MATCHED = "matched"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass
class RunStats:
    processed: int = 0
    matched: int = 0
    not_found: int = 0
    invalid: int = 0
    failed: int = 0
    categories_created: int = 0
    brands_created: int = 0
    brands_assigned: int = 0
    processed_products_count: int = 0

    @property
    def success_rate(self) -> float:
        if self.processed == 0:
            return 0.0
        return self.matched / self.processed

    def record_created(self, entity_type: EntityType) -> None:
        if entity_type == EntityType.CATEGORY:
            self.categories_created += 1
        else:
            self.brands_created += 1

    def merge_entity_counts(self, other: "RunStats") -> None:
        self.categories_created += other.categories_created
        self.brands_created += other.brands_created
        self.brands_assigned += other.brands_assigned

    def as_dict(self) -> dict:
        data = asdict(self)
        data["success_rate"] = round(self.success_rate, 4)
        return data


@dataclass
class RecordResult:
    index: int
    title: Optional[str]
    status: RecordStatus
    product_id: Optional[int] = None
    phase: Optional[str] = None
    error: Optional[str] = None


def clean_spec_entries(entries: Iterable[dict]) -> List[dict]:
    cleaned = []
    for entry in entries:
        title = entry.get("title")
        body = entry.get("body")
        if title is None or body is None:
            continue
        if (title, body) == JUNK_SPEC_ENTRY:
            continue
        cleaned.append({"title": title, "body": body})
    return cleaned


def order_categories(categories: Iterable[CategoryRef]) -> List[CategoryRef]:
    """Deepest level first; equal levels keep input order."""
    return sorted(categories, key=lambda category: category.level or 0, reverse=True)


class ReconciliationRun:
    def __init__(
        self,
        store: CatalogStore,
        user_id: Optional[int] = None,
        thresholds: Optional[MatchingThresholds] = None,
        dry_run: bool = False,
        on_record: Optional[Callable[[RecordResult], None]] = None,
    ):
        self.store = store
        self.user_id = user_id if user_id is not None else settings.default_user_id
        self.thresholds = thresholds or MatchingThresholds.from_settings()
        self.dry_run = dry_run
        self.on_record = on_record

        self.state = RunState.IDLE
        self.stats = RunStats()
        self.processed = ProcessedSet()
        self.results: List[RecordResult] = []
        self.error_message: Optional[str] = None
        self._cancel_requested = False

    def cancel(self) -> None:
        """Stop after the record being handled.

        Validation runs over the whole batch before matching, so invalid records
        are already counted and reported, even those after the stopping point.
        Results follow processing order: invalid records, then phase 1 matches,
        then phase 2 outcomes.
        """
        self._cancel_requested = True

    def fail(self, exc: Exception) -> None:
        self.state = RunState.FAILED
        self.error_message = str(exc)
        logger.error(f"Reconciliation run failed: {exc}")

    def run(self, raw_records: Any) -> RunStats:
        if self.state != RunState.IDLE:
            raise RuntimeError(f"Run already {self.state.value}")

        self.state = RunState.RUNNING
        logger.info(f"Starting reconciliation for user {self.user_id} (dry_run={self.dry_run})")

        try:
            records = parse_records(raw_records)
            valid = self._validate(records)
            if not self._cancel_requested:
                matcher = ProductMatcher(self.store, self.user_id, self.processed, self.thresholds)
                for match in matcher.match_all(valid):
                    self._handle_match(match)
                    if self._cancel_requested:
                        break
        except Exception as exc:
            self.fail(exc)
            raise
        finally:
            self.stats.processed_products_count = len(self.processed)

        if self.dry_run:
            self.store.rollback()

        self.state = RunState.CANCELLED if self._cancel_requested else RunState.COMPLETED
        logger.info(f"Reconciliation {self.state.value}: {self.stats.as_dict()}")
        return self.stats

    def _validate(self, records: List[Any]) -> List[tuple]:
        valid = []
        for index, raw in enumerate(records):
            try:
                valid.append((index, build_record(raw)))
            except RecordInvalid as exc:
                logger.warning(f"Skipping record #{index}: {exc}")
                self.stats.processed += 1
                self.stats.invalid += 1
                title = raw.get("title") if isinstance(raw, dict) else None
                self._report(RecordResult(index, title if isinstance(title, str) else None, RecordStatus.INVALID, error=str(exc)))
        return valid

    def _handle_match(self, match: ProductMatch) -> None:
        self.stats.processed += 1
        record = match.record

        if match.error is not None:
            self.stats.failed += 1
            self._report(RecordResult(match.index, record.title, RecordStatus.FAILED, error=match.error))
            return

        if not match.matched:
            self.stats.not_found += 1
            self._report(RecordResult(match.index, record.title, RecordStatus.NOT_FOUND, error=match.reason))
            return

        product = match.product
        logger.info(f"Product matched: {product.id} '{product.title}' <- '{record.title}' ({match.phase.value})")

        record_stats = RunStats()
        try:
            self.assign_categories(product, record.categories, record_stats)
        except StoreError as exc:
            logger.error(f"Category assignment failed for product {product.id}: {exc}")
            self.stats.failed += 1
            self._report(
                RecordResult(match.index, record.title, RecordStatus.FAILED, product.id, match.phase.value, str(exc))
            )
            return

        if record.brand_name:
            self.assign_brand(product, record.brand_name, record_stats)

        self.assign_specifications(product, record)

        if not self.dry_run:
            try:
                self.store.commit()
            except StoreError as exc:
                logger.error(f"Commit failed for product {product.id}: {exc}")
                self.store.rollback()
                self.stats.failed += 1
                self._report(
                    RecordResult(match.index, record.title, RecordStatus.FAILED, product.id, match.phase.value, str(exc))
                )
                return

        self.stats.matched += 1
        self.stats.merge_entity_counts(record_stats)
        self._report(RecordResult(match.index, record.title, RecordStatus.MATCHED, product.id, match.phase.value))

    def assign_categories(self, product: Product, categories: Iterable[CategoryRef], counter: RunStats) -> List[int]:
        """Replace the product's categories in one transaction and return the new ids."""
        resolver = EntityResolver(
            self.store,
            EntityType.CATEGORY,
            self.thresholds.category_fuzzy,
            counter,
            self.thresholds.entity_create_attempts,
        )
        category_ids: List[int] = []

        with self.store.transaction():
            self.store.detach_categories(product.id)

            for category in order_categories(categories):
                if not category.name or not category.name.strip():
                    continue
                resolution = resolver.resolve(category.name)
                if resolution.entity.id not in category_ids:
                    category_ids.append(resolution.entity.id)

            self.store.attach_categories(product.id, category_ids)

        logger.info(f"Product {product.id} now has {len(category_ids)} categories")
        return category_ids

    def assign_brand(self, product: Product, brand_name: str, counter: RunStats) -> bool:
        """Link the product to its brand. Failures are logged and never raised."""
        scratch = RunStats()
        resolver = EntityResolver(
            self.store,
            EntityType.BRAND,
            self.thresholds.brand_fuzzy,
            scratch,
            self.thresholds.entity_create_attempts,
        )
        linked = False

        try:
            with self.store.transaction():
                brand = resolver.resolve(brand_name).entity
                if self.store.brand_link_exists(product.id, brand.id):
                    logger.info(f"Brand {brand.id} already linked to product {product.id}")
                else:
                    self.store.link_brand(product.id, brand.id)
                    linked = True
                    logger.info(f"Brand '{brand.name}' ({brand.id}) linked to product {product.id}")
        except StoreError as exc:
            logger.error(f"Brand assignment failed for product {product.id} ('{brand_name}'): {exc}")
            return False

        counter.merge_entity_counts(scratch)
        if linked:
            counter.brands_assigned += 1
        return linked

    def assign_specifications(self, product: Product, record: InputRecord) -> bool:
        if record.specifications is None:
            return False

        key_specs = clean_spec_entries(record.specifications.key_specs)
        general_specs = clean_spec_entries(record.specifications.general_specs)
        if not key_specs and not general_specs:
            return False

        try:
            with self.store.transaction():
                self.store.update_product_specs(product.id, key_specs or None, general_specs or None)
        except StoreError as exc:
            logger.error(f"Specification update failed for product {product.id}: {exc}")
            return False

        logger.info(
            f"Product {product.id} specs updated: {len(key_specs)} key, {len(general_specs)} general"
        )
        return True

    def _report(self, result: RecordResult) -> None:
        self.results.append(result)
        if self.on_record is not None:
            self.on_record(result)


def reconcile_file(path: Union[str, Path], store: CatalogStore, **kwargs) -> ReconciliationRun:
    """Load records from ``path`` and run them; the returned run holds stats and results."""
    run = ReconciliationRun(store, **kwargs)
    try:
        records = load_records(path)
    except SourceError as exc:
        run.fail(exc)
        raise
    run.run(records)
    return run
