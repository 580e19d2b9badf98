import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Brand, Category, Product, product_categories
from services.catalog_store import SqlCatalogStore
from services.errors import SourceError, StoreError
from services.reconciliation import (
    JUNK_SPEC_ENTRY,
    RecordStatus,
    ReconciliationRun,
    RunState,
    RunStats,
    clean_spec_entries,
    order_categories,
    reconcile_file,
)
from services.record_source import build_record
from services.thresholds import MatchingThresholds

USER_ID = 39


class FailingAttachStore(SqlCatalogStore):
    def attach_categories(self, product_id, category_ids):
        raise StoreError("attach_categories failed: disk full")


class FailingBrandStore(SqlCatalogStore):
    def link_brand(self, product_id, brand_id):
        raise StoreError("link_brand failed: locked")


class FlakyLookupStore(SqlCatalogStore):
    """Product lookups fail for one title, or every catalog scan fails."""

    def __init__(self, db: Session, broken_title: str = None, broken_scan: bool = False):
        super().__init__(db)
        self.broken_title = broken_title
        self.broken_scan = broken_scan

    def find_product_exact(self, user_id, title):
        if title == self.broken_title:
            raise StoreError("find_product_exact failed: connection reset")
        return super().find_product_exact(user_id, title)

    def list_products(self, user_id, exclude_ids=()):
        if self.broken_scan:
            raise StoreError("list_products failed: connection reset")
        return super().list_products(user_id, exclude_ids)


def _seed_product(db: Session, title: str, user_id: int = USER_ID, **kwargs) -> Product:
    product = Product(user_id=user_id, title=title, **kwargs)
    db.add(product)
    db.commit()
    return product


def _category_names(db: Session, product_id: int) -> list:
    stmt = (
        select(Category.name)
        .join(product_categories, product_categories.c.category_id == Category.id)
        .where(product_categories.c.product_id == product_id)
        .order_by(Category.name)
    )
    return list(db.execute(stmt).scalars())


def _run(store, records, **kwargs) -> ReconciliationRun:
    run = ReconciliationRun(store, user_id=USER_ID, thresholds=MatchingThresholds(), **kwargs)
    run.run(records)
    return run


def _assert_counts_add_up(stats: RunStats):
    assert stats.processed == stats.matched + stats.not_found + stats.invalid + stats.failed


def test_exact_match_creates_category(db_session: Session, store: SqlCatalogStore):
    product = _seed_product(db_session, "Product Alpha X200")

    run = _run(store, [{"title": "Product Alpha X200", "categories": [{"name": "Mobile Phones", "level": 1}]}])

    assert run.state == RunState.COMPLETED
    assert run.stats.matched == 1
    assert run.stats.categories_created == 1
    assert run.stats.processed_products_count == 1
    assert _category_names(db_session, product.id) == ["Mobile Phones"]
    assert run.results[0].status == RecordStatus.MATCHED
    assert run.results[0].phase == "exact"


def test_typo_title_matches_by_words(db_session: Session, store: SqlCatalogStore):
    product = _seed_product(db_session, "Product Alpha X200")

    run = _run(store, [{"title": "productt alpha x-200", "categories": [{"name": "Phones"}]}])

    assert run.stats.matched == 1
    assert run.stats.not_found == 0
    assert run.results[0].product_id == product.id
    assert run.results[0].phase == "fuzzy"


def test_second_record_for_same_product_is_not_found(db_session: Session, store: SqlCatalogStore):
    _seed_product(db_session, "Product Alpha X200")

    run = _run(
        store,
        [
            {"title": "productt alpha x-200", "categories": [{"name": "Phones"}]},
            {"title": "product alfa x200", "categories": [{"name": "Tablets"}]},
        ],
    )

    assert run.stats.matched == 1
    assert run.stats.not_found == 1
    assert [r.status for r in run.results] == [RecordStatus.MATCHED, RecordStatus.NOT_FOUND]
    _assert_counts_add_up(run.stats)


def test_invalid_record_makes_no_store_calls():
    store = MagicMock(spec=SqlCatalogStore)

    run = _run(store, [{"title": "Product Alpha X200"}])

    assert run.stats.invalid == 1
    assert run.stats.processed == 1
    assert store.method_calls == []
    assert run.results[0].status == RecordStatus.INVALID
    assert run.results[0].title == "Product Alpha X200"


def test_mixed_batch_counts_add_up(db_session: Session, store: SqlCatalogStore):
    _seed_product(db_session, "Product Alpha X200")

    run = _run(
        store,
        [
            {"title": "Product Alpha X200", "categories": [{"name": "Phones"}]},
            "garbage",
            {"categories": []},
            {"title": "Unknown Gadget Deluxe Edition", "categories": [{"name": "Phones"}]},
        ],
    )

    assert run.stats.processed == 4
    assert run.stats.matched == 1
    assert run.stats.invalid == 2
    assert run.stats.not_found == 1
    assert run.stats.success_rate == pytest.approx(0.25)
    _assert_counts_add_up(run.stats)


def test_categories_replace_existing_set(db_session: Session, store: SqlCatalogStore):
    product = Product(user_id=USER_ID, title="Product Alpha X200")
    product.categories.append(Category(name="Old Shelf", slug="old-shelf"))
    db_session.add(product)
    db_session.commit()

    _run(store, [{"title": "Product Alpha X200", "categories": [{"name": "Smartphones"}]}])

    assert _category_names(db_session, product.id) == ["Smartphones"]


def test_categories_are_created_deepest_first(db_session: Session, store: SqlCatalogStore):
    _seed_product(db_session, "Product Alpha X200")

    _run(
        store,
        [
            {
                "title": "Product Alpha X200",
                "categories": [
                    {"name": "Electronics", "level": 1},
                    {"name": "Smartphones", "level": 3},
                    {"name": "Mobile", "level": 2},
                    {"name": "Chargers"},
                    {"name": "  "},
                ],
            }
        ],
    )

    categories = db_session.execute(select(Category).order_by(Category.id)).scalars().all()
    assert [c.name for c in categories] == ["Smartphones", "Mobile", "Electronics", "Chargers"]


def test_rerun_is_idempotent(db_session: Session, store: SqlCatalogStore):
    product = _seed_product(db_session, "Product Alpha X200")
    records = [
        {
            "title": "Product Alpha X200",
            "categories": [{"name": "Mobile Phones", "level": 1}],
            "brand": "Samsung",
        }
    ]

    first = _run(store, records)
    second = _run(store, records)

    assert first.stats.categories_created == 1
    assert first.stats.brands_created == 1
    assert first.stats.brands_assigned == 1
    assert second.stats.matched == 1
    assert second.stats.categories_created == 0
    assert second.stats.brands_created == 0
    assert second.stats.brands_assigned == 0
    assert _category_names(db_session, product.id) == ["Mobile Phones"]
    assert len(db_session.execute(select(Brand)).scalars().all()) == 1


def test_brand_matches_existing_by_similarity(db_session: Session, store: SqlCatalogStore):
    product = _seed_product(db_session, "Product Alpha X200")
    db_session.add(Brand(name="Samsung", slug="samsung"))
    db_session.commit()

    run = _run(store, [{"title": "Product Alpha X200", "categories": [], "brand": "samsung "}])

    assert run.stats.brands_created == 0
    assert run.stats.brands_assigned == 1
    assert [b.name for b in product.brands] == ["Samsung"]


def test_brand_failure_does_not_fail_record(db_session: Session):
    product = _seed_product(db_session, "Product Alpha X200")
    store = FailingBrandStore(db_session)

    run = _run(store, [{"title": "Product Alpha X200", "categories": [{"name": "Phones"}], "brand": "Samsung"}])

    assert run.stats.matched == 1
    assert run.stats.brands_assigned == 0
    assert run.stats.brands_created == 0
    assert _category_names(db_session, product.id) == ["Phones"]
    assert db_session.execute(select(Brand)).scalars().all() == []


def test_category_failure_rolls_back_record(db_session: Session):
    product = Product(user_id=USER_ID, title="Product Alpha X200")
    product.categories.append(Category(name="Old Shelf", slug="old-shelf"))
    db_session.add(product)
    db_session.commit()
    store = FailingAttachStore(db_session)

    run = _run(store, [{"title": "Product Alpha X200", "categories": [{"name": "Smartphones"}]}])

    assert run.state == RunState.COMPLETED
    assert run.stats.failed == 1
    assert run.stats.matched == 0
    assert run.stats.categories_created == 0
    assert run.results[0].status == RecordStatus.FAILED
    assert _category_names(db_session, product.id) == ["Old Shelf"]
    assert db_session.execute(select(Category).where(Category.name == "Smartphones")).first() is None
    _assert_counts_add_up(run.stats)


def test_specifications_are_merged(db_session: Session, store: SqlCatalogStore):
    product = _seed_product(db_session, "Product Alpha X200", property=[{"title": "RAM", "body": "8GB"}])

    _run(
        store,
        [
            {
                "title": "Product Alpha X200",
                "categories": [],
                "specifications": {
                    "key_specs": [
                        {"title": JUNK_SPEC_ENTRY[0], "body": JUNK_SPEC_ENTRY[1]},
                        {"title": "RAM", "body": "8GB"},
                        {"title": "CPU"},
                        {"title": "Battery", "body": "5000mAh"},
                    ],
                    "general_specs": [{"title": "Weight", "body": "180g"}],
                },
            }
        ],
    )

    assert product.property == [{"title": "RAM", "body": "8GB"}, {"title": "Battery", "body": "5000mAh"}]
    assert product.specifications == [{"title": "Weight", "body": "180g"}]


def test_dry_run_leaves_catalog_untouched(db_session: Session, store: SqlCatalogStore):
    product = _seed_product(db_session, "Product Alpha X200")

    run = _run(
        store,
        [{"title": "Product Alpha X200", "categories": [{"name": "Mobile Phones"}], "brand": "Samsung"}],
        dry_run=True,
    )

    assert run.stats.matched == 1
    assert run.stats.categories_created == 1
    assert run.stats.brands_assigned == 1
    assert db_session.execute(select(Category)).scalars().all() == []
    assert db_session.execute(select(Brand)).scalars().all() == []
    assert _category_names(db_session, product.id) == []


def test_cancel_stops_after_current_record(db_session: Session, store: SqlCatalogStore):
    _seed_product(db_session, "Product Alpha X200")
    _seed_product(db_session, "Product Beta Y300")
    run = ReconciliationRun(store, user_id=USER_ID, thresholds=MatchingThresholds())
    run.on_record = lambda result: run.cancel()

    run.run(
        [
            {"title": "Product Alpha X200", "categories": []},
            {"title": "Product Beta Y300", "categories": []},
        ]
    )

    assert run.state == RunState.CANCELLED
    assert run.stats.processed == 1


def test_unreadable_source_fails_run(store: SqlCatalogStore):
    run = ReconciliationRun(store, user_id=USER_ID)

    with pytest.raises(SourceError):
        run.run({"title": "not a list"})

    assert run.state == RunState.FAILED
    assert run.error_message


def test_run_cannot_be_restarted(store: SqlCatalogStore):
    run = _run(store, [])

    assert run.state == RunState.COMPLETED
    with pytest.raises(RuntimeError):
        run.run([])


def test_reconcile_file(db_session: Session, store: SqlCatalogStore, tmp_path):
    _seed_product(db_session, "گوشی موبایل سامسونگ مدل A54")
    path = tmp_path / "items.json"
    path.write_text(
        json.dumps(
            [{"title": "گوشی موبایل سامسونگ مدل A54", "categories": [{"name": "گوشی موبایل", "level": 2}]}],
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )

    run = reconcile_file(path, store, user_id=USER_ID)

    assert run.stats.matched == 1
    assert run.stats.categories_created == 1


def test_reconcile_missing_file(store: SqlCatalogStore, tmp_path):
    with pytest.raises(SourceError):
        reconcile_file(tmp_path / "missing.json", store, user_id=USER_ID)


def test_order_categories_is_stable():
    record = build_record(
        {
            "title": "x",
            "categories": [
                {"name": "a", "level": 1},
                {"name": "b"},
                {"name": "c", "level": 1},
                {"name": "d", "level": 2},
            ],
        }
    )

    assert [c.name for c in order_categories(record.categories)] == ["d", "a", "c", "b"]


def test_clean_spec_entries():
    entries = [
        {"title": JUNK_SPEC_ENTRY[0], "body": JUNK_SPEC_ENTRY[1]},
        {"title": "RAM"},
        {"body": "8GB"},
        {"title": "RAM", "body": "8GB", "extra": True},
    ]

    assert clean_spec_entries(entries) == [{"title": "RAM", "body": "8GB"}]


def test_run_stats_as_dict():
    stats = RunStats(processed=3, matched=2, not_found=1)

    data = stats.as_dict()

    assert data["success_rate"] == pytest.approx(0.6667)
    assert data["matched"] == 2
    assert RunStats().success_rate == 0.0


def test_lookup_failure_is_contained_to_record(db_session: Session):
    product = _seed_product(db_session, "Product Alpha X200")
    store = FlakyLookupStore(db_session, broken_title="Broken Lookup Title")

    run = _run(
        store,
        [
            {"title": "Broken Lookup Title", "categories": [{"name": "Phones"}]},
            {"title": "Product Alpha X200", "categories": [{"name": "Phones"}]},
        ],
    )

    assert run.state == RunState.COMPLETED
    assert run.stats.failed == 1
    assert run.stats.matched == 1
    assert [r.status for r in run.results] == [RecordStatus.FAILED, RecordStatus.MATCHED]
    assert "connection reset" in run.results[0].error
    assert _category_names(db_session, product.id) == ["Phones"]
    _assert_counts_add_up(run.stats)


def test_catalog_scan_failure_is_contained_to_record(db_session: Session):
    _seed_product(db_session, "Product Alpha X200")
    _seed_product(db_session, "Product Beta Y300")
    store = FlakyLookupStore(db_session, broken_scan=True)

    run = _run(
        store,
        [
            {"title": "productt alpha x-200", "categories": []},
            {"title": "Product Beta Y300", "categories": []},
        ],
    )

    assert run.state == RunState.COMPLETED
    assert run.stats.matched == 1
    assert run.stats.failed == 1
    assert run.results[1].index == 0
    assert run.results[1].status == RecordStatus.FAILED


def test_cancel_keeps_invalid_records_counted_up_front(db_session: Session, store: SqlCatalogStore):
    _seed_product(db_session, "Product Alpha X200")
    _seed_product(db_session, "Product Beta Y300")
    run = ReconciliationRun(store, user_id=USER_ID, thresholds=MatchingThresholds())

    def stop_after_first_match(result):
        if result.status == RecordStatus.MATCHED:
            run.cancel()

    run.on_record = stop_after_first_match
    run.run(
        [
            {"title": "Product Alpha X200", "categories": []},
            {"title": "Product Beta Y300", "categories": []},
            {"title": "no categories"},
        ]
    )

    assert run.state == RunState.CANCELLED
    assert run.stats.invalid == 1
    assert run.stats.matched == 1
    assert run.stats.processed == 2
    assert [r.index for r in run.results] == [2, 0]
