"""
Catalog store: the persistence boundary of the reconciliation engine.

``CatalogStore`` is the interface the engine depends on; ``SqlCatalogStore``
implements it on a SQLAlchemy session. Every SQLAlchemy failure leaves this
module as ``StoreError`` (``RaceError`` for a lost uniqueness race on insert).
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence, Union

from sqlalchemy import delete, exists, func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import ENTITY_MODELS, Brand, Category, EntityType, Product, product_brands, product_categories
from services.errors import RaceError, StoreError

logger = logging.getLogger(__name__)

CatalogEntity = Union[Category, Brand]


class CatalogStore(Protocol):
    def find_product_exact(self, user_id: int, title: str) -> Optional[Product]: ...

    def list_products(self, user_id: int, exclude_ids: Iterable[int] = ()) -> List[Product]: ...

    def find_entity_exact(self, entity_type: EntityType, name: str) -> Optional[CatalogEntity]: ...

    def list_entities(self, entity_type: EntityType) -> List[CatalogEntity]: ...

    def create_entity(
        self, entity_type: EntityType, name: str, slug: str, seo_fields: Optional[dict] = None
    ) -> CatalogEntity: ...

    def slug_exists(self, entity_type: EntityType, slug: str) -> bool: ...

    def detach_categories(self, product_id: int) -> None: ...

    def attach_categories(self, product_id: int, category_ids: Sequence[int]) -> None: ...

    def link_brand(self, product_id: int, brand_id: int) -> None: ...

    def brand_link_exists(self, product_id: int, brand_id: int) -> bool: ...

    def update_product_specs(
        self, product_id: int, property: Optional[list] = None, specifications: Optional[list] = None
    ) -> None: ...

    def transaction(self): ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except StoreError:
        raise
    except SQLAlchemyError as exc:
        raise StoreError(f"{operation} failed: {exc}") from exc


def merge_spec_entries(existing: Optional[list], new: list) -> list:
    """Append ``(title, body)`` pairs from ``new`` that ``existing`` lacks."""
    merged = [entry for entry in (existing or []) if isinstance(entry, dict)]
    seen = {(entry.get("title"), entry.get("body")) for entry in merged}

    for entry in new:
        key = (entry["title"], entry["body"])
        if key in seen:
            continue
        seen.add(key)
        merged.append({"title": entry["title"], "body": entry["body"]})

    return merged


class SqlCatalogStore:
    def __init__(self, db: Session):
        self.db = db

    def find_product_exact(self, user_id: int, title: str) -> Optional[Product]:
        with _store_errors("find_product_exact"):
            stmt = (
                select(Product)
                .where(Product.user_id == user_id, Product.title == title)
                .order_by(Product.id)
                .limit(1)
            )
            return self.db.execute(stmt).scalar_one_or_none()

    def list_products(self, user_id: int, exclude_ids: Iterable[int] = ()) -> List[Product]:
        excluded = list(exclude_ids)
        with _store_errors("list_products"):
            stmt = select(Product).where(Product.user_id == user_id)
            if excluded:
                stmt = stmt.where(Product.id.not_in(excluded))
            return list(self.db.execute(stmt.order_by(Product.id)).scalars())

    def recent_products(self, user_id: int, limit: int) -> List[Product]:
        """Newest products of ``user_id`` first, at most ``limit`` of them."""
        with _store_errors("recent_products"):
            stmt = (
                select(Product)
                .where(Product.user_id == user_id)
                .order_by(Product.id.desc())
                .limit(limit)
            )
            return list(self.db.execute(stmt).scalars())

    def count_products(self, user_id: int) -> int:
        with _store_errors("count_products"):
            stmt = select(func.count(Product.id)).where(Product.user_id == user_id)
            return self.db.execute(stmt).scalar_one()

    def find_entity_exact(self, entity_type: EntityType, name: str) -> Optional[CatalogEntity]:
        model = ENTITY_MODELS[entity_type]
        with _store_errors("find_entity_exact"):
            stmt = select(model).where(model.name == name).order_by(model.id).limit(1)
            return self.db.execute(stmt).scalar_one_or_none()

    def list_entities(self, entity_type: EntityType) -> List[CatalogEntity]:
        model = ENTITY_MODELS[entity_type]
        with _store_errors("list_entities"):
            return list(self.db.execute(select(model).order_by(model.id)).scalars())

    def slug_exists(self, entity_type: EntityType, slug: str) -> bool:
        model = ENTITY_MODELS[entity_type]
        with _store_errors("slug_exists"):
            return self.db.execute(select(exists().where(model.slug == slug))).scalar()

    def create_entity(
        self, entity_type: EntityType, name: str, slug: str, seo_fields: Optional[dict] = None
    ) -> CatalogEntity:
        model = ENTITY_MODELS[entity_type]
        entity = model(name=name, slug=slug, **(seo_fields or {}))

        try:
            with self.db.begin_nested():
                self.db.add(entity)
                self.db.flush()
        except IntegrityError as exc:
            logger.warning(f"Insert of {entity_type.value} '{name}' hit a unique constraint on '{slug}'")
            raise RaceError(entity_type.value, name, slug) from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"create_entity failed: {exc}") from exc

        logger.info(f"Created {entity_type.value} '{name}' (id={entity.id}, slug={slug})")
        return entity

    def detach_categories(self, product_id: int) -> None:
        with _store_errors("detach_categories"):
            self.db.execute(
                delete(product_categories).where(product_categories.c.product_id == product_id)
            )
            self._expire_product(product_id)

    def attach_categories(self, product_id: int, category_ids: Sequence[int]) -> None:
        if not category_ids:
            return
        with _store_errors("attach_categories"):
            self.db.execute(
                insert(product_categories),
                [{"product_id": product_id, "category_id": category_id} for category_id in category_ids],
            )
            self._expire_product(product_id)

    def brand_link_exists(self, product_id: int, brand_id: int) -> bool:
        with _store_errors("brand_link_exists"):
            stmt = select(
                exists().where(
                    product_brands.c.product_id == product_id,
                    product_brands.c.brand_id == brand_id,
                )
            )
            return self.db.execute(stmt).scalar()

    def link_brand(self, product_id: int, brand_id: int) -> None:
        with _store_errors("link_brand"):
            self.db.execute(
                insert(product_brands).values(product_id=product_id, brand_id=brand_id)
            )
            self._expire_product(product_id)

    def update_product_specs(
        self, product_id: int, property: Optional[list] = None, specifications: Optional[list] = None
    ) -> None:
        with _store_errors("update_product_specs"):
            product = self.db.get(Product, product_id)
            if product is None:
                raise StoreError(f"Product {product_id} not found")
            if property:
                product.property = merge_spec_entries(product.property, property)
            if specifications:
                product.specifications = merge_spec_entries(product.specifications, specifications)
            self.db.flush()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """SAVEPOINT scope: everything inside commits together or not at all."""
        try:
            with self.db.begin_nested():
                yield
        except SQLAlchemyError as exc:
            raise StoreError(f"transaction failed: {exc}") from exc

    def commit(self) -> None:
        with _store_errors("commit"):
            self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def _expire_product(self, product_id: int) -> None:
        product = self.db.identity_map.get(self.db.identity_key(Product, product_id))
        if product is not None:
            self.db.expire(product, ["categories", "brands"])
