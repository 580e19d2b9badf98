from models.database import Base, SessionLocal, build_engine, get_db, init_db
from models.domain import (
    ENTITY_MODELS,
    Brand,
    Category,
    EntityType,
    Product,
    product_brands,
    product_categories,
)

__all__ = [
    "Base",
    "SessionLocal",
    "build_engine",
    "get_db",
    "init_db",
    "ENTITY_MODELS",
    "EntityType",
    "Brand",
    "Category",
    "Product",
    "product_brands",
    "product_categories",
]
