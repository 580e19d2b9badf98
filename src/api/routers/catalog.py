from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from config import settings
from models import EntityType, get_db
from models.schemas import EntityPreviewResponse, EntityResponse, ProductResponse, SimilarityResponse
from services.catalog_store import SqlCatalogStore
from services.diagnostics import compare_texts, preview_entity
from services.thresholds import MatchingThresholds

router = APIRouter()


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    user_id: Optional[int] = Query(None, description="Catalog owner; defaults to the configured user"),
    limit: int = Query(20, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[ProductResponse]:
    owner = user_id if user_id is not None else settings.default_user_id
    products = SqlCatalogStore(db).recent_products(owner, limit)
    return [ProductResponse.model_validate(p) for p in products]


@router.get("/categories", response_model=List[EntityResponse])
async def list_categories(db: Session = Depends(get_db)) -> List[EntityResponse]:
    categories = SqlCatalogStore(db).list_entities(EntityType.CATEGORY)
    return [EntityResponse.model_validate(c) for c in sorted(categories, key=lambda c: c.name)]


@router.get("/brands", response_model=List[EntityResponse])
async def list_brands(db: Session = Depends(get_db)) -> List[EntityResponse]:
    brands = SqlCatalogStore(db).list_entities(EntityType.BRAND)
    return [EntityResponse.model_validate(b) for b in sorted(brands, key=lambda b: b.name)]


@router.get("/similarity", response_model=SimilarityResponse)
async def similarity(
    a: str = Query(..., min_length=1),
    b: str = Query(..., min_length=1),
) -> SimilarityResponse:
    comparison = compare_texts(a, b, MatchingThresholds.from_settings())
    return SimilarityResponse(**comparison.__dict__)


@router.get("/entities/preview", response_model=EntityPreviewResponse)
async def preview(
    name: str = Query(..., min_length=1),
    entity_type: str = Query("category", description="category or brand"),
    db: Session = Depends(get_db),
) -> EntityPreviewResponse:
    try:
        kind = EntityType(entity_type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown entity type '{entity_type}'")

    result = preview_entity(SqlCatalogStore(db), kind, name, MatchingThresholds.from_settings())
    return EntityPreviewResponse(
        entity_type=result.entity_type.value,
        name=result.name,
        threshold=result.threshold,
        exact=result.exact,
        match=EntityResponse.model_validate(result.match) if result.match is not None else None,
        score=result.score,
    )
