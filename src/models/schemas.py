from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class CategoryRef(BaseModel):
    name: Optional[str] = None
    level: Optional[int] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_as_text(cls, value):
        return value if isinstance(value, str) else None

    @field_validator("level", mode="before")
    @classmethod
    def _level_as_int(cls, value):
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value)
        return None


class Specifications(BaseModel):
    key_specs: List[Dict[str, Any]] = Field(default_factory=list)
    general_specs: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("key_specs", "general_specs", mode="before")
    @classmethod
    def _drop_non_lists(cls, value):
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]


class InputRecord(BaseModel):
    """One externally sourced product record."""

    model_config = {"frozen": True}

    title: str
    categories: List[CategoryRef]
    brand: Optional[str] = None
    specifications: Optional[Specifications] = None

    @field_validator("categories", mode="before")
    @classmethod
    def _keep_category_objects(cls, value):
        if not isinstance(value, list):
            raise ValueError("categories must be a list")
        return [entry for entry in value if isinstance(entry, dict)]

    @field_validator("brand", mode="before")
    @classmethod
    def _brand_as_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return None

    @field_validator("specifications", mode="before")
    @classmethod
    def _specifications_as_mapping(cls, value):
        if isinstance(value, dict):
            return value
        return None

    @property
    def brand_name(self) -> Optional[str]:
        if self.brand is None:
            return None
        stripped = self.brand.strip()
        return stripped or None


class RunStatsResponse(BaseModel):
    processed: int
    matched: int
    not_found: int
    invalid: int
    failed: int
    categories_created: int
    brands_created: int
    brands_assigned: int
    success_rate: float
    processed_products_count: int


class RecordResultResponse(BaseModel):
    index: int
    title: Optional[str]
    status: str
    product_id: Optional[int] = None
    phase: Optional[str] = None
    error: Optional[str] = None


class ReconciliationRequest(BaseModel):
    records: List[Any]
    user_id: Optional[int] = Field(default=None, description="Catalog owner; defaults to settings.default_user_id")
    dry_run: bool = False


class ReconciliationResponse(BaseModel):
    status: str
    user_id: int
    dry_run: bool
    stats: RunStatsResponse
    results: List[RecordResultResponse]


class ProductResponse(BaseModel):
    id: int
    user_id: int
    title: str
    created_at: datetime

    model_config = {"from_attributes": True}


class EntityResponse(BaseModel):
    id: int
    name: str
    slug: str
    created_at: datetime

    model_config = {"from_attributes": True}


class SimilarityResponse(BaseModel):
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


class EntityPreviewResponse(BaseModel):
    entity_type: str
    name: str
    threshold: float
    exact: bool
    match: Optional[EntityResponse] = None
    score: float
