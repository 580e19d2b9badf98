"""
Find-or-create resolution for named catalog entities (categories, brands).

Resolution order is exact name, then best fuzzy match above the type's
threshold, then creation with a unique slug. Creation tolerates a concurrent
writer: a unique-constraint conflict is answered by looking the entity up
again instead of failing.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from models import EntityType
from services.catalog_store import CatalogEntity, CatalogStore
from services.errors import RaceError, StoreError
from services.similarity import similarity_score
from services.slugs import unique_slug
from services.text_normalizer import normalize_text

logger = logging.getLogger(__name__)


class ResolutionOutcome(str, enum.Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass
class Resolution:
    entity: CatalogEntity
    outcome: ResolutionOutcome
    score: Optional[float] = None

    @property
    def created(self) -> bool:
        return self.outcome == ResolutionOutcome.CREATED


class CreationCounter(Protocol):
    def record_created(self, entity_type: EntityType) -> None: ...


def best_fuzzy_match(
    store: CatalogStore, entity_type: EntityType, name: str, threshold: float
) -> Tuple[Optional[CatalogEntity], float]:
    """Scan every entity of ``entity_type`` and return the best scorer above ``threshold``.

    The first entity (by store order) wins ties. The returned score is the best
    seen overall, even when nothing cleared the threshold.
    """
    normalized_name = normalize_text(name)
    best_match: Optional[CatalogEntity] = None
    best_score = 0.0
    top_score = 0.0

    for entity in store.list_entities(entity_type):
        score = similarity_score(normalized_name, normalize_text(entity.name))
        top_score = max(top_score, score)
        if score > threshold and score > best_score:
            best_match = entity
            best_score = score

    return best_match, (best_score if best_match else top_score)


def default_seo_fields(entity_type: EntityType, name: str) -> dict:
    fields = {"name_seo": name}
    if entity_type == EntityType.CATEGORY:
        fields["type"] = 0
    return fields


class EntityResolver:
    def __init__(
        self,
        store: CatalogStore,
        entity_type: EntityType,
        fuzzy_threshold: float,
        counter: Optional[CreationCounter] = None,
        create_attempts: int = 3,
    ):
        self.store = store
        self.entity_type = entity_type
        self.fuzzy_threshold = fuzzy_threshold
        self.counter = counter
        self.create_attempts = max(1, create_attempts)

    def resolve(self, name: str) -> Resolution:
        label = self.entity_type.value

        entity = self.store.find_entity_exact(self.entity_type, name)
        if entity is not None:
            logger.debug(f"{label} '{name}' found by exact name (id={entity.id})")
            return Resolution(entity, ResolutionOutcome.EXACT)

        entity, score = best_fuzzy_match(self.store, self.entity_type, name, self.fuzzy_threshold)
        if entity is not None:
            logger.info(
                f"{label} '{name}' matched '{entity.name}' by similarity {score:.1f} (id={entity.id})"
            )
            return Resolution(entity, ResolutionOutcome.FUZZY, score)

        logger.info(f"No {label} similar to '{name}' (best {score:.1f}), creating it")
        return self._create(name)

    def _create(self, name: str) -> Resolution:
        last_error: Optional[RaceError] = None

        for attempt in range(self.create_attempts):
            slug = unique_slug(name, lambda candidate: self.store.slug_exists(self.entity_type, candidate))
            try:
                entity = self.store.create_entity(
                    self.entity_type, name, slug, default_seo_fields(self.entity_type, name)
                )
            except RaceError as exc:
                last_error = exc
                existing = self.store.find_entity_exact(self.entity_type, name)
                if existing is not None:
                    logger.info(
                        f"{self.entity_type.value} '{name}' was created concurrently (id={existing.id})"
                    )
                    return Resolution(existing, ResolutionOutcome.ALREADY_EXISTS)
                logger.warning(
                    f"Slug '{slug}' taken during create of '{name}', retrying ({attempt + 1}/{self.create_attempts})"
                )
                continue

            if self.counter is not None:
                self.counter.record_created(self.entity_type)
            return Resolution(entity, ResolutionOutcome.CREATED)

        raise StoreError(
            f"Could not create {self.entity_type.value} '{name}' after {self.create_attempts} attempts"
        ) from last_error
