from .entity_resolver import EntityResolver, Resolution, ResolutionOutcome
from .errors import RaceError, ReconciliationError, RecordInvalid, SourceError, StoreError
from .product_matcher import ProcessedSet, ProductMatch, ProductMatcher
from .reconciliation import ReconciliationRun, RunState, RunStats, reconcile_file
from .similarity import similarity_score
from .text_normalizer import normalize_text

__all__ = [
    "EntityResolver",
    "ProcessedSet",
    "ProductMatch",
    "ProductMatcher",
    "RaceError",
    "ReconciliationError",
    "ReconciliationRun",
    "RecordInvalid",
    "Resolution",
    "ResolutionOutcome",
    "RunState",
    "RunStats",
    "SourceError",
    "StoreError",
    "normalize_text",
    "reconcile_file",
    "similarity_score",
]
