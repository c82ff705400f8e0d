from .batch_writer import BatchWriter
from .calculator import compute_update
from .cursor_service import fetch_ids_after
from .office_service import OfficeCacheBuilder
from .rate_service import RateCacheBuilder
from .recompute_service import RecomputeScheduler, TableRecomputeService
from .record_service import RecordPrefetcher

__all__ = [
    "BatchWriter",
    "compute_update",
    "fetch_ids_after",
    "OfficeCacheBuilder",
    "RateCacheBuilder",
    "RecomputeScheduler",
    "TableRecomputeService",
    "RecordPrefetcher"
]
