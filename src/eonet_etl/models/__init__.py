from eonet_etl.models.base import Base
from eonet_etl.models.category import Category
from eonet_etl.models.etl_run import EtlRun, RunStatus
from eonet_etl.models.event import Event

__all__ = [
    "Base",
    "Category",
    "EtlRun",
    "Event",
    "RunStatus",
]
