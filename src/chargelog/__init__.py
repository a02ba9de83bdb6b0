"""chargelog - Async client-side state layer for logging vehicle charging visits."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("chargelog")
except PackageNotFoundError:
    __version__ = "0+local"
from chargelog.client import ChargeLogClient
from chargelog.config import TrackerConfig
from chargelog.controller import Notice, NoticeLevel, TrackerController
from chargelog.directory import LocationDirectory
from chargelog.exceptions import (
    AuthProviderError,
    ChargelogConfigError,
    ChargelogError,
    InvalidFormatError,
    NotAuthenticatedError,
    RecordNotFoundError,
    StoreUnavailableError,
    TrackerValidationError,
)
from chargelog.models import (
    ChargingLocation,
    ExportSnapshot,
    Identity,
    UserProfile,
    Vehicle,
    VehicleInput,
    Visit,
    VisitInput,
)
from chargelog.projections import MapMarker, RouteProjection, VisitStats, compute_stats, project_route
from chargelog.session import SessionChange, SessionManager
from chargelog.store import ListResult, RecordKind, RemoteStore
from chargelog.tracker import LoadStatus, TrackerState
from chargelog.transfer import ImportExportEngine, ImportReport, ImportStrategy

__all__ = [
    "__version__",
    "AuthProviderError",
    "ChargeLogClient",
    "ChargelogConfigError",
    "ChargelogError",
    "ChargingLocation",
    "ExportSnapshot",
    "Identity",
    "ImportExportEngine",
    "ImportReport",
    "ImportStrategy",
    "InvalidFormatError",
    "ListResult",
    "LoadStatus",
    "LocationDirectory",
    "MapMarker",
    "NotAuthenticatedError",
    "Notice",
    "NoticeLevel",
    "RecordKind",
    "RecordNotFoundError",
    "RemoteStore",
    "RouteProjection",
    "SessionChange",
    "SessionManager",
    "StoreUnavailableError",
    "TrackerConfig",
    "TrackerController",
    "TrackerState",
    "TrackerValidationError",
    "UserProfile",
    "Vehicle",
    "VehicleInput",
    "Visit",
    "VisitInput",
    "VisitStats",
    "compute_stats",
    "project_route",
]
