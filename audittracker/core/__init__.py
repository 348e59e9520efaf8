from .errors import (
    AmbiguousSelector,
    AuditTrackerError,
    FunctionNotFound,
    InvalidTransition,
    PathNotFound,
    PathOutsideWorkspace,
    PersistedStateInvalid,
    PersistenceWriteFailure,
)
from .models import (
    STATE_VERSION,
    DailyProgressEntry,
    FunctionFilters,
    FunctionRecord,
    FunctionStatus,
    FunctionTag,
    ProgressAction,
    ProgressActionType,
    RootState,
    TrackedFile,
    create_default_state,
    make_function_id,
)
from .normalize import normalize_state
from .reconcile import reconcile_functions
from .scope import ScopeSet
from .store import StateStore

__all__ = [
    "STATE_VERSION",
    "AmbiguousSelector",
    "AuditTrackerError",
    "DailyProgressEntry",
    "FunctionFilters",
    "FunctionNotFound",
    "FunctionRecord",
    "FunctionStatus",
    "FunctionTag",
    "InvalidTransition",
    "PathNotFound",
    "PathOutsideWorkspace",
    "PersistedStateInvalid",
    "PersistenceWriteFailure",
    "ProgressAction",
    "ProgressActionType",
    "RootState",
    "ScopeSet",
    "StateStore",
    "TrackedFile",
    "create_default_state",
    "make_function_id",
    "normalize_state",
    "reconcile_functions",
]
