from .engine import SyncEngine
from .errors import DeleteError, FetchError, FetchTimeout, LocalReadError, PathError, SyncError, UploadError
from .metrics import SyncMetrics, exit_code_for, sync_succeeded
from .models import PendingOperation, RemoteObject, RemoteStateMap

__all__ = [
    "DeleteError",
    "FetchError",
    "FetchTimeout",
    "LocalReadError",
    "PathError",
    "PendingOperation",
    "RemoteObject",
    "RemoteStateMap",
    "SyncEngine",
    "SyncError",
    "SyncMetrics",
    "UploadError",
    "exit_code_for",
    "sync_succeeded",
]
