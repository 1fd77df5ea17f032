from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import LocalReadError


@dataclass(frozen=True)
class RemoteObject:
    relative_path: str
    size_bytes: int = 0
    checksum_hex: str = ""
    is_directory: bool = False


@dataclass
class PendingOperation:
    local_path: str
    relative_path: str
    checksum: str = ""
    is_new_file: bool = False
    # Set when the walker already read the file to compare checksums.
    content: Optional[bytes] = field(default=None, repr=False)


class RemoteStateMap:
    """Remote objects keyed by relative path, guarded by one lock.

    While the diff walker runs, every key still present is a remote object with
    no local counterpart yet. Whatever is left afterwards is the delete set.
    """

    def __init__(self, items: Optional[Dict[str, RemoteObject]] = None):
        self._lock = threading.Lock()
        self._items: Dict[str, RemoteObject] = dict(items or {})

    def put(self, obj: RemoteObject) -> None:
        with self._lock:
            self._items[obj.relative_path] = obj

    def get(self, relative_path: str) -> Optional[RemoteObject]:
        with self._lock:
            return self._items.get(relative_path)

    def pop(self, relative_path: str) -> Optional[RemoteObject]:
        with self._lock:
            return self._items.pop(relative_path, None)

    def snapshot(self) -> List[Tuple[str, RemoteObject]]:
        with self._lock:
            return sorted(self._items.items())

    def __contains__(self, relative_path: object) -> bool:
        with self._lock:
            return relative_path in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass
class DiffPlan:
    uploads: List[PendingOperation]
    deletes: RemoteStateMap


def sha256_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def read_file_content(path: str | Path) -> Tuple[bytes, str]:
    """Read a whole file and return its content with the SHA-256 hex digest."""
    try:
        content = Path(path).read_bytes()
    except OSError as e:
        raise LocalReadError(f"local_read_failed: {path}: {e}") from e
    return content, sha256_bytes(content)


def normalize_remote_path(raw: str, zone_name: str = "") -> str:
    text = (raw or "").replace("\\", "/")
    if zone_name and text.startswith(f"/{zone_name}/"):
        text = text[len(zone_name) + 2:]
    elif zone_name and text == f"/{zone_name}":
        text = ""
    parts = [p for p in text.split("/") if p and p != "."]
    return "/".join(parts)


def join_remote_path(prefix: str, rel: str) -> str:
    prefix = normalize_remote_path(prefix)
    rel = normalize_remote_path(rel)
    if not prefix:
        return rel
    if not rel:
        return prefix
    return f"{prefix}/{rel}"
