from __future__ import annotations

import json
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from bunnysync.core.logging_setup import log_to_logging

from .errors import LocalReadError, PathError
from .metrics import SyncMetrics
from .models import DiffPlan, PendingOperation, RemoteStateMap, join_remote_path, read_file_content

DEFAULT_HASH_WORKERS = 4


@dataclass
class _LocalFile:
    full_path: str
    rel_path: str
    size: int


def validate_local_root(local_root: str | Path) -> Path:
    if not str(local_root or "").strip():
        raise PathError("local_root_missing")
    root = Path(local_root).expanduser()
    if not root.exists():
        raise PathError(f"local_root_not_found: {root}")
    if not root.is_dir():
        raise PathError(f"local_root_not_a_directory: {root}")
    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise PathError(f"local_root_unreadable: {root}: {e}") from e
    return root


class LocalDiffWalker:
    def __init__(
        self,
        size_only: bool = False,
        only_missing: bool = False,
        metrics: Optional[SyncMetrics] = None,
        hash_workers: int = DEFAULT_HASH_WORKERS,
        log_func: Optional[Callable] = None,
    ):
        self.size_only = size_only
        self.only_missing = only_missing
        self.metrics = metrics or SyncMetrics()
        self.hash_workers = max(1, int(hash_workers))
        self.log_func = log_func or log_to_logging

    def _log(self, level: str, message: str, detail: Optional[str] = None):
        self.log_func(level, "diff", message, detail)

    def _scan(self, root: Path, sync_path: str) -> Tuple[List[_LocalFile], List[str]]:
        files: List[_LocalFile] = []
        unreadable: List[str] = []

        def on_error(err: OSError):
            self.metrics.record_error(str(err.filename or root), err)
            try:
                unreadable.append(join_remote_path(sync_path, Path(err.filename).relative_to(root).as_posix()))
            except (TypeError, ValueError):
                pass
            self._log("ERROR", "walk_dir_failed", json.dumps({"path": str(err.filename), "error": str(err)}, ensure_ascii=False))

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames.sort()
            base = Path(dirpath)
            for name in sorted(filenames):
                full = base / name
                try:
                    if not full.is_file():
                        continue
                    size = full.stat().st_size
                except OSError as e:
                    # Still counted and scanned so the remote copy is matched, not deleted.
                    size = -1
                    self._log("WARNING", "stat_failed", json.dumps({"path": str(full), "error": str(e)}, ensure_ascii=False))
                rel = join_remote_path(sync_path, full.relative_to(root).as_posix())
                files.append(_LocalFile(full_path=str(full), rel_path=rel, size=size))
        return files, unreadable

    def _hash_matched(
        self, files: List[_LocalFile], remote_state: RemoteStateMap
    ) -> Dict[str, Tuple[str, Optional[LocalReadError]]]:
        if self.only_missing or self.size_only:
            return {}
        todo = [local for local in files if local.rel_path in remote_state]
        if not todo:
            return {}

        def work(local: _LocalFile):
            try:
                _content, checksum = read_file_content(local.full_path)
            except LocalReadError as e:
                return local.rel_path, ("", e)
            # Bytes are dropped here; the executor re-reads each file right before its upload.
            return local.rel_path, (checksum, None)

        # Digest work is independent per file; classification below stays in walk order.
        with ThreadPoolExecutor(max_workers=self.hash_workers, thread_name_prefix="bunnysync-hash") as pool:
            return dict(pool.map(work, todo))

    def walk(self, local_root: str | Path, sync_path: str, remote_state: RemoteStateMap) -> DiffPlan:
        root = validate_local_root(local_root)
        files, unreadable = self._scan(root, sync_path)
        hashed = self._hash_matched(files, remote_state)

        uploads: List[PendingOperation] = []
        for local in files:
            self.metrics.increment("total")
            remote = remote_state.pop(local.rel_path)

            if remote is None:
                self._log("DEBUG", "file_new", local.rel_path)
                self.metrics.increment("new_files")
                uploads.append(PendingOperation(local_path=local.full_path, relative_path=local.rel_path, is_new_file=True))
                continue

            if self.only_missing:
                self._log("DEBUG", "file_skipped_only_missing", local.rel_path)
                self.metrics.increment("skipped_files")
                continue

            if self.size_only:
                if local.size < 0:
                    self.metrics.increment("skipped_files")
                    self.metrics.record_error(local.rel_path, "local_stat_failed")
                    continue
                if local.size != remote.size_bytes:
                    self._log(
                        "DEBUG",
                        "file_size_mismatch",
                        json.dumps({"path": local.rel_path, "local": local.size, "remote": remote.size_bytes}),
                    )
                    self.metrics.increment("modified_files")
                    uploads.append(PendingOperation(local_path=local.full_path, relative_path=local.rel_path))
                else:
                    self._log("DEBUG", "file_size_match", local.rel_path)
                    self.metrics.increment("skipped_files")
                continue

            checksum, err = hashed.get(local.rel_path, ("", None))
            if err is not None:
                self._log("ERROR", "local_read_failed", json.dumps({"path": local.rel_path, "error": str(err)}, ensure_ascii=False))
                self.metrics.increment("skipped_files")
                self.metrics.record_error(local.rel_path, err)
                continue

            if checksum.lower() != remote.checksum_hex.lower():
                self._log("DEBUG", "file_checksum_mismatch", local.rel_path)
                self.metrics.increment("modified_files")
                uploads.append(
                    PendingOperation(
                        local_path=local.full_path,
                        relative_path=local.rel_path,
                        checksum=checksum,
                    )
                )
            else:
                self._log("DEBUG", "file_checksum_match", local.rel_path)
                self.metrics.increment("skipped_files")

        # Contents of unreadable directories are unknown, so their remote copies are kept.
        for prefix in unreadable:
            for path, _obj in remote_state.snapshot():
                if path.startswith(f"{prefix}/"):
                    remote_state.pop(path)
                    self._log("WARNING", "delete_guarded_unreadable_dir", path)

        self._log(
            "INFO",
            "diff_done",
            json.dumps({"local_root": str(root), "uploads": len(uploads), "delete_candidates": len(remote_state)}, ensure_ascii=False),
        )
        return DiffPlan(uploads=uploads, deletes=remote_state)
