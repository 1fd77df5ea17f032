from __future__ import annotations

import json
import queue
import threading
from typing import Callable, Optional, Set

from bunnysync.core.logging_setup import log_to_logging

from .errors import FetchError, FetchTimeout
from .models import RemoteObject, RemoteStateMap, normalize_remote_path

DEFAULT_FETCH_WORKERS = 8
DEFAULT_FETCH_TIMEOUT_SEC = 600

_STOP = object()


class _FetchRun:
    """Book-keeping shared by the listing workers of one fetch."""

    def __init__(self):
        self.queue: "queue.Queue[object]" = queue.Queue()
        self.state = RemoteStateMap()
        self.lock = threading.Lock()
        self.pending = 0
        self.visited: Set[str] = set()
        self.error: Optional[BaseException] = None
        self.done = threading.Event()

    def enqueue(self, prefix: str) -> bool:
        with self.lock:
            if self.done.is_set() or prefix in self.visited:
                return False
            self.visited.add(prefix)
            self.pending += 1
        self.queue.put(prefix)
        return True

    def complete_one(self) -> None:
        with self.lock:
            self.pending -= 1
            if self.pending <= 0:
                self.done.set()

    def fail(self, error: BaseException) -> None:
        with self.lock:
            if self.error is None:
                self.error = error
            self.done.set()


class RemoteStateFetcher:
    def __init__(
        self,
        client,
        zone_name: str = "",
        workers: int = DEFAULT_FETCH_WORKERS,
        timeout_sec: float = DEFAULT_FETCH_TIMEOUT_SEC,
        log_func: Optional[Callable] = None,
    ):
        self.client = client
        self.zone_name = zone_name or ""
        self.workers = max(1, int(workers))
        self.timeout_sec = float(timeout_sec)
        self.log_func = log_func or log_to_logging

    def _log(self, level: str, message: str, detail: Optional[str] = None):
        self.log_func(level, "fetch", message, detail)

    def fetch(self, root_prefix: str = "") -> RemoteStateMap:
        """List every object under `root_prefix` (empty = zone root).

        All-or-nothing: the first listing failure raises FetchError and the
        objects gathered so far are dropped.
        """
        run = _FetchRun()
        root = normalize_remote_path(root_prefix)
        run.enqueue(root)

        threads = [
            threading.Thread(target=self._worker, args=(run,), name=f"bunnysync-fetch-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for t in threads:
            t.start()

        finished = run.done.wait(self.timeout_sec)
        if not finished:
            # Stalled transports keep their thread; the daemon flag lets the process exit anyway.
            run.fail(FetchTimeout(f"fetch_timeout: exceeded {self.timeout_sec:g}s listing '{root or '/'}'"))
        for _ in threads:
            run.queue.put(_STOP)

        if run.error is not None:
            if isinstance(run.error, (FetchError, FetchTimeout)):
                raise run.error
            raise FetchError(f"list_failed: {run.error}") from run.error

        self._log(
            "INFO",
            "fetch_done",
            json.dumps({"root": root, "objects": len(run.state), "listed_dirs": len(run.visited)}, ensure_ascii=False),
        )
        return run.state

    def _worker(self, run: _FetchRun) -> None:
        while True:
            prefix = run.queue.get()
            if prefix is _STOP:
                return
            if run.done.is_set():
                # Aborted: drain without listing.
                continue
            try:
                self._list_prefix(run, str(prefix))
            except Exception as e:
                self._log("ERROR", "list_failed", json.dumps({"prefix": prefix, "error": str(e)}, ensure_ascii=False))
                run.fail(e)
            finally:
                run.complete_one()

    def _list_prefix(self, run: _FetchRun, prefix: str) -> None:
        self._log("DEBUG", "list_prefix", prefix or "/")
        entries = self.client.list(prefix)
        for entry in entries:
            rel = normalize_remote_path(f"{entry.path}/{entry.object_name}", self.zone_name)
            if not rel:
                continue
            if entry.is_directory:
                run.enqueue(rel)
                continue
            run.state.put(
                RemoteObject(
                    relative_path=rel,
                    size_bytes=max(0, int(entry.length or 0)),
                    checksum_hex=(entry.checksum or "").lower(),
                    is_directory=False,
                )
            )
