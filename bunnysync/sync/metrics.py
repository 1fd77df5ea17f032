from __future__ import annotations

import threading
from typing import Any, Dict, List, Tuple

COUNTERS = ("total", "new_files", "modified_files", "deleted_files", "skipped_files", "errors")

# Failed items kept in the summary; the error counter is never capped.
MAX_FAILED_ITEMS = 50


class SyncMetrics:
    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in COUNTERS}
        self._failed: List[Tuple[str, str]] = []

    def increment(self, name: str, n: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"unknown_counter: {name}")
        with self._lock:
            self._counts[name] += n

    def record_error(self, item: str, error: BaseException | str) -> None:
        with self._lock:
            self._counts["errors"] += 1
            if len(self._failed) < MAX_FAILED_ITEMS:
                self._failed.append((item, str(error)))

    def failed_items(self) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._failed)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


def sync_succeeded(summary: Dict[str, Any]) -> bool:
    """Pass/fail for a whole run, decided only from its summary.

    Any per-item error fails the run even when everything else went through.
    """
    if summary.get("fatal_error"):
        return False
    return int(summary.get("errors", 0) or 0) == 0


def exit_code_for(summary: Dict[str, Any]) -> int:
    return 0 if sync_succeeded(summary) else 2
