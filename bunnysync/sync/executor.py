from __future__ import annotations

import json
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from bunnysync.core.content_type import detect_content_type
from bunnysync.core.logging_setup import log_to_logging

from .metrics import SyncMetrics
from .models import PendingOperation, RemoteObject, RemoteStateMap, read_file_content, sha256_bytes

DEFAULT_CONCURRENCY = 5


class ConcurrentExecutor:
    """Runs uploads and deletes with at most `concurrency` transport calls in flight.

    Individual failures are logged and counted in the metrics; `run` never
    raises for them and returns only once every unit has finished.
    """

    def __init__(
        self,
        client,
        concurrency: int = DEFAULT_CONCURRENCY,
        dry_run: bool = False,
        metrics: Optional[SyncMetrics] = None,
        log_func: Optional[Callable] = None,
    ):
        if int(concurrency) < 1:
            raise ValueError("concurrency_must_be_positive")
        self.client = client
        self.concurrency = int(concurrency)
        self.dry_run = dry_run
        self.metrics = metrics or SyncMetrics()
        self.log_func = log_func or log_to_logging
        self._gate = threading.BoundedSemaphore(self.concurrency)

    def _log(self, level: str, message: str, detail: Optional[str] = None):
        self.log_func(level, "executor", message, detail)

    def run(self, uploads: List[PendingOperation], deletes: RemoteStateMap, delete_remote: bool = True) -> None:
        delete_items = [obj for _path, obj in deletes.snapshot()]
        if not delete_remote and delete_items:
            self._log(
                "INFO",
                "delete_disabled",
                json.dumps({"delete_candidates": len(delete_items)}, ensure_ascii=False),
            )
            for obj in delete_items:
                self._log("INFO", "remote_only_kept", obj.relative_path)
            delete_items = []

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="bunnysync-exec") as pool:
            futures = []
            for op in uploads:
                futures.append(self._submit(pool, self._upload_one, op))
            for obj in delete_items:
                futures.append(self._submit(pool, self._delete_one, obj))
            wait(futures)

    def _submit(self, pool: ThreadPoolExecutor, unit: Callable, item):
        # Blocks the coordinator until a slot frees up, so no backlog builds in the pool queue.
        self._gate.acquire()
        try:
            return pool.submit(self._guarded, unit, item)
        except BaseException:
            self._gate.release()
            raise

    def _guarded(self, unit: Callable, item) -> None:
        try:
            unit(item)
        finally:
            self._gate.release()

    def _upload_one(self, op: PendingOperation) -> None:
        try:
            content = op.content
            if content is None:
                content, checksum = read_file_content(op.local_path)
                op.checksum = checksum
            elif not op.checksum:
                op.checksum = sha256_bytes(content)
            content_type = detect_content_type(op.relative_path)

            self._log(
                "INFO",
                "upload_file_dry_run" if self.dry_run else "upload_file",
                json.dumps(
                    {
                        "path": op.relative_path,
                        "new": op.is_new_file,
                        "size": len(content),
                        "checksum": op.checksum,
                        "content_type": content_type,
                    },
                    ensure_ascii=False,
                ),
            )
            if not self.dry_run:
                self.client.upload(op.relative_path, content, op.checksum, content_type=content_type)
        except Exception as e:
            self.metrics.record_error(op.relative_path, e)
            self._log("ERROR", "upload_failed", json.dumps({"path": op.relative_path, "error": str(e)}, ensure_ascii=False))
        finally:
            op.content = None

    def _delete_one(self, obj: RemoteObject) -> None:
        if obj.is_directory:
            self._log("DEBUG", "delete_skipped_directory", obj.relative_path)
            return
        try:
            self._log("INFO", "delete_file_dry_run" if self.dry_run else "delete_file", obj.relative_path)
            if not self.dry_run:
                self.client.delete(obj.relative_path)
            self.metrics.increment("deleted_files")
        except Exception as e:
            self.metrics.record_error(obj.relative_path, e)
            self._log("ERROR", "delete_failed", json.dumps({"path": obj.relative_path, "error": str(e)}, ensure_ascii=False))
