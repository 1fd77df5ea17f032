from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from bunnysync.core.config import AppConfig
from bunnysync.core.logging_setup import log_to_logging

from .diff_walker import LocalDiffWalker, validate_local_root
from .errors import SyncError
from .executor import ConcurrentExecutor
from .metrics import SyncMetrics, sync_succeeded
from .models import normalize_remote_path
from .remote_fetcher import RemoteStateFetcher


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class SyncEngine:
    """One-way sync of a local directory into a storage zone.

    `client` is the storage transport (`list`, `upload`, `delete`); see
    `bunnysync.providers.bunny.BunnyStorageClient`.
    """

    def __init__(self, cfg: AppConfig | dict, client, log_func: Optional[Callable] = None):
        self.cfg = cfg if isinstance(cfg, AppConfig) else AppConfig.model_validate(cfg)
        self.client = client
        self.log_func = log_func or log_to_logging

        sync_cfg = self.cfg.sync
        self.zone_name = self.cfg.storage.zone_name
        self.local_root = sync_cfg.local_root
        self.sync_path = normalize_remote_path(sync_cfg.sync_path)
        self.dry_run = sync_cfg.dry_run
        self.size_only = sync_cfg.size_only
        self.only_missing = sync_cfg.only_missing
        self.delete_remote = sync_cfg.delete_remote
        self.concurrency = sync_cfg.concurrency
        self.fetch_workers = sync_cfg.fetch_workers
        self.fetch_timeout_sec = sync_cfg.fetch_timeout_sec

    def _log(self, level: str, message: str, detail: Optional[str] = None):
        self.log_func(level, "sync", message, detail)

    def _base_summary(self, local_root: str) -> Dict[str, Any]:
        return {
            "local_root": local_root,
            "zone_name": self.zone_name,
            "sync_path": self.sync_path,
            "dry_run": self.dry_run,
            "size_only": self.size_only,
            "only_missing": self.only_missing,
            "delete_remote": self.delete_remote,
            "started_at": now_iso(),
            "finished_at": None,
            "total": 0,
            "new": 0,
            "modified": 0,
            "deleted": 0,
            "skipped": 0,
            "errors": 0,
            "delete_candidates": 0,
            "uploads_scheduled": 0,
            "ok": False,
        }

    @staticmethod
    def _fill_counts(summary: Dict[str, Any], metrics: SyncMetrics) -> None:
        counts = metrics.snapshot()
        summary["total"] = counts["total"]
        summary["new"] = counts["new_files"]
        summary["modified"] = counts["modified_files"]
        summary["deleted"] = counts["deleted_files"]
        summary["skipped"] = counts["skipped_files"]
        summary["errors"] = counts["errors"]
        failed = metrics.failed_items()
        if failed:
            summary["failed_items"] = [{"path": path, "error": err} for path, err in failed]

    def sync(self, local_root: Optional[str] = None, summary: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run the whole reconciliation and return the summary.

        Fatal errors (bad local root, failed or timed-out remote listing) are
        raised as-is with `phase` set; `summary`, when passed, still holds the
        counts reached before the abort.
        """
        root_text = str(local_root if local_root is not None else self.local_root)
        if summary is None:
            summary = self._base_summary(root_text)
        metrics = SyncMetrics()
        phase = "validate"
        try:
            root = validate_local_root(root_text)
            summary["local_root"] = str(root)

            phase = "fetch"
            fetcher = RemoteStateFetcher(
                self.client,
                zone_name=self.zone_name,
                workers=self.fetch_workers,
                timeout_sec=self.fetch_timeout_sec,
                log_func=self.log_func,
            )
            remote_state = fetcher.fetch(self.sync_path)

            phase = "walk"
            walker = LocalDiffWalker(
                size_only=self.size_only,
                only_missing=self.only_missing,
                metrics=metrics,
                hash_workers=self.concurrency,
                log_func=self.log_func,
            )
            plan = walker.walk(root, self.sync_path, remote_state)
            summary["uploads_scheduled"] = len(plan.uploads)
            summary["delete_candidates"] = len(plan.deletes)

            phase = "execute"
            executor = ConcurrentExecutor(
                self.client,
                concurrency=self.concurrency,
                dry_run=self.dry_run,
                metrics=metrics,
                log_func=self.log_func,
            )
            executor.run(plan.uploads, plan.deletes, delete_remote=self.delete_remote)
        except SyncError as e:
            if e.phase is None:
                e.phase = phase
            raise
        finally:
            self._fill_counts(summary, metrics)
            summary["finished_at"] = now_iso()

        summary["ok"] = sync_succeeded(summary)
        return summary

    def run_once(self, local_root: Optional[str] = None) -> Dict[str, Any]:
        root_text = str(local_root if local_root is not None else self.local_root)
        summary = self._base_summary(root_text)
        try:
            self.sync(root_text, summary=summary)
        except SyncError as e:
            summary["fatal_error"] = str(e)
            summary["phase"] = e.phase
            summary["ok"] = False
            self._log("ERROR", "run_failed", json.dumps(summary, ensure_ascii=False))
            return summary

        level = "INFO" if summary["ok"] else "WARNING"
        self._log(level, "run_success" if summary["ok"] else "run_finished_with_errors", json.dumps(summary, ensure_ascii=False))
        return summary
