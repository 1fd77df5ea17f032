import hashlib
import threading
import time
from pathlib import Path

import pytest

from bunnysync.sync import DeleteError, PendingOperation, RemoteObject, RemoteStateMap, SyncMetrics, UploadError
from bunnysync.sync.executor import ConcurrentExecutor


class _FakeClient:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.uploaded: dict[str, tuple[bytes, str, str | None]] = {}
        self.deleted: list[str] = []
        self.fail_paths: set[str] = set()
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def _enter(self):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _leave(self):
        with self._lock:
            self.in_flight -= 1

    def upload(self, path: str, content: bytes, checksum: str = "", content_type: str | None = None):
        self._enter()
        try:
            time.sleep(self.delay)
            if path in self.fail_paths:
                raise UploadError(f"upload_failed_status_500: {path}")
            with self._lock:
                self.uploaded[path] = (content, checksum, content_type)
        finally:
            self._leave()

    def delete(self, path: str):
        self._enter()
        try:
            time.sleep(self.delay)
            if path in self.fail_paths:
                raise DeleteError(f"delete_failed_status_404: {path}")
            with self._lock:
                self.deleted.append(path)
        finally:
            self._leave()


def _executor(client, **kwargs) -> ConcurrentExecutor:
    kwargs.setdefault("metrics", SyncMetrics())
    return ConcurrentExecutor(client, log_func=lambda *_: None, **kwargs)


def _ops(root: Path, files: dict[str, str]) -> list[PendingOperation]:
    ops = []
    for rel, text in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        ops.append(PendingOperation(local_path=str(p), relative_path=rel, is_new_file=True))
    return ops


def _deletes(*paths: str, directories: tuple[str, ...] = ()) -> RemoteStateMap:
    state = RemoteStateMap()
    for p in paths:
        state.put(RemoteObject(relative_path=p, size_bytes=1, checksum_hex="aa"))
    for p in directories:
        state.put(RemoteObject(relative_path=p, is_directory=True))
    return state


def test_run_uploads_with_checksum_and_content_type_then_deletes(tmp_path: Path):
    client = _FakeClient()
    executor = _executor(client)

    executor.run(_ops(tmp_path, {"index.html": "<html></html>", "data.unknownext": "x"}), _deletes("old.txt"))

    content, checksum, content_type = client.uploaded["index.html"]
    assert content == b"<html></html>"
    assert checksum == hashlib.sha256(b"<html></html>").hexdigest()
    assert content_type == "text/html"
    assert client.uploaded["data.unknownext"][2] == "application/octet-stream"
    assert client.deleted == ["old.txt"]
    assert executor.metrics.snapshot()["deleted_files"] == 1
    assert executor.metrics.snapshot()["errors"] == 0


def test_run_uses_content_already_read_without_touching_disk(tmp_path: Path):
    client = _FakeClient()
    op = PendingOperation(
        local_path=str(tmp_path / "does-not-exist.txt"),
        relative_path="a.txt",
        checksum="cafe",
        content=b"cached",
    )

    _executor(client).run([op], RemoteStateMap())

    assert client.uploaded["a.txt"][0] == b"cached"
    assert client.uploaded["a.txt"][1] == "cafe"


def test_dry_run_makes_no_transport_calls_but_keeps_metrics(tmp_path: Path):
    client = _FakeClient()
    ops = _ops(tmp_path, {"a.txt": "a"})
    executor = _executor(client, dry_run=True)

    executor.run(ops, _deletes("old.txt"))

    assert client.uploaded == {}
    assert client.deleted == []
    assert ops[0].checksum == hashlib.sha256(b"a").hexdigest()
    assert executor.metrics.snapshot()["deleted_files"] == 1


def test_failures_are_isolated_and_counted(tmp_path: Path):
    client = _FakeClient()
    client.fail_paths.update({"b.txt", "gone.txt"})
    ops = _ops(tmp_path, {"a.txt": "a", "b.txt": "b", "c.txt": "c"})
    ops.append(PendingOperation(local_path=str(tmp_path / "vanished.txt"), relative_path="vanished.txt", is_new_file=True))
    executor = _executor(client)

    executor.run(ops, _deletes("gone.txt", "old.txt"))

    assert sorted(client.uploaded) == ["a.txt", "c.txt"]
    assert client.deleted == ["old.txt"]
    counts = executor.metrics.snapshot()
    assert counts["errors"] == 3
    assert counts["deleted_files"] == 1
    failed = dict(executor.metrics.failed_items())
    assert "local_read_failed" in failed["vanished.txt"]


def test_in_flight_operations_never_exceed_concurrency(tmp_path: Path):
    client = _FakeClient(delay=0.02)
    ops = _ops(tmp_path, {f"f{i}.txt": str(i) for i in range(20)})

    _executor(client, concurrency=3).run(ops, _deletes(*[f"old{i}.txt" for i in range(10)]))

    assert len(client.uploaded) == 20
    assert len(client.deleted) == 10
    assert 1 <= client.max_in_flight <= 3


def test_directory_entries_are_never_deleted():
    client = _FakeClient()
    executor = _executor(client)

    executor.run([], _deletes("a.txt", directories=("assets",)))

    assert client.deleted == ["a.txt"]
    assert executor.metrics.snapshot()["deleted_files"] == 1


def test_delete_disabled_leaves_remote_untouched():
    client = _FakeClient()
    executor = _executor(client)

    executor.run([], _deletes("a.txt", "b.txt"), delete_remote=False)

    assert client.deleted == []
    assert executor.metrics.snapshot()["deleted_files"] == 0


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        ConcurrentExecutor(_FakeClient(), concurrency=0)
