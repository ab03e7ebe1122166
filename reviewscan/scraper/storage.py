from __future__ import annotations

"""Key-value storage tiers.

Two tiers back the session store:

- ``MemoryTier``: the fast tier. In-process, synchronous, lost when the
  process (or the browser it drives) goes away.
- ``SqliteTier``: the durable tier. Survives restarts; writes are routed
  through ``BackgroundWriter`` by the session store.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, Dict, List, Optional, Protocol

from . import config, db
from .error_codes import ErrorCode
from .logging_utils import _scraper_event

WriteFn = Callable[[], None]


class KeyValueTier(Protocol):
    name: str

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryTier:
    """Thread-safe in-process dictionary."""

    name = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SqliteTier:
    """Durable tier stored in the ``kv_store`` table."""

    name = "sqlite"

    def __init__(self) -> None:
        db.initialize_schema()

    def get(self, key: str) -> Optional[str]:
        return db.kv_get(key)

    def set(self, key: str, value: str) -> None:
        db.kv_set(key, value)

    def remove(self, key: str) -> None:
        db.kv_delete(key)


class BackgroundWriter:
    """
    Best-effort writer for durable-tier updates.

    - A single worker keeps writes in submission order.
    - Failures are logged, never raised to the caller.
    - With ``ENABLE_BACKGROUND_WRITES`` off, writes run inline.
    """

    def __init__(self, enabled: Optional[bool] = None) -> None:
        use_thread = config.ENABLE_BACKGROUND_WRITES if enabled is None else enabled
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="durable-writer")
            if use_thread
            else None
        )
        self._lock = Lock()
        self._pending: List[Future] = []
        self._failures: int = 0

    def _run(self, label: str, fn: WriteFn) -> None:
        try:
            fn()
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self._failures += 1
            _scraper_event(
                "error",
                phase="storage",
                step="durable_write",
                error_code=ErrorCode.DURABLE_TIER_WRITE,
                label=label,
                error=str(exc),
            )

    def submit(self, label: str, fn: WriteFn) -> None:
        """Run ``fn`` inline or queue it on the worker thread."""

        if self._executor is None:
            self._run(label, fn)
            return

        future = self._executor.submit(self._run, label, fn)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every queued write has finished."""

        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.result(timeout=timeout)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)


__all__ = ["KeyValueTier", "MemoryTier", "SqliteTier", "BackgroundWriter"]
