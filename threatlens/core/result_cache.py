import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class ResultCache:
    """
    Time-expiring memo of analysis results.

    get() only returns entries younger than `expiry` seconds. Once the cache
    grows past `sweep_threshold` entries, every expired entry is dropped on
    the next set(). A single lock guards all access since FastAPI runs sync
    endpoints on a thread pool.
    """

    def __init__(self, expiry: float, sweep_threshold: int, clock: Callable[[], float] = time.time):
        self.expiry = expiry
        self.sweep_threshold = sweep_threshold
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            result, stored_at = entry
            if self._clock() - stored_at >= self.expiry:
                return None
            return result

    def set(self, key: str, result: Any) -> None:
        with self._lock:
            self._entries[key] = (result, self._clock())
            if len(self._entries) > self.sweep_threshold:
                self._sweep_locked()

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at >= self.expiry]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
