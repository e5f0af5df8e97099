from concurrent.futures import Future
from threading import Lock
from typing import Callable, Dict, Generic, TypeVar

T = TypeVar("T")


class InFlightRequests(Generic[T]):
    """Share one in-flight call per key between concurrent callers.

    The first caller for a key runs ``fn``; callers arriving before it
    finishes wait for and receive the same result (or exception). Nothing is
    cached once the call completes.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._pending: Dict[str, "Future[T]"] = {}

    def run(self, key: str, fn: Callable[[], T]) -> T:
        with self._lock:
            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future
        if not owner:
            return future.result()
        try:
            result = fn()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._pending.pop(key, None)

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)


__all__ = ["InFlightRequests"]
