import threading
import time
from collections.abc import Callable

DEFAULT_DEBOUNCE_SECONDS = 1.0


class CancelToken:
    """Cooperative stop signal for one streaming request.

    While no stream is attached, a cancellation only counts while it is
    younger than ``debounce_seconds``, so a late stop click cannot leak into
    a request started afterwards. Once a stream attaches, a cancellation is
    latched until the stream sees it.
    """

    def __init__(
        self,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._debounce_seconds = debounce_seconds
        self._clock = clock
        self._cancelled_at: float | None = None
        self._attached = False

    def _expired(self) -> bool:
        return (
            self._cancelled_at is not None
            and self._clock() - self._cancelled_at >= self._debounce_seconds
        )

    def attach(self) -> None:
        if self._expired():
            self._cancelled_at = None
        self._attached = True

    def detach(self) -> None:
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def cancel(self) -> None:
        self._cancelled_at = self._clock()

    def reset(self) -> None:
        self._cancelled_at = None

    @property
    def cancelled(self) -> bool:
        if self._cancelled_at is None:
            return False
        if not self._attached and self._expired():
            self._cancelled_at = None
            return False
        return True


class CancelRegistry:
    """In-flight cancel tokens keyed by request id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[str, CancelToken] = {}

    def register(self, request_id: str, token: CancelToken) -> None:
        with self._lock:
            self._tokens[request_id] = token

    def discard(self, request_id: str, token: CancelToken) -> None:
        with self._lock:
            if self._tokens.get(request_id) is token:
                del self._tokens[request_id]

    def cancel(self, request_id: str) -> bool:
        with self._lock:
            token = self._tokens.get(request_id)
        if token is None:
            return False
        token.cancel()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
