import logging
from collections.abc import AsyncIterator
from enum import Enum

import httpx

from relay_api.cancellation import CancelToken
from relay_api.classifier import (
    DEFAULT_RETRY_AFTER_SECONDS,
    classify_response,
    classify_transport_error,
)
from relay_api.errors import UpstreamError
from relay_api.upstream import UpstreamRequest

DONE_SENTINEL = "[DONE]"

logger = logging.getLogger(__name__)


class RelayState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({RelayState.COMPLETED, RelayState.FAILED, RelayState.CANCELLED})


def _make_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)


def _frame_data(line: str) -> str | None:
    # Only "data:" fields carry payload; comments, event names and blank lines are framing.
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


class CompletionStream:
    """One streaming completion call against the upstream API.

    ``open`` sends the request and classifies a failed response before any
    output is produced. ``deltas`` then yields text fragments in arrival
    order until the upstream finishes, fails, or the cancel token fires.
    """

    def __init__(
        self,
        request: UpstreamRequest,
        cancel_token: CancelToken | None = None,
        timeout: float = 30,
        retry_after_fallback_seconds: int = DEFAULT_RETRY_AFTER_SECONDS,
    ) -> None:
        self._request = request
        self._cancel_token = cancel_token or CancelToken()
        self._timeout = timeout
        self._retry_after_fallback_seconds = retry_after_fallback_seconds
        self._client: httpx.AsyncClient | None = None
        self._response: httpx.Response | None = None
        self._reading = False
        self.state = RelayState.IDLE
        self.error: UpstreamError | None = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    async def _fail(self, error: UpstreamError) -> UpstreamError:
        self.error = error
        self.state = RelayState.FAILED
        await self.aclose()
        return error

    async def open(self) -> None:
        if self.state is RelayState.FAILED and self.error is not None:
            raise self.error
        if self.state is not RelayState.IDLE:
            return

        self.state = RelayState.CONNECTING
        self._cancel_token.attach()
        self._client = _make_client(self._timeout)
        try:
            upstream = self._client.build_request(
                "POST",
                self._request.url,
                json=self._request.payload,
                headers=self._request.headers,
            )
            response = await self._client.send(upstream, stream=True)
        except httpx.HTTPError as exc:
            logger.warning("upstream connection failed: %s", exc.__class__.__name__)
            raise await self._fail(classify_transport_error(exc)) from exc
        except BaseException:
            # Includes task cancellation while waiting for headers.
            self.state = RelayState.FAILED
            await self.aclose()
            raise

        self._response = response
        if not response.is_success:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            error = classify_response(
                response.status_code,
                response.headers,
                body,
                self._retry_after_fallback_seconds,
            )
            logger.warning(
                "upstream error status=%s error_type=%s", response.status_code, error.error_type
            )
            raise await self._fail(error)

        if self._cancel_token.cancelled:
            logger.info("completion stream cancelled while connecting")
            self.state = RelayState.CANCELLED
            await self.aclose()
            return

        self.state = RelayState.STREAMING

    async def deltas(self) -> AsyncIterator[str]:
        if self.done:
            return
        if self.state is not RelayState.STREAMING:
            raise RuntimeError("completion stream is not open")
        if self._reading:
            raise RuntimeError("completion stream can only be consumed once")
        self._reading = True

        decode_frame = self._request.flavor.decode_frame
        try:
            async for line in self._response.aiter_lines():
                if self._cancel_token.cancelled:
                    self.state = RelayState.CANCELLED
                    logger.info("completion stream cancelled by caller")
                    return
                data = _frame_data(line)
                if data is None:
                    continue
                if data == DONE_SENTINEL:
                    self.state = RelayState.COMPLETED
                    return
                delta = decode_frame(data)
                if delta is not None:
                    yield delta
            self.state = RelayState.COMPLETED
        except UpstreamError as exc:
            self.error = exc
            self.state = RelayState.FAILED
            raise
        except httpx.HTTPError as exc:
            logger.warning("upstream stream interrupted: %s", exc.__class__.__name__)
            self.error = classify_transport_error(exc)
            self.state = RelayState.FAILED
            raise self.error from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        response, client = self._response, self._client
        self._response = None
        self._client = None
        self._cancel_token.detach()
        if not self.done and self.state is not RelayState.IDLE:
            self.state = RelayState.CANCELLED
        if response is not None:
            await response.aclose()
        if client is not None:
            await client.aclose()


async def open_completion_stream(
    request: UpstreamRequest,
    cancel_token: CancelToken | None = None,
    timeout: float = 30,
    retry_after_fallback_seconds: int = DEFAULT_RETRY_AFTER_SECONDS,
) -> CompletionStream:
    stream = CompletionStream(
        request,
        cancel_token=cancel_token,
        timeout=timeout,
        retry_after_fallback_seconds=retry_after_fallback_seconds,
    )
    await stream.open()
    return stream
