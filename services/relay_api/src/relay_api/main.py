import logging

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from relay_api.cancellation import CancelRegistry, CancelToken
from relay_api.errors import RelayConfigurationError, UnexpectedFailure, UpstreamError
from relay_api.logging_config import configure_logging
from relay_api.relay import open_completion_stream
from relay_api.request_id import REQUEST_ID_HEADER, get_request_id, new_request_id, set_request_id
from relay_api.settings import get_settings
from relay_api.tokenizer import get_tokenizer
from relay_api.trimmer import trim_messages
from relay_api.upstream import build_upstream_request
from shared.schemas import CancelRequest, ChatBody

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Chat Relay API")
cancel_registry = CancelRegistry()


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
    set_request_id(request_id)
    if settings.app_env.lower() == "prod":
        if request.url.path in ("/docs", "/openapi.json"):
            return JSONResponse(status_code=404, content={"detail": "not found"})
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _error_response(exc: UpstreamError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/chat")
async def chat(payload: ChatBody):
    request_id = get_request_id()
    cancel_token = CancelToken(settings.cancel_debounce_seconds)
    cancel_registry.register(request_id, cancel_token)
    try:
        tokenizer = get_tokenizer()
        model = tokenizer.model(payload.model_id)
        prompt = payload.prompt or settings.default_system_prompt
        messages = trim_messages(
            tokenizer,
            prompt,
            payload.messages,
            payload.model_id,
            model.token_limit,
            settings.openai_api_max_tokens,
        )
        upstream_request = build_upstream_request(
            settings,
            tokenizer,
            messages,
            payload.model_id,
            payload.temperature,
            payload.api_key,
        )
        stream = await open_completion_stream(
            upstream_request,
            cancel_token,
            timeout=settings.openai_timeout_seconds,
            retry_after_fallback_seconds=settings.retry_after_fallback_seconds,
        )
    except UpstreamError as exc:
        cancel_registry.discard(request_id, cancel_token)
        logger.warning("chat rejected error_type=%s status=%s", exc.error_type, exc.status_code)
        return _error_response(exc)
    except RelayConfigurationError as exc:
        cancel_registry.discard(request_id, cancel_token)
        logger.error("relay configuration error: %s", exc)
        return _error_response(UnexpectedFailure(str(exc)))
    except Exception as exc:
        cancel_registry.discard(request_id, cancel_token)
        logger.exception("unexpected error while starting chat")
        return _error_response(UnexpectedFailure(str(exc) or "Unknown error"))
    except BaseException:
        cancel_registry.discard(request_id, cancel_token)
        raise

    async def relay_deltas():
        try:
            async for delta in stream.deltas():
                yield delta
        except UpstreamError as exc:
            logger.warning("chat stream aborted error_type=%s", exc.error_type)
        finally:
            cancel_registry.discard(request_id, cancel_token)
            await stream.aclose()
            logger.info("chat stream finished state=%s", stream.state.value)

    return StreamingResponse(relay_deltas(), media_type="text/plain; charset=utf-8")


@app.post("/api/chat/cancel")
async def cancel_chat(payload: CancelRequest):
    if not cancel_registry.cancel(payload.request_id):
        raise HTTPException(status_code=404, detail="no in-flight request with this id")
    logger.info("chat cancel requested target_request_id=%s", payload.request_id)
    return Response(status_code=204)
