"""Building requests for, and decoding frames from, the upstream completion API.

Two API flavors are supported. The flavor is picked once from settings and
bundles everything that differs between them: the endpoint URL, the
authentication headers and the decoding of streamed event frames.
"""

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from relay_api.errors import AuthError, GenericProviderError, RelayConfigurationError
from relay_api.privacy import trim_for_privacy
from relay_api.request_id import get_request_id_header
from relay_api.settings import Settings
from relay_api.tokenizer import Tokenizer
from shared.schemas import ChatMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpstreamFlavor:
    name: str
    build_url: Callable[[Settings, str], str]
    build_headers: Callable[[Settings, str], dict[str, str]]
    decode_frame: Callable[[str], str | None]
    # Azure selects the model through the deployment in the URL.
    sends_model: bool = True


@dataclass(frozen=True)
class UpstreamRequest:
    url: str
    headers: dict[str, str]
    payload: dict
    flavor: UpstreamFlavor


def _load_chunk(data: str) -> dict | None:
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("skipping malformed stream frame")
        return None
    return chunk if isinstance(chunk, dict) else None


def _raise_for_error_frame(chunk: dict) -> None:
    err = chunk.get("error")
    if err is None:
        return
    message = err.get("message") if isinstance(err, dict) else None
    raise GenericProviderError(message or "upstream reported an error mid-stream")


def _first_choice(chunk: dict) -> dict | None:
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, dict) else None


def _delta_text(choice: dict) -> str | None:
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    text = delta.get("content")
    if isinstance(text, str) and text:
        return text
    return None


def _openai_url(settings: Settings, model_id: str) -> str:
    return f"{settings.openai_api_host}/v1/chat/completions"


def _openai_headers(settings: Settings, api_key: str) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if settings.openai_organization:
        headers["OpenAI-Organization"] = settings.openai_organization
    return headers


def _decode_openai_frame(data: str) -> str | None:
    chunk = _load_chunk(data)
    if chunk is None:
        return None
    _raise_for_error_frame(chunk)
    choice = _first_choice(chunk)
    if choice is None:
        return None
    return _delta_text(choice)


def _azure_url(settings: Settings, model_id: str) -> str:
    deployment = settings.azure_deployment_id or model_id
    return (
        f"{settings.openai_api_host}/openai/deployments/{deployment}/chat/completions"
        f"?api-version={settings.openai_api_version}"
    )


def _azure_headers(settings: Settings, api_key: str) -> dict[str, str]:
    return {
        "api-key": api_key,
        "Content-Type": "application/json",
    }


def _decode_azure_frame(data: str) -> str | None:
    # Azure opens the stream with a prompt_filter_results frame that has no choices.
    chunk = _load_chunk(data)
    if chunk is None:
        return None
    _raise_for_error_frame(chunk)
    choice = _first_choice(chunk)
    if choice is None:
        return None
    if choice.get("finish_reason") == "content_filter":
        raise GenericProviderError("completion was stopped by the content filter")
    return _delta_text(choice)


OPENAI = UpstreamFlavor(
    name="openai",
    build_url=_openai_url,
    build_headers=_openai_headers,
    decode_frame=_decode_openai_frame,
)
AZURE = UpstreamFlavor(
    name="azure",
    build_url=_azure_url,
    build_headers=_azure_headers,
    decode_frame=_decode_azure_frame,
    sends_model=False,
)
FLAVORS = {flavor.name: flavor for flavor in (OPENAI, AZURE)}


def get_flavor(name: str) -> UpstreamFlavor:
    try:
        return FLAVORS[name]
    except KeyError:
        raise RelayConfigurationError(f"unsupported upstream flavor: {name!r}") from None


def build_upstream_request(
    settings: Settings,
    tokenizer: Tokenizer,
    messages: Sequence[ChatMessage],
    model_id: str,
    temperature: float | None,
    api_key: str | None,
) -> UpstreamRequest:
    key = api_key or settings.openai_api_key
    if not key:
        raise AuthError("missing API key")

    flavor = get_flavor(settings.openai_api_type)
    temperature_to_use = temperature or settings.default_temperature

    headers = flavor.build_headers(settings, key)
    headers.update(get_request_id_header())
    payload = {
        "messages": [{"role": m.role, "content": m.content} for m in messages],
        "max_tokens": settings.openai_api_max_tokens,
        "temperature": temperature_to_use,
        "stream": True,
    }
    if flavor.sends_model:
        payload["model"] = model_id

    last = messages[-1]
    logger.info(
        "upstream request flavor=%s model=%s messages=%s tokens=%s temperature=%s "
        "last_message_chars=%s preview=%r",
        flavor.name,
        model_id,
        len(messages),
        tokenizer.count_conversation_tokens(messages, model_id),
        temperature_to_use,
        len(last.content),
        trim_for_privacy(last.content, settings.privacy_preview_chars),
    )
    return UpstreamRequest(
        url=flavor.build_url(settings, model_id),
        headers=headers,
        payload=payload,
        flavor=flavor,
    )
