import json

import httpx

from relay_api.tokenizer import Tokenizer


class WhitespaceEncoding:
    """One token per whitespace-separated word; avoids loading a BPE vocabulary."""

    def encode_ordinary(self, text: str) -> list[str]:
        return text.split()


def fake_tokenizer() -> Tokenizer:
    return Tokenizer(WhitespaceEncoding())


def words(count: int, word: str = "w") -> str:
    return " ".join([word] * count)


def delta_chunk(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}, "finish_reason": None}]}


def sse_frame(chunk) -> bytes:
    data = chunk if isinstance(chunk, str) else json.dumps(chunk)
    return f"data: {data}\n\n".encode()


def sse_body(*texts: str, done: bool = True) -> bytes:
    body = sse_frame({"choices": [{"index": 0, "delta": {"role": "assistant"}}]})
    body += b"".join(sse_frame(delta_chunk(text)) for text in texts)
    if done:
        body += sse_frame("[DONE]")
    return body


def openai_error(message: str, code: str | None = None, **extra) -> dict:
    error = {"message": message, "type": "invalid_request_error", "code": code}
    error.update(extra)
    return {"error": error}


def mock_client_factory(handler):
    def factory(timeout):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout)

    return factory
