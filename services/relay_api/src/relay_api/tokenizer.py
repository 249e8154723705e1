"""Token accounting for chat conversations.

Counts follow the chat-completion framing: every message costs its role
and content tokens plus a fixed per-message overhead, and the conversation
as a whole pays a fixed overhead priming the assistant reply. Overheads
depend on the model family and come from the model catalog.
"""

from collections.abc import Iterable, Mapping
from functools import lru_cache

import tiktoken

from relay_api.models import MODELS, ModelDescriptor, get_model
from shared.schemas import ChatMessage

ENCODING_NAME = "cl100k_base"


class Tokenizer:
    def __init__(self, encoding, catalog: Mapping[str, ModelDescriptor] = MODELS) -> None:
        self._encoding = encoding
        self._catalog = catalog

    def model(self, model_id: str) -> ModelDescriptor:
        return get_model(model_id, self._catalog)

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        # Special-token markers in user text are counted as plain text.
        return len(self._encoding.encode_ordinary(text))

    def count_message_tokens(self, message: ChatMessage, model_id: str) -> int:
        descriptor = self.model(model_id)
        return (
            descriptor.tokens_per_message
            + self.count_tokens(message.role)
            + self.count_tokens(message.content)
        )

    def count_conversation_tokens(self, messages: Iterable[ChatMessage], model_id: str) -> int:
        descriptor = self.model(model_id)
        total = descriptor.reply_priming_tokens
        for message in messages:
            total += self.count_message_tokens(message, model_id)
        return total


@lru_cache
def get_tokenizer() -> Tokenizer:
    return Tokenizer(tiktoken.get_encoding(ENCODING_NAME))
