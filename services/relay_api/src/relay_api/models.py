from dataclasses import dataclass
from types import MappingProxyType

from relay_api.errors import UnknownModelError
from shared.constants import MODEL_GPT_3_5, MODEL_GPT_3_5_16K, MODEL_GPT_4, MODEL_GPT_4_32K


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    name: str
    token_limit: int
    # Role delimiter tokens added around every message.
    tokens_per_message: int = 3
    # Tokens priming the assistant reply, counted once per conversation.
    reply_priming_tokens: int = 3

    def __post_init__(self) -> None:
        if self.token_limit <= 0:
            raise ValueError(f"token_limit must be positive for {self.id}")


MODELS = MappingProxyType(
    {
        MODEL_GPT_3_5: ModelDescriptor(
            id=MODEL_GPT_3_5, name="GPT-3.5", token_limit=4096, tokens_per_message=4
        ),
        MODEL_GPT_3_5_16K: ModelDescriptor(
            id=MODEL_GPT_3_5_16K, name="GPT-3.5 16K", token_limit=16384
        ),
        MODEL_GPT_4: ModelDescriptor(id=MODEL_GPT_4, name="GPT-4", token_limit=8192),
        MODEL_GPT_4_32K: ModelDescriptor(id=MODEL_GPT_4_32K, name="GPT-4 32K", token_limit=32768),
    }
)


def get_model(model_id: str, catalog=MODELS) -> ModelDescriptor:
    try:
        return catalog[model_id]
    except KeyError:
        raise UnknownModelError(model_id) from None
