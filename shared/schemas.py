from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ChatBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(..., min_length=1)
    api_key: str = Field(default="", alias="apiKey")
    model_id: str = Field(..., alias="modelId")
    prompt: str | None = None
    temperature: float | None = None

    @field_validator("messages")
    @classmethod
    def _no_system_messages(cls, value: list[ChatMessage]) -> list[ChatMessage]:
        if any(message.role == "system" for message in value):
            raise ValueError("system messages are set through 'prompt'")
        return value


class CancelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(..., alias="requestId", min_length=1)
