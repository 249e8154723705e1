import logging
from collections.abc import Sequence

from relay_api.errors import BudgetConfigurationError, LimitExceeded
from relay_api.tokenizer import Tokenizer
from shared.constants import ROLE_SYSTEM
from shared.schemas import ChatMessage

logger = logging.getLogger(__name__)


def trim_messages(
    tokenizer: Tokenizer,
    system_prompt: str,
    history: Sequence[ChatMessage],
    model_id: str,
    total_token_limit: int,
    reserved_completion_tokens: int,
) -> list[ChatMessage]:
    """Fit ``history`` behind ``system_prompt`` into the model's token budget.

    Messages are dropped oldest first. The system prompt and the most recent
    message are always kept; content is never shortened. The returned list
    starts with the system prompt followed by the retained suffix of
    ``history`` in its original order.

    Raises ``BudgetConfigurationError`` when the system prompt alone does not
    fit, and ``LimitExceeded`` when the most recent message cannot fit even
    with every older message dropped.
    """
    if any(message.role == ROLE_SYSTEM for message in history):
        raise ValueError("history must not contain system messages")

    budget = total_token_limit - reserved_completion_tokens
    system_message = ChatMessage(role=ROLE_SYSTEM, content=system_prompt)
    base_tokens = tokenizer.count_conversation_tokens([system_message], model_id)
    if budget < 0 or base_tokens > budget:
        raise BudgetConfigurationError(budget=budget, required=base_tokens)

    costs = [tokenizer.count_message_tokens(message, model_id) for message in history]
    total = base_tokens + sum(costs)
    start = 0
    while total > budget and start < len(history) - 1:
        total -= costs[start]
        start += 1

    if total > budget:
        raise LimitExceeded(limit=budget, requested=total)

    if start:
        logger.info(
            "trimmed conversation dropped=%s kept=%s tokens=%s budget=%s",
            start,
            len(history) - start,
            total,
            budget,
        )
    return [system_message, *history[start:]]
