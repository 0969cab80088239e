"""Conversation history selection."""

from ..llm.models import LLMMessage
from ..sessions.models import ChatMessage


def select_history_pairs(
    messages: list[ChatMessage],
    limit: int,
    exclude_message_id: str | None = None,
) -> list[ChatMessage]:
    """Pick the prior turns forwarded to the provider.

    Only messages with both a human and an assistant segment are eligible;
    the most recent ``limit`` of them are returned oldest first.

    Args:
        messages: Session messages in any order
        limit: Maximum number of pairs
        exclude_message_id: Message being generated, never part of its own history

    Returns:
        Selected messages ordered by creation time
    """
    if limit <= 0:
        return []
    eligible = [
        m for m in sorted(messages, key=lambda m: m.created_at)
        if m.id != exclude_message_id and m.raw_human and m.raw_ai
    ]
    return eligible[-limit:]


def history_to_messages(pairs: list[ChatMessage]) -> list[LLMMessage]:
    """Expand selected turns into alternating user/assistant messages."""
    history: list[LLMMessage] = []
    for message in pairs:
        history.append(LLMMessage(role="user", content=message.raw_human))
        history.append(LLMMessage(role="assistant", content=message.raw_ai or ""))
    return history
