"""Model capabilities and the input token guard."""

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import TokenLimitExceededError
from .message import ImageUrlPart, Message

logger = logging.getLogger("parley.model")

# Rough token estimation: 1 token ≈ 4 chars for English, ≈ 3 chars for CJK
CHARS_PER_TOKEN = 3.5

# Per-message overhead (role, formatting)
MESSAGE_OVERHEAD_TOKENS = 4

# Flat cost charged per attached image; providers bill tiles, this is a floor
IMAGE_TOKENS = 85


def estimate_tokens(text: str) -> int:
    """Rough token count estimation."""
    return int(len(text) / CHARS_PER_TOKEN)


def estimate_messages_tokens(messages: list[Message]) -> int:
    """Estimate total tokens for a list of messages."""
    total = 0
    for msg in messages:
        total += estimate_tokens(msg.text())
        if isinstance(msg.content, list):
            total += IMAGE_TOKENS * sum(1 for p in msg.content if isinstance(p, ImageUrlPart))
        total += MESSAGE_OVERHEAD_TOKENS
    return total


@dataclass(frozen=True)
class Model:
    name: str
    supports_vision: bool = True
    no_stream: bool = False
    no_system_message: bool = False
    max_input_tokens: Optional[int] = None

    def guard_max_input_tokens(self, messages: list[Message]) -> None:
        """Raise TokenLimitExceededError if the estimate is over `max_input_tokens`."""
        if not self.max_input_tokens:
            return
        estimated = estimate_messages_tokens(messages)
        if estimated > self.max_input_tokens:
            logger.warning(f"{self.name}: {estimated} estimated tokens over limit {self.max_input_tokens}")
            raise TokenLimitExceededError(estimated, self.max_input_tokens)
