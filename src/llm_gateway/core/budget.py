"""
Token budgeting.

Keeps the encoded conversation inside a model's context window by
dropping the oldest history first, then shortening the system prompt and
the user prompt down to fixed floors. Counts are estimates: tiktoken is
used when it can encode, and a characters-per-token heuristic otherwise.
"""

import logging
import math
from typing import List, NamedTuple, Optional, Sequence

import tiktoken

from ..models.request import Message
from .errors import BudgetExhausted

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

# Token encoding cache
_encodings: dict = {}


def get_encoding(model: str) -> tiktoken.Encoding:
    """Get or create tiktoken encoding for a model."""
    if model not in _encodings:
        try:
            _encodings[model] = tiktoken.encoding_for_model(model)
        except KeyError:
            # Fall back to cl100k_base for unknown models
            _encodings[model] = tiktoken.get_encoding("cl100k_base")
    return _encodings[model]


class TiktokenEstimator:
    """
    Message-aware estimate using tiktoken.

    Follows the OpenAI chat accounting: a fixed overhead per message plus
    the encoded role and content, plus reply priming.
    """

    tokens_per_message = 4
    reply_priming = 3

    def __init__(self, model: str = "gpt-4o"):
        self.model = model

    def count(self, messages: Sequence[Message]) -> int:
        encoding = get_encoding(self.model)
        total = 0
        for message in messages:
            total += self.tokens_per_message
            total += len(encoding.encode(message.role))
            total += len(encoding.encode(message.content))
        return total + self.reply_priming


class CharacterEstimator:
    """Total characters divided by four, rounded up. Approximate only."""

    def count(self, messages: Sequence[Message]) -> int:
        chars = sum(len(m.content) for m in messages)
        return math.ceil(chars / CHARS_PER_TOKEN)


class Adjusted(NamedTuple):
    system: str
    history: List[Message]
    prompt: str
    tokens: int
    exhausted: bool


class TokenBudgeter:
    """
    Trims system prompt, history and prompt to fit a context window.
    """

    def __init__(
        self,
        estimator=None,
        fallback=None,
        response_reserve: int = 50,
        system_floor: int = 100,
        prompt_floor: int = 100,
    ):
        """
        Initialize the budgeter.

        Args:
            estimator: Primary estimator, tiktoken based by default
            fallback: Used whenever the primary estimator raises
            response_reserve: Tokens kept free for the answer
            system_floor: System prompt is never cut below this many characters
            prompt_floor: Prompt is never cut below this many characters
        """
        self.estimator = estimator or TiktokenEstimator()
        self.fallback = fallback or CharacterEstimator()
        self.response_reserve = response_reserve
        self.system_floor = system_floor
        self.prompt_floor = prompt_floor

    def estimate(self, system: str, history: Sequence[Message], prompt: str) -> int:
        messages = _as_messages(system, history, prompt)
        try:
            return self.estimator.count(messages)
        except Exception as e:
            logger.warning(f"Token estimator failed, using character estimate: {e}")
            return self.fallback.count(messages)

    def adjust(
        self,
        system: str,
        history: Sequence[Message],
        prompt: str,
        context_window: int,
    ) -> Adjusted:
        """
        Fit the conversation into ``context_window - response_reserve``.

        History is only ever removed from the oldest end, and the order of
        what remains is unchanged. Never raises: when the target cannot be
        met the best-effort result is returned with ``exhausted`` set.
        """
        target = context_window - self.response_reserve
        history = list(history)
        tokens = self.estimate(system, history, prompt)

        dropped = 0
        while tokens > target and history:
            history.pop(0)
            dropped += 1
            tokens = self.estimate(system, history, prompt)
        if dropped:
            logger.info(f"Dropped {dropped} history messages to fit {target} tokens")

        while tokens > target and len(system) > self.system_floor:
            cut = min(math.ceil((tokens - target) * CHARS_PER_TOKEN), len(system) - self.system_floor)
            system = system[:len(system) - cut]
            tokens = self.estimate(system, history, prompt)

        while tokens > target and len(prompt) > self.prompt_floor:
            cut = min(math.ceil((tokens - target) * CHARS_PER_TOKEN), len(prompt) - self.prompt_floor)
            prompt = prompt[:len(prompt) - cut]
            tokens = self.estimate(system, history, prompt)

        exhausted = tokens > target
        if exhausted:
            logger.warning(BudgetExhausted(tokens, target).message)

        return Adjusted(system, history, prompt, tokens, exhausted)

    def completion_budget(self, context_window: int, tokens: int, minimum: int = 100) -> int:
        """Tokens left for the answer once the input is counted."""
        return max(minimum, context_window - tokens - 10)


def _as_messages(system: str, history: Sequence[Message], prompt: str) -> List[Message]:
    messages = []
    if system:
        messages.append(Message(role="system", content=system))
    messages.extend(history)
    messages.append(Message(role="user", content=prompt))
    return messages
