"""
Collaborator interfaces: conversation persistence and object storage.

The gateway only talks to these abstractions. The in-memory versions are
enough for tests and single-process use.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models.request import Message

logger = logging.getLogger(__name__)


@dataclass
class ConversationHistory:
    """Recent messages of a conversation and its latest context."""
    messages: List[Message] = field(default_factory=list)
    context: Optional[Dict[str, Any]] = None


class ConversationStore(ABC):
    """Persists conversation messages and their context."""

    @abstractmethod
    async def get_history(self, conversation_id: str, limit: Optional[int] = None) -> ConversationHistory:
        """
        Load a conversation.

        Args:
            conversation_id: Conversation to load
            limit: Return at most this many of the newest messages

        Returns:
            Messages oldest first and the context stored with the last one
        """
        pass

    @abstractmethod
    async def append(
        self,
        conversation_id: str,
        message: Message,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Append a message. ``metadata`` may carry ``context`` and ``tool_results``.
        """
        pass


class ObjectStorage(ABC):
    """Stores binary artifacts produced during a turn."""

    @abstractmethod
    async def store(self, data: bytes, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Store bytes.

        Returns:
            URL of the stored object
        """
        pass


class InMemoryConversationStore(ConversationStore):

    def __init__(self):
        self._messages: Dict[str, List[Message]] = {}
        self._metadata: Dict[str, List[Dict[str, Any]]] = {}

    async def get_history(self, conversation_id: str, limit: Optional[int] = None) -> ConversationHistory:
        messages = self._messages.get(conversation_id, [])
        metadata = self._metadata.get(conversation_id, [])

        context = None
        for meta in reversed(metadata):
            if meta.get("context") is not None:
                context = dict(meta["context"])
                break

        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return ConversationHistory(messages=list(messages), context=context)

    async def append(
        self,
        conversation_id: str,
        message: Message,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._messages.setdefault(conversation_id, []).append(message)
        self._metadata.setdefault(conversation_id, []).append(dict(metadata or {}))
        logger.debug(f"Stored {message.role} message in {conversation_id}")


class InMemoryObjectStorage(ObjectStorage):
    """Content-addressed in-memory storage with ``memory://`` URLs."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.metadata: Dict[str, Dict[str, Any]] = {}

    async def store(self, data: bytes, metadata: Optional[Dict[str, Any]] = None) -> str:
        key = hashlib.sha256(data).hexdigest()
        self.objects[key] = data
        self.metadata[key] = dict(metadata or {})
        return f"memory://{key}"
