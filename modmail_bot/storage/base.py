from __future__ import annotations

import abc
from typing import Optional

from ..models import MessageLink, Snippet


class TopicRepository(abc.ABC):
    """Maps forum topics to their names; the only record of which cases exist."""

    @abc.abstractmethod
    async def upsert_topic(self, chat_id: int, thread_id: int, name: str) -> None:
        ...

    @abc.abstractmethod
    async def get_topic_name(self, chat_id: int, thread_id: int) -> Optional[str]:
        ...

    @abc.abstractmethod
    async def find_thread_by_name(self, chat_id: int, name: str) -> Optional[int]:
        ...


class SnippetRepository(abc.ABC):
    @abc.abstractmethod
    async def list_snippets(self) -> list[Snippet]:
        ...

    @abc.abstractmethod
    async def get_snippet(self, name: str) -> Optional[Snippet]:
        ...

    @abc.abstractmethod
    async def create_snippet(self, snippet: Snippet) -> bool:
        """Return ``False`` when a snippet with the same name already exists."""

    @abc.abstractmethod
    async def update_snippet(self, name: str, content: str) -> bool:
        ...

    @abc.abstractmethod
    async def delete_snippet(self, name: str) -> bool:
        ...


class BlocklistRepository(abc.ABC):
    @abc.abstractmethod
    async def is_blocked(self, user_id: int) -> bool:
        ...

    @abc.abstractmethod
    async def block(self, user_id: int, blocked_by: int) -> None:
        ...

    @abc.abstractmethod
    async def unblock(self, user_id: int) -> None:
        ...


class MessageLinkRepository(abc.ABC):
    """Remembers where each forwarded user message was posted so edits can follow it."""

    @abc.abstractmethod
    async def save_link(self, link: MessageLink) -> None:
        ...

    @abc.abstractmethod
    async def get_link(self, user_id: int, user_message_id: int) -> Optional[MessageLink]:
        ...


class StorageGateway(
    TopicRepository, SnippetRepository, BlocklistRepository, MessageLinkRepository, abc.ABC
):
    """Combined repository interface for convenience."""

    @abc.abstractmethod
    async def connect(self) -> None:
        ...

    @abc.abstractmethod
    async def disconnect(self) -> None:
        ...
