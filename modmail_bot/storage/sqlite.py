from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite
import structlog

from ..models import MessageLink, Snippet
from .base import StorageGateway

logger = structlog.get_logger(__name__)


CREATE_TOPICS = """
CREATE TABLE IF NOT EXISTS forum_topics (
    chat_id INTEGER NOT NULL,
    thread_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (chat_id, thread_id)
)
"""


CREATE_TOPICS_NAME_INDEX = """
CREATE INDEX IF NOT EXISTS forum_topics_name ON forum_topics (chat_id, name)
"""


CREATE_SNIPPETS = """
CREATE TABLE IF NOT EXISTS snippets (
    name TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    created_by INTEGER NOT NULL,
    created_at TEXT NOT NULL
)
"""


CREATE_BLOCKED = """
CREATE TABLE IF NOT EXISTS blocked_users (
    user_id INTEGER PRIMARY KEY,
    blocked_by INTEGER NOT NULL,
    blocked_at TEXT NOT NULL
)
"""


CREATE_MESSAGE_LINKS = """
CREATE TABLE IF NOT EXISTS message_links (
    user_id INTEGER NOT NULL,
    user_message_id INTEGER NOT NULL,
    chat_id INTEGER NOT NULL,
    thread_id INTEGER,
    message_id INTEGER NOT NULL,
    has_attachment INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, user_message_id)
)
"""


class SQLiteStorage(StorageGateway):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        self._conn = await aiosqlite.connect(self._path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute(CREATE_TOPICS)
        await self._conn.execute(CREATE_TOPICS_NAME_INDEX)
        await self._conn.execute(CREATE_SNIPPETS)
        await self._conn.execute(CREATE_BLOCKED)
        await self._conn.execute(CREATE_MESSAGE_LINKS)
        await self._conn.commit()
        logger.info("sqlite_connected", path=str(self._path))

    async def disconnect(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def upsert_topic(self, chat_id: int, thread_id: int, name: str) -> None:
        assert self._conn
        await self._conn.execute(
            """
            INSERT INTO forum_topics (chat_id, thread_id, name, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(chat_id, thread_id) DO UPDATE SET
                name=excluded.name,
                updated_at=excluded.updated_at
            """,
            (chat_id, thread_id, name, _now()),
        )
        await self._conn.commit()
        logger.info("sqlite_upsert_topic", chat_id=chat_id, thread_id=thread_id, name=name)

    async def get_topic_name(self, chat_id: int, thread_id: int) -> Optional[str]:
        assert self._conn
        cursor = await self._conn.execute(
            "SELECT name FROM forum_topics WHERE chat_id = ? AND thread_id = ?",
            (chat_id, thread_id),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row["name"] if row else None

    async def find_thread_by_name(self, chat_id: int, name: str) -> Optional[int]:
        assert self._conn
        cursor = await self._conn.execute(
            """
            SELECT thread_id FROM forum_topics
            WHERE chat_id = ? AND name = ?
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            (chat_id, name),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row["thread_id"] if row else None

    async def list_snippets(self) -> list[Snippet]:
        assert self._conn
        cursor = await self._conn.execute("SELECT * FROM snippets ORDER BY name")
        rows = await cursor.fetchall()
        await cursor.close()
        return [_snippet_from_row(row) for row in rows]

    async def get_snippet(self, name: str) -> Optional[Snippet]:
        assert self._conn
        cursor = await self._conn.execute("SELECT * FROM snippets WHERE name = ?", (name,))
        row = await cursor.fetchone()
        await cursor.close()
        return _snippet_from_row(row) if row else None

    async def create_snippet(self, snippet: Snippet) -> bool:
        assert self._conn
        cursor = await self._conn.execute(
            """
            INSERT INTO snippets (name, content, created_by, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(name) DO NOTHING
            """,
            (snippet.name, snippet.content, snippet.created_by, snippet.created_at.isoformat()),
        )
        created = cursor.rowcount > 0
        await cursor.close()
        await self._conn.commit()
        logger.info("sqlite_create_snippet", name=snippet.name, created=created)
        return created

    async def update_snippet(self, name: str, content: str) -> bool:
        assert self._conn
        cursor = await self._conn.execute(
            "UPDATE snippets SET content = ? WHERE name = ?",
            (content, name),
        )
        updated = cursor.rowcount > 0
        await cursor.close()
        await self._conn.commit()
        logger.info("sqlite_update_snippet", name=name, updated=updated)
        return updated

    async def delete_snippet(self, name: str) -> bool:
        assert self._conn
        cursor = await self._conn.execute("DELETE FROM snippets WHERE name = ?", (name,))
        deleted = cursor.rowcount > 0
        await cursor.close()
        await self._conn.commit()
        logger.info("sqlite_delete_snippet", name=name, deleted=deleted)
        return deleted

    async def is_blocked(self, user_id: int) -> bool:
        assert self._conn
        cursor = await self._conn.execute(
            "SELECT 1 FROM blocked_users WHERE user_id = ?", (user_id,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    async def block(self, user_id: int, blocked_by: int) -> None:
        assert self._conn
        await self._conn.execute(
            """
            INSERT INTO blocked_users (user_id, blocked_by, blocked_at)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO NOTHING
            """,
            (user_id, blocked_by, _now()),
        )
        await self._conn.commit()
        logger.info("sqlite_block_user", user_id=user_id, blocked_by=blocked_by)

    async def unblock(self, user_id: int) -> None:
        assert self._conn
        await self._conn.execute("DELETE FROM blocked_users WHERE user_id = ?", (user_id,))
        await self._conn.commit()
        logger.info("sqlite_unblock_user", user_id=user_id)

    async def save_link(self, link: MessageLink) -> None:
        assert self._conn
        await self._conn.execute(
            """
            INSERT INTO message_links (
                user_id, user_message_id, chat_id, thread_id, message_id, has_attachment, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, user_message_id) DO UPDATE SET
                chat_id=excluded.chat_id,
                thread_id=excluded.thread_id,
                message_id=excluded.message_id,
                has_attachment=excluded.has_attachment
            """,
            (
                link.user_id,
                link.user_message_id,
                link.chat_id,
                link.thread_id,
                link.message_id,
                int(link.has_attachment),
                _now(),
            ),
        )
        await self._conn.commit()

    async def get_link(self, user_id: int, user_message_id: int) -> Optional[MessageLink]:
        assert self._conn
        cursor = await self._conn.execute(
            "SELECT * FROM message_links WHERE user_id = ? AND user_message_id = ?",
            (user_id, user_message_id),
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        return MessageLink(
            user_id=row["user_id"],
            user_message_id=row["user_message_id"],
            chat_id=row["chat_id"],
            thread_id=row["thread_id"],
            message_id=row["message_id"],
            has_attachment=bool(row["has_attachment"]),
        )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _snippet_from_row(row: aiosqlite.Row) -> Snippet:
    return Snippet(
        name=row["name"],
        content=row["content"],
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )
