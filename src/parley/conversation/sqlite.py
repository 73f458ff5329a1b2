"""SQLite message store.

Provides persistent conversation storage using a SQLite database file.
Uses aiosqlite for async access.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from ..exceptions import ConversationNotFoundError, MessageNotFoundError
from .base import MessageStore
from .models import AuthorType, Conversation, Message, sort_messages, utc_now

logger = logging.getLogger(__name__)


class SQLiteMessageStore(MessageStore):
    """SQLite-backed message store.

    Messages carry an autoincrement ``seq`` column so that equal timestamps
    still come back in insertion order. Deleting a conversation cascades to
    its messages through the foreign key.
    """

    def __init__(self, path: str | Path = "./parley.db"):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()
        logger.debug("Opened message store at %s", self._db_path)

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                system_prompt TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                conversation_id TEXT NOT NULL,
                content TEXT NOT NULL,
                author_type TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
            ON messages(conversation_id, seq)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def _db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Message store is not connected. Call connect() first.")
        return self._connection

    @staticmethod
    def _row_to_conversation(row: tuple) -> Conversation:
        conversation_id, name, system_prompt, created_at, updated_at = row
        return Conversation(
            id=conversation_id,
            name=name,
            system_prompt=system_prompt,
            created_at=datetime.fromisoformat(created_at),
            updated_at=datetime.fromisoformat(updated_at),
        )

    async def create_conversation(self, name: str, system_prompt: str | None = None) -> Conversation:
        conversation = Conversation(name=name, system_prompt=system_prompt)
        async with self._write_lock:
            await self._db.execute(
                """
                INSERT INTO conversations (id, name, system_prompt, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    conversation.id,
                    conversation.name,
                    conversation.system_prompt,
                    conversation.created_at.isoformat(),
                    conversation.updated_at.isoformat(),
                ),
            )
            await self._db.commit()
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        async with self._db.execute(
            "SELECT id, name, system_prompt, created_at, updated_at FROM conversations WHERE id = ?",
            (conversation_id,),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            raise ConversationNotFoundError(conversation_id)
        return self._row_to_conversation(row)

    async def list_conversations(self) -> list[Conversation]:
        async with self._db.execute(
            "SELECT id, name, system_prompt, created_at, updated_at FROM conversations"
        ) as cursor:
            rows = await cursor.fetchall()

        conversations = [self._row_to_conversation(row) for row in rows]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def _update_conversation(self, conversation_id: str, column: str, value: str | None) -> Conversation:
        async with self._write_lock:
            cursor = await self._db.execute(
                f"UPDATE conversations SET {column} = ?, updated_at = ? WHERE id = ?",
                (value, utc_now().isoformat(), conversation_id),
            )
            if cursor.rowcount == 0:
                raise ConversationNotFoundError(conversation_id)
            await self._db.commit()
        return await self.get_conversation(conversation_id)

    async def rename_conversation(self, conversation_id: str, name: str) -> Conversation:
        return await self._update_conversation(conversation_id, "name", name)

    async def update_system_prompt(self, conversation_id: str, system_prompt: str | None) -> Conversation:
        return await self._update_conversation(conversation_id, "system_prompt", system_prompt)

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._write_lock:
            cursor = await self._db.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            if cursor.rowcount == 0:
                raise ConversationNotFoundError(conversation_id)
            await self._db.commit()

    async def list_messages(self, conversation_id: str) -> list[Message]:
        await self.get_conversation(conversation_id)

        async with self._db.execute(
            """
            SELECT id, conversation_id, content, author_type, timestamp
            FROM messages
            WHERE conversation_id = ?
            ORDER BY seq ASC
            """,
            (conversation_id,),
        ) as cursor:
            rows = await cursor.fetchall()

        messages = []
        for row in rows:
            message_id, conv_id, content, author_type, ts = row
            messages.append(Message(
                id=message_id,
                conversation_id=conv_id,
                content=content,
                author_type=AuthorType(author_type),
                timestamp=datetime.fromisoformat(ts),
            ))
        return sort_messages(messages)

    async def append_message(self, conversation_id: str, message: Message) -> Message:
        stored = message.model_copy(update={"conversation_id": conversation_id})
        async with self._write_lock:
            await self.get_conversation(conversation_id)
            await self._db.execute(
                """
                INSERT INTO messages (id, conversation_id, content, author_type, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    stored.id,
                    conversation_id,
                    stored.content,
                    stored.author_type.value,
                    stored.timestamp.isoformat(),
                ),
            )
            await self._db.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (utc_now().isoformat(), conversation_id),
            )
            await self._db.commit()
        return stored

    async def update_message_content(self, conversation_id: str, message_id: str, content: str) -> Message:
        async with self._write_lock:
            cursor = await self._db.execute(
                "UPDATE messages SET content = ? WHERE id = ? AND conversation_id = ?",
                (content, message_id, conversation_id),
            )
            if cursor.rowcount == 0:
                raise MessageNotFoundError(message_id)
            await self._db.commit()

        for message in await self.list_messages(conversation_id):
            if message.id == message_id:
                return message
        raise MessageNotFoundError(message_id)

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
