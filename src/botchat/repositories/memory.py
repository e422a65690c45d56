"""In-memory repository implementation."""

import asyncio
from typing import Dict, List, Optional

import pydantic
import structlog

from ..domain.exceptions import NotFound, ValidationError
from ..domain.models import (
    Bot,
    BotCreate,
    BotUpdate,
    Chat,
    ChatCreate,
    FileAttachment,
    Message,
    Settings,
    SettingsUpdate,
)
from .base import Repository

logger = structlog.get_logger()

DEFAULT_BOT = BotCreate(
    name="AI Assistant",
    avatar="A",
    color="#0078D4",
    description="General AI Assistant",
    model="gpt-4o",
)


def _merge(record, changes):
    """Apply a partial update and re-validate, so explicit nulls cannot land in required fields."""
    values = {**record.model_dump(), **changes.model_dump(exclude_unset=True)}
    try:
        return type(record).model_validate(values)
    except pydantic.ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(f"Invalid value for {', '.join(fields)}", fields=fields)


class InMemoryRepository(Repository):
    """In-memory repository guarded by a single asyncio lock.

    Stored records are never mutated in place: updates replace them with a
    copy, so objects handed to callers stay stable snapshots.
    """

    def __init__(self, seed: bool = True) -> None:
        self._bots: Dict[int, Bot] = {}
        self._chats: Dict[int, Chat] = {}
        self._messages: Dict[int, Message] = {}
        self._settings = Settings()
        self._next_ids = {"bot": 1, "chat": 1, "message": 1}
        self._async_lock = asyncio.Lock()
        if seed:
            bot = Bot(id=self._next_id("bot"), **DEFAULT_BOT.model_dump())
            self._bots[bot.id] = bot
        logger.info("repository_initialized", seeded=seed)

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] += 1
        return value

    async def get_bot(self, bot_id: int) -> Optional[Bot]:
        async with self._async_lock:
            return self._bots.get(bot_id)

    async def list_bots(self) -> List[Bot]:
        async with self._async_lock:
            return list(self._bots.values())

    async def create_bot(self, bot: BotCreate) -> Bot:
        async with self._async_lock:
            created = Bot(id=self._next_id("bot"), **bot.model_dump())
            self._bots[created.id] = created
            logger.info("bot_created", bot_id=created.id)
            return created

    async def update_bot(self, bot_id: int, changes: BotUpdate) -> Bot:
        async with self._async_lock:
            bot = self._bots.get(bot_id)
            if bot is None:
                raise NotFound(f"Bot {bot_id} not found", bot_id=bot_id)
            updated = _merge(bot, changes)
            self._bots[bot_id] = updated
            return updated

    async def delete_bot(self, bot_id: int) -> bool:
        async with self._async_lock:
            return self._bots.pop(bot_id, None) is not None

    async def get_chat(self, chat_id: int) -> Optional[Chat]:
        async with self._async_lock:
            chat = self._chats.get(chat_id)
            if chat is None:
                logger.warning("chat_not_found", chat_id=chat_id)
            return chat

    async def list_chats(self, bot_id: Optional[int] = None) -> List[Chat]:
        async with self._async_lock:
            chats = [
                c for c in self._chats.values()
                if bot_id is None or c.bot_id == bot_id
            ]
            return sorted(chats, key=lambda c: (c.created_at, c.id), reverse=True)

    async def create_chat(self, chat: ChatCreate) -> Chat:
        async with self._async_lock:
            created = Chat(id=self._next_id("chat"), **chat.model_dump())
            self._chats[created.id] = created
            logger.info("chat_created", chat_id=created.id, bot_id=created.bot_id)
            return created

    async def delete_chat(self, chat_id: int) -> bool:
        async with self._async_lock:
            if self._chats.pop(chat_id, None) is None:
                return False
            orphaned = [m.id for m in self._messages.values() if m.chat_id == chat_id]
            for message_id in orphaned:
                del self._messages[message_id]
            logger.info("chat_deleted", chat_id=chat_id, messages_removed=len(orphaned))
            return True

    async def get_message(self, message_id: int) -> Optional[Message]:
        async with self._async_lock:
            return self._messages.get(message_id)

    async def list_messages(self, chat_id: int) -> List[Message]:
        async with self._async_lock:
            messages = [m for m in self._messages.values() if m.chat_id == chat_id]
            return sorted(messages, key=lambda m: (m.created_at, m.id))

    async def create_message(
        self,
        chat_id: int,
        role: str,
        content: str,
        files: Optional[List[FileAttachment]] = None,
    ) -> Message:
        async with self._async_lock:
            if chat_id not in self._chats:
                logger.error("chat_not_found_for_message", chat_id=chat_id)
                raise NotFound(f"Chat {chat_id} not found", chat_id=chat_id)
            message = Message(
                id=self._next_id("message"),
                chat_id=chat_id,
                role=role,
                content=content,
                files=files or None,
            )
            self._messages[message.id] = message
            logger.info("message_added", chat_id=chat_id, message_id=message.id, message_role=role)
            return message

    async def update_message(self, message_id: int, content: str) -> Message:
        async with self._async_lock:
            message = self._messages.get(message_id)
            if message is None:
                raise NotFound(f"Message {message_id} not found", message_id=message_id)
            updated = message.model_copy(update={"content": content})
            self._messages[message_id] = updated
            return updated

    async def delete_message(self, message_id: int) -> bool:
        async with self._async_lock:
            return self._messages.pop(message_id, None) is not None

    async def get_settings(self) -> Settings:
        async with self._async_lock:
            return self._settings.model_copy()

    async def update_settings(self, changes: SettingsUpdate) -> Settings:
        async with self._async_lock:
            self._settings = _merge(self._settings, changes)
            logger.info("settings_updated", fields=sorted(changes.model_fields_set))
            return self._settings.model_copy()
