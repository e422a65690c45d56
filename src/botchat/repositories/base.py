"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

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


class Repository(ABC):
    """Abstract base class for record stores.

    Getters return None for unknown ids. Mutators raise NotFound for unknown
    ids. Writes are serialized by the implementation.
    """

    @abstractmethod
    async def get_bot(self, bot_id: int) -> Optional[Bot]:
        """Retrieve a bot by ID."""
        pass

    @abstractmethod
    async def list_bots(self) -> List[Bot]:
        """List all bots."""
        pass

    @abstractmethod
    async def create_bot(self, bot: BotCreate) -> Bot:
        """Create a new bot."""
        pass

    @abstractmethod
    async def update_bot(self, bot_id: int, changes: BotUpdate) -> Bot:
        """Apply a partial update to a bot."""
        pass

    @abstractmethod
    async def delete_bot(self, bot_id: int) -> bool:
        """Delete a bot, returning whether it existed."""
        pass

    @abstractmethod
    async def get_chat(self, chat_id: int) -> Optional[Chat]:
        """Retrieve a chat by ID."""
        pass

    @abstractmethod
    async def list_chats(self, bot_id: Optional[int] = None) -> List[Chat]:
        """List chats, newest first, optionally for a single bot."""
        pass

    @abstractmethod
    async def create_chat(self, chat: ChatCreate) -> Chat:
        """Create a new chat."""
        pass

    @abstractmethod
    async def delete_chat(self, chat_id: int) -> bool:
        """Delete a chat and its messages."""
        pass

    @abstractmethod
    async def get_message(self, message_id: int) -> Optional[Message]:
        """Retrieve a message by ID."""
        pass

    @abstractmethod
    async def list_messages(self, chat_id: int) -> List[Message]:
        """Get a chat's messages ordered by creation time, then id."""
        pass

    @abstractmethod
    async def create_message(
        self,
        chat_id: int,
        role: str,
        content: str,
        files: Optional[List[FileAttachment]] = None,
    ) -> Message:
        """Add a message to a chat."""
        pass

    @abstractmethod
    async def update_message(self, message_id: int, content: str) -> Message:
        """Overwrite a message's content."""
        pass

    @abstractmethod
    async def delete_message(self, message_id: int) -> bool:
        """Delete a single message."""
        pass

    @abstractmethod
    async def get_settings(self) -> Settings:
        """Get the process-wide settings record."""
        pass

    @abstractmethod
    async def update_settings(self, changes: SettingsUpdate) -> Settings:
        """Apply a partial update to the settings record."""
        pass
