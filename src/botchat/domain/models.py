"""Domain models for the bot chat application."""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant", "system"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileAttachment(CamelModel):
    """File uploaded alongside a message, content carried as base64."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    type: str
    content: str


class Bot(CamelModel):
    """Bot model."""

    id: int
    name: str
    avatar: str
    color: str
    description: Optional[str] = None
    model: str = "gpt-4o"
    created_at: datetime = Field(default_factory=utcnow)


class BotCreate(CamelModel):
    name: str
    avatar: str
    color: str
    description: Optional[str] = None
    model: str = "gpt-4o"


class BotUpdate(CamelModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None
    model: Optional[str] = None


class Chat(CamelModel):
    """Chat model."""

    id: int
    bot_id: int
    title: str
    created_at: datetime = Field(default_factory=utcnow)


class ChatCreate(CamelModel):
    bot_id: int
    title: str


class Message(CamelModel):
    """Message model."""

    id: int
    chat_id: int
    content: str
    role: Role = "user"
    files: Optional[List[FileAttachment]] = None
    created_at: datetime = Field(default_factory=utcnow)


class MessageEdit(CamelModel):
    """Body of an explicit message edit."""

    content: str


class MessageExchange(CamelModel):
    """Returned by message submission before generation completes."""

    user_message: Message
    bot_message: Message


class PromptMessage(BaseModel):
    """Role-tagged message handed to the completion client."""

    role: str
    content: str


class Settings(CamelModel):
    """Process-wide provider settings as stored."""

    api_key: Optional[str] = None
    api_url: Optional[str] = None
    token_limit: int = 4000
    temperature: float = 0.7
    top_k: float = 0.5
    use_streaming_api: bool = True
    custom_api_headers: Optional[str] = None


class SettingsUpdate(CamelModel):
    api_key: Optional[str] = None
    api_url: Optional[str] = None
    token_limit: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    top_k: Optional[float] = Field(default=None, ge=0, le=1)
    use_streaming_api: Optional[bool] = None
    custom_api_headers: Optional[str] = None


class SettingsView(CamelModel):
    """Settings as shown to clients; the raw API key never leaves the server."""

    api_url: Optional[str] = None
    token_limit: int
    temperature: float
    top_k: float
    use_streaming_api: bool
    custom_api_headers: Optional[str] = None
    has_api_key: bool
    env_api_url: Optional[str] = None
    has_env_api_headers: bool = False
