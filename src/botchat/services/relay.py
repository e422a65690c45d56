"""Relay engine: drives one message exchange from submission to a terminal state.

An exchange moves through RECEIVED -> DISPATCHING -> STREAMING and ends in
COMPLETED or FAILED. Submission returns as soon as the placeholder assistant
message exists; generation runs in a background task that persists every
snapshot and publishes events to the hub.
"""

import asyncio
import base64
import binascii
import enum
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

import structlog

from ..config import DEFAULT_MODEL, ProviderConfig, resolve_provider_config
from ..domain.events import (
    MessageCompleteEvent,
    MessageEditedEvent,
    MessageErrorEvent,
    MessageUpdateEvent,
)
from ..domain.exceptions import NotFound, ValidationError
from ..domain.models import Bot, FileAttachment, Message, PromptMessage
from ..metrics import EXCHANGES
from ..repositories.base import Repository
from .completion import CompletionClient
from .hub import SubscriptionHub

logger = structlog.get_logger()

FALLBACK_CONTENT = "Sorry, I had trouble generating a response. Please try again."
ERROR_EVENT_TEXT = "Error generating response"


class ExchangeState(str, enum.Enum):
    RECEIVED = "received"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Exchange:
    """Bookkeeping for one user message -> assistant response cycle."""

    chat_id: int
    state: ExchangeState = ExchangeState.RECEIVED
    user_message: Optional[Message] = None
    bot_message: Optional[Message] = None
    config: Optional[ProviderConfig] = None
    model: str = DEFAULT_MODEL
    history: List[PromptMessage] = field(default_factory=list)
    content: str = ""
    deltas: int = 0

    def advance(self, state: ExchangeState) -> None:
        logger.debug(
            "exchange_state_changed",
            chat_id=self.chat_id,
            message_id=self.bot_message.id if self.bot_message else None,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state


def render_files(files: List[FileAttachment]) -> str:
    """Render attachments as instruction context for the system prompt."""
    if not files:
        return ""
    parts = ["The user has shared the following files:\n\n"]
    for f in files:
        try:
            text = base64.b64decode(f.content, validate=True).decode("utf-8")
            parts.append(f"File: {f.name}\n\n{text}\n\n")
        except (binascii.Error, UnicodeDecodeError):
            parts.append(f"File: {f.name} (binary file)\n\n")
    parts.append("Please analyze these files and respond to the user's message.")
    return "".join(parts)


def build_system_prompt(bot: Bot, files: Optional[List[FileAttachment]] = None) -> str:
    return f"You are {bot.name}, {bot.description or 'an AI assistant'}. {render_files(files or [])}"


def build_history(bot: Bot, messages: List[Message], files: Optional[List[FileAttachment]] = None) -> List[PromptMessage]:
    """Leading system message followed by the chat so far.

    Empty assistant messages are placeholders of exchanges still in flight
    and are left out.
    """
    history = [PromptMessage(role="system", content=build_system_prompt(bot, files))]
    for m in messages:
        if m.role == "assistant" and not m.content:
            continue
        history.append(PromptMessage(role=m.role, content=m.content))
    return history


class RelayEngine:
    """Orchestrates message exchanges between the store, the provider and the hub."""

    def __init__(
        self,
        repository: Repository,
        completion_client: CompletionClient,
        hub: SubscriptionHub,
    ) -> None:
        self.repository = repository
        self.completion_client = completion_client
        self.hub = hub
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def submit_message(
        self,
        chat_id: int,
        content: Optional[str],
        files: Optional[List[FileAttachment]] = None,
    ) -> Tuple[Message, Message]:
        """Record a user message and start generating the reply.

        Returns (user_message, placeholder) without waiting for generation.
        Raises NotFound, ValidationError or ConfigError.
        """
        exchange = Exchange(chat_id=chat_id)
        content = content or ""
        files = list(files or [])

        chat = await self.repository.get_chat(chat_id)
        if chat is None:
            raise NotFound(f"Chat {chat_id} not found", chat_id=chat_id)
        if not content.strip() and not files:
            raise ValidationError("Message content or files are required")
        exchange.user_message = await self.repository.create_message(chat_id, "user", content, files)

        exchange.advance(ExchangeState.DISPATCHING)
        exchange.config = resolve_provider_config(await self.repository.get_settings())
        bot = await self.repository.get_bot(chat.bot_id)
        if bot is None:
            raise NotFound(f"Bot {chat.bot_id} not found", bot_id=chat.bot_id)
        exchange.model = bot.model or DEFAULT_MODEL
        exchange.history = build_history(bot, await self.repository.list_messages(chat_id), files)
        exchange.bot_message = await self.repository.create_message(chat_id, "assistant", "")

        logger.info(
            "exchange_dispatched",
            chat_id=chat_id,
            user_message_id=exchange.user_message.id,
            message_id=exchange.bot_message.id,
            model=exchange.model,
            files=len(files),
            streaming=exchange.config.streaming,
        )

        task = asyncio.create_task(self._run(exchange))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return exchange.user_message, exchange.bot_message

    async def edit_message(self, message_id: int, content: str) -> Message:
        """Overwrite a message's content and notify viewers of its chat."""
        message = await self.repository.get_message(message_id)
        if message is None:
            raise NotFound(f"Message {message_id} not found", message_id=message_id)
        updated = await self.repository.update_message(message_id, content)
        await self.hub.publish(updated.chat_id, MessageEditedEvent(message_id=message_id, message=updated))
        logger.info("message_edited", chat_id=updated.chat_id, message_id=message_id, role=updated.role)
        return updated

    async def wait_idle(self) -> None:
        """Wait for every in-flight exchange to reach a terminal state."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, exchange: Exchange) -> None:
        message_id = exchange.bot_message.id
        exchange.advance(ExchangeState.STREAMING)
        try:
            stream = self.completion_client.complete(exchange.config, exchange.history, exchange.model)
            async for delta in stream:
                if not delta:
                    continue
                exchange.content += delta
                exchange.deltas += 1
                await self.repository.update_message(message_id, exchange.content)
                await self.hub.publish(
                    exchange.chat_id,
                    MessageUpdateEvent(message_id=message_id, content=exchange.content),
                )
            final = await self.repository.update_message(message_id, exchange.content)
        except Exception as e:
            await self._fail(exchange, e)
            return

        exchange.advance(ExchangeState.COMPLETED)
        await self.hub.publish(exchange.chat_id, MessageCompleteEvent(message_id=message_id, message=final))
        EXCHANGES.labels(outcome="completed").inc()
        logger.info(
            "exchange_completed",
            chat_id=exchange.chat_id,
            message_id=message_id,
            deltas=exchange.deltas,
            content_length=len(exchange.content),
        )

    async def _fail(self, exchange: Exchange, error: Exception) -> None:
        message_id = exchange.bot_message.id
        exchange.advance(ExchangeState.FAILED)
        EXCHANGES.labels(outcome="failed").inc()
        if isinstance(error, NotFound):
            logger.warning("exchange_target_gone", chat_id=exchange.chat_id, message_id=message_id)
        else:
            logger.error(
                "exchange_failed",
                chat_id=exchange.chat_id,
                message_id=message_id,
                deltas=exchange.deltas,
                error_type=type(error).__name__,
                error=str(error),
            )
            try:
                await self.repository.update_message(message_id, FALLBACK_CONTENT)
            except NotFound:
                logger.warning("exchange_target_gone", chat_id=exchange.chat_id, message_id=message_id)
            except Exception as e:
                logger.error("fallback_persist_failed", chat_id=exchange.chat_id, message_id=message_id, error=str(e))
        await self.hub.publish(exchange.chat_id, MessageErrorEvent(message_id=message_id, error=ERROR_EVENT_TEXT))
