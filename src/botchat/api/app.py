"""
FastAPI Application Module

HTTP and WebSocket surface for chatting with configurable AI bots. A posted
message is answered immediately with the stored user message and an empty
assistant placeholder; the reply is generated in the background and streamed
to every viewer of the chat over the ``/ws`` WebSocket.

Key Features:
- Bot, chat, message and settings endpoints
- Streaming relay with incremental persistence
- Real-time fan-out to all viewers of a chat
- Structured logging, Prometheus metrics and OpenTelemetry tracing
"""

import os
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from structlog import get_logger

from ..config import API_HEADERS_ENV, API_URL_ENV, env_api_key, parse_headers
from ..domain.exceptions import ChatRelayError, ConfigError, NotFound, ValidationError
from ..domain.models import (
    Bot,
    BotCreate,
    BotUpdate,
    Chat,
    ChatCreate,
    Message,
    MessageEdit,
    MessageExchange,
    Settings,
    SettingsUpdate,
    SettingsView,
)
from ..metrics import CUSTOM_REGISTRY, ERRORS, REQUESTS
from ..repositories.base import Repository
from ..repositories.memory import InMemoryRepository
from ..services.completion import CompletionClient
from ..services.hub import SubscriptionHub
from ..services.relay import RelayEngine
from .transport import serve_viewer
from .uploads import read_attachments

logger = get_logger()

# Core service instances
repository = InMemoryRepository()
completion_client = CompletionClient()
hub = SubscriptionHub()
relay = RelayEngine(repository, completion_client, hub)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles app startup/shutdown and resource management"""
    logger.info("application_startup_complete")

    yield

    await relay.wait_idle()
    await hub.close()
    logger.info("application_shutdown_complete")


def get_repository() -> Repository:
    """Returns the record store"""
    return repository


def get_hub() -> SubscriptionHub:
    """Returns the viewer subscription hub"""
    return hub


def get_relay() -> RelayEngine:
    """Returns the message relay engine"""
    return relay


app = FastAPI(
    title="Bot Chat Relay API",
    description="Chat with configurable AI bots, with replies streamed to every viewer",
    version="0.1.0",
    lifespan=lifespan,
)

# Enable cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.exception_handler(ChatRelayError)
async def chat_relay_error_handler(request: Request, exc: ChatRelayError) -> JSONResponse:
    """Renders domain errors with their status code"""
    return JSONResponse(status_code=exc.http_status, content={"message": exc.message})


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Tracks requests and counts failures"""
    logger.info("request_started", method=request.method, path=request.url.path)
    REQUESTS.inc()
    try:
        response = await call_next(request)
    except Exception as e:
        ERRORS.inc()
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise
    if response.status_code >= 500:
        ERRORS.inc()
    return response


def settings_view(settings: Settings) -> SettingsView:
    """Strips the API key and reports which environment fallbacks exist"""
    return SettingsView(
        api_url=settings.api_url,
        token_limit=settings.token_limit,
        temperature=settings.temperature,
        top_k=settings.top_k,
        use_streaming_api=settings.use_streaming_api,
        custom_api_headers=settings.custom_api_headers,
        has_api_key=bool(settings.api_key) or bool(env_api_key()),
        env_api_url=os.getenv(API_URL_ENV) or None,
        has_env_api_headers=bool(os.getenv(API_HEADERS_ENV)),
    )


# Bots

@app.get("/api/bots", response_model=List[Bot])
async def list_bots(repository: Repository = Depends(get_repository)) -> List[Bot]:
    """Lists all bots"""
    try:
        return await repository.list_bots()
    except Exception as e:
        logger.error("list_bots_error", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to get bots")


@app.post("/api/bots", response_model=Bot, status_code=201)
async def create_bot(bot: BotCreate, repository: Repository = Depends(get_repository)) -> Bot:
    """Creates a bot"""
    try:
        return await repository.create_bot(bot)
    except Exception as e:
        logger.error("create_bot_error", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create bot")


@app.get("/api/bots/{bot_id}", response_model=Bot)
async def get_bot(bot_id: int, repository: Repository = Depends(get_repository)) -> Bot:
    """Retrieves a bot by its ID"""
    bot = await repository.get_bot(bot_id)
    if bot is None:
        raise NotFound("Bot not found", bot_id=bot_id)
    return bot


@app.patch("/api/bots/{bot_id}", response_model=Bot)
async def update_bot(bot_id: int, changes: BotUpdate, repository: Repository = Depends(get_repository)) -> Bot:
    """Applies a partial update to a bot"""
    return await repository.update_bot(bot_id, changes)


@app.delete("/api/bots/{bot_id}", status_code=204)
async def delete_bot(bot_id: int, repository: Repository = Depends(get_repository)) -> Response:
    """Deletes a bot"""
    if not await repository.delete_bot(bot_id):
        raise NotFound("Bot not found", bot_id=bot_id)
    return Response(status_code=204)


# Chats

@app.get("/api/chats", response_model=List[Chat])
async def list_chats(
    bot_id: Optional[int] = Query(None, alias="botId"),
    repository: Repository = Depends(get_repository),
) -> List[Chat]:
    """Lists chats, optionally for one bot (``?botId=``)"""
    try:
        return await repository.list_chats(bot_id=bot_id)
    except Exception as e:
        logger.error("list_chats_error", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to get chats")


@app.post("/api/chats", response_model=Chat, status_code=201)
async def create_chat(chat: ChatCreate, repository: Repository = Depends(get_repository)) -> Chat:
    """Starts a new chat with an existing bot"""
    if await repository.get_bot(chat.bot_id) is None:
        raise ValidationError("Bot not found", bot_id=chat.bot_id)
    return await repository.create_chat(chat)


@app.get("/api/chats/{chat_id}", response_model=Chat)
async def get_chat(chat_id: int, repository: Repository = Depends(get_repository)) -> Chat:
    """Retrieves a chat by its ID"""
    chat = await repository.get_chat(chat_id)
    if chat is None:
        raise NotFound("Chat not found", chat_id=chat_id)
    return chat


@app.delete("/api/chats/{chat_id}", status_code=204)
async def delete_chat(chat_id: int, repository: Repository = Depends(get_repository)) -> Response:
    """Deletes a chat together with its messages"""
    if not await repository.delete_chat(chat_id):
        raise NotFound("Chat not found", chat_id=chat_id)
    return Response(status_code=204)


# Messages

@app.get("/api/chats/{chat_id}/messages", response_model=List[Message])
async def list_messages(chat_id: int, repository: Repository = Depends(get_repository)) -> List[Message]:
    """Gets a chat's messages in order"""
    if await repository.get_chat(chat_id) is None:
        raise NotFound("Chat not found", chat_id=chat_id)
    try:
        return await repository.list_messages(chat_id)
    except Exception as e:
        logger.error("list_messages_error", chat_id=chat_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to get messages")


@app.post("/api/chats/{chat_id}/messages", response_model=MessageExchange, status_code=201)
async def create_message(
    chat_id: int,
    content: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    relay: RelayEngine = Depends(get_relay),
) -> MessageExchange:
    """
    Stores the user message and starts the bot reply.
    Returns before generation completes; progress arrives over the WebSocket.
    """
    try:
        attachments = await read_attachments(files)
        user_message, bot_message = await relay.submit_message(chat_id, content, attachments)
    except NotFound as e:
        raise ValidationError(e.message, **e.extra)
    except (ValidationError, ConfigError):
        raise
    except Exception as e:
        logger.error("create_message_error", chat_id=chat_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to process message")
    return MessageExchange(user_message=user_message, bot_message=bot_message)


@app.patch("/api/messages/{message_id}", response_model=Message)
async def edit_message(
    message_id: int,
    edit: MessageEdit,
    relay: RelayEngine = Depends(get_relay),
) -> Message:
    """Overwrites a message's content and notifies viewers"""
    try:
        return await relay.edit_message(message_id, edit.content)
    except NotFound:
        raise
    except Exception as e:
        logger.error("edit_message_error", message_id=message_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to update message")


# Settings

@app.get("/api/settings", response_model=SettingsView)
async def get_settings(repository: Repository = Depends(get_repository)) -> SettingsView:
    """Returns provider settings without the API key"""
    return settings_view(await repository.get_settings())


@app.patch("/api/settings", response_model=SettingsView)
async def update_settings(
    changes: SettingsUpdate,
    repository: Repository = Depends(get_repository),
) -> SettingsView:
    """Updates provider settings"""
    if changes.custom_api_headers:
        try:
            parse_headers(changes.custom_api_headers)
        except ConfigError as e:
            raise ValidationError(e.message)
    return settings_view(await repository.update_settings(changes))


@app.websocket("/ws")
async def viewer_socket(websocket: WebSocket, hub: SubscriptionHub = Depends(get_hub)) -> None:
    """Live updates for the chat a viewer has joined"""
    await serve_viewer(websocket, hub)


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")


def run() -> None:
    """Serves the app with uvicorn; HOST and PORT come from the environment"""
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "5000")))
