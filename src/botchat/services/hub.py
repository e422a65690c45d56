"""In-process publish/subscribe hub mapping chats to live viewer connections."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

import structlog

from ..domain.events import Event, to_frame
from ..metrics import HUB_CONNECTIONS

logger = structlog.get_logger()

Sender = Callable[[Dict[str, Any]], Awaitable[None]]


class Connection:
    """One viewer channel: a send callable plus a bounded outbound FIFO.

    The hub drains the queue from a single pump task per connection, so a
    slow viewer never blocks publishers or other viewers.
    """

    def __init__(self, send: Sender, max_pending: int = 256, connection_id: Optional[str] = None) -> None:
        self.id = connection_id or uuid4().hex[:8]
        self.chat_id: Optional[int] = None
        self.send = send
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.pump_task: Optional[asyncio.Task] = None

    async def drained(self) -> None:
        """Wait until every queued frame has been handed to the transport."""
        await self.queue.join()

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, chat_id={self.chat_id!r})"


class SubscriptionHub:
    """Registry of viewer connections keyed by the chat they joined.

    The connection map is guarded by an asyncio lock. Sends never happen
    under the lock: publish only enqueues.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscriber_count(self, chat_id: int) -> int:
        return sum(1 for c in list(self._connections.values()) if c.chat_id == chat_id)

    async def register(self, connection: Connection) -> None:
        async with self._lock:
            if connection.id in self._connections:
                return
            self._connections[connection.id] = connection
            connection.pump_task = asyncio.create_task(self._pump(connection))
            HUB_CONNECTIONS.set(len(self._connections))
        logger.info("connection_registered", connection_id=connection.id)

    async def join(self, connection: Connection, chat_id: int) -> bool:
        """Bind a connection to a chat, replacing any previous binding."""
        async with self._lock:
            if connection.id not in self._connections:
                logger.warning("join_unregistered_connection", connection_id=connection.id, chat_id=chat_id)
                return False
            previous = connection.chat_id
            connection.chat_id = chat_id
        logger.info("connection_joined", connection_id=connection.id, chat_id=chat_id, previous_chat_id=previous)
        return True

    async def unregister(self, connection: Connection) -> bool:
        """Remove a connection; safe to call more than once."""
        async with self._lock:
            removed = self._remove(connection)
        if removed:
            logger.info("connection_unregistered", connection_id=connection.id, chat_id=connection.chat_id)
        return removed

    async def publish(self, chat_id: int, event: Event) -> int:
        """Queue an event for every connection bound to chat_id.

        Returns the number of connections the event was queued for. A
        connection whose queue is full is dropped.
        """
        frame = to_frame(event)
        delivered = 0
        async with self._lock:
            targets: List[Connection] = [c for c in self._connections.values() if c.chat_id == chat_id]
            for connection in targets:
                try:
                    connection.queue.put_nowait(frame)
                    delivered += 1
                except asyncio.QueueFull:
                    logger.warning(
                        "connection_backlog_full",
                        connection_id=connection.id,
                        chat_id=chat_id,
                        pending=connection.queue.qsize(),
                    )
                    self._remove(connection)
        return delivered

    async def close(self) -> None:
        """Drop every connection and stop their pump tasks."""
        async with self._lock:
            tasks = [c.pump_task for c in self._connections.values() if c.pump_task]
            for connection in list(self._connections.values()):
                self._remove(connection)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("hub_closed", connections_closed=len(tasks))

    def _remove(self, connection: Connection) -> bool:
        # caller holds the lock
        if self._connections.pop(connection.id, None) is None:
            return False
        HUB_CONNECTIONS.set(len(self._connections))
        task = connection.pump_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        while not connection.queue.empty():
            connection.queue.get_nowait()
            connection.queue.task_done()
        return True

    async def _pump(self, connection: Connection) -> None:
        """Deliver queued frames to one connection in FIFO order."""
        try:
            while True:
                frame = await connection.queue.get()
                try:
                    await connection.send(frame)
                except Exception as e:
                    logger.warning(
                        "connection_send_failed",
                        connection_id=connection.id,
                        chat_id=connection.chat_id,
                        error=str(e),
                    )
                    await self.unregister(connection)
                    return
                finally:
                    connection.queue.task_done()
        except asyncio.CancelledError:
            logger.debug("connection_pump_cancelled", connection_id=connection.id)
