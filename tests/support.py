"""Test doubles shared by the test suite."""

import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple

from botchat.domain.models import PromptMessage
from botchat.repositories.memory import InMemoryRepository


class FakeCompletionClient:
    """Scripted stand-in for the completion client.

    Script items are yielded in order: strings are deltas, exceptions are
    raised, asyncio.Events are awaited before continuing. With ``echo=True``
    the last user message is streamed back word by word instead.
    """

    def __init__(self, script=("Hel", "lo!"), echo: bool = False) -> None:
        self.script = list(script)
        self.echo = echo
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, config, messages: List[PromptMessage], model: str = "gpt-4o"):
        self.calls.append({"config": config, "messages": list(messages), "model": model})
        if self.echo:
            last = [m.content for m in messages if m.role == "user"][-1]
            script = [word + " " for word in last.split()]
        else:
            script = self.script
        for item in script:
            await asyncio.sleep(0)
            if isinstance(item, asyncio.Event):
                await item.wait()
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item


class RecordingRepository(InMemoryRepository):
    """In-memory repository that remembers every content snapshot written."""

    def __init__(self) -> None:
        super().__init__()
        self.updates: List[Tuple[int, str]] = []

    async def update_message(self, message_id: int, content: str):
        message = await super().update_message(message_id, content)
        self.updates.append((message_id, content))
        return message

    def snapshots(self, message_id: int) -> List[str]:
        return [content for mid, content in self.updates if mid == message_id]


class FrameRecorder:
    """Transport sink collecting frames sent to one viewer."""

    def __init__(self, fail_with: Optional[BaseException] = None) -> None:
        self.frames: List[Dict[str, Any]] = []
        self.fail_with = fail_with

    async def send(self, frame: Dict[str, Any]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.frames.append(frame)

    def types(self) -> List[str]:
        return [f["type"] for f in self.frames]


async def eventually(predicate, timeout: float = 2.0) -> None:
    """Poll an async-world condition until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def wait_until(predicate, timeout: float = 2.0) -> None:
    """Blocking variant of eventually() for TestClient based tests."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)
