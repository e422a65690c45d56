"""Test suite for concurrent exchanges, viewers and edits."""

import asyncio

import pytest

from botchat.domain.models import BotCreate, ChatCreate
from botchat.services.hub import Connection
from botchat.services.relay import RelayEngine

from support import FakeCompletionClient, FrameRecorder, eventually


async def chat_with_viewer(repository, hub, title):
    bot = await repository.create_bot(BotCreate(name=title, avatar="B", color="#000000"))
    chat = await repository.create_chat(ChatCreate(bot_id=bot.id, title=title))
    viewer = FrameRecorder()
    connection = Connection(viewer.send)
    await hub.register(connection)
    await hub.join(connection, chat.id)
    return chat, viewer, connection


@pytest.mark.asyncio
async def test_parallel_exchanges_stay_in_their_chats(repository, hub):
    """Each viewer only sees the reply for its own chat, in delta order."""
    relay = RelayEngine(repository, FakeCompletionClient(echo=True), hub)
    setups = [await chat_with_viewer(repository, hub, f"chat-{i}") for i in range(5)]

    results = await asyncio.gather(
        *[relay.submit_message(chat.id, f"reply number {i} please") for i, (chat, _, _) in enumerate(setups)]
    )
    await relay.wait_idle()

    for i, ((chat, viewer, connection), (_, placeholder)) in enumerate(zip(setups, results)):
        await connection.drained()
        expected = f"reply number {i} please "
        assert {f["messageId"] for f in viewer.frames} == {placeholder.id}
        updates = [f["content"] for f in viewer.frames if f["type"] == "message-update"]
        assert updates[-1] == expected
        assert all(expected.startswith(u) for u in updates)
        assert viewer.types()[-1] == "message-complete"
        assert (await repository.get_message(placeholder.id)).content == expected


@pytest.mark.asyncio
async def test_many_viewers_of_one_chat(repository, hub, relay):
    chat, first_viewer, first = await chat_with_viewer(repository, hub, "shared")
    others = []
    for _ in range(20):
        viewer = FrameRecorder()
        connection = Connection(viewer.send)
        await hub.register(connection)
        await hub.join(connection, chat.id)
        others.append((viewer, connection))

    await relay.submit_message(chat.id, "hi")
    await relay.wait_idle()

    for viewer, connection in [(first_viewer, first)] + others:
        await connection.drained()
        assert viewer.types() == ["message-update", "message-update", "message-complete"]


@pytest.mark.asyncio
async def test_viewer_leaving_mid_stream(repository, hub):
    gate = asyncio.Event()
    relay = RelayEngine(repository, FakeCompletionClient(["a", gate, "b"]), hub)
    chat, leaving, leaving_conn = await chat_with_viewer(repository, hub, "leave")
    staying = FrameRecorder()
    staying_conn = Connection(staying.send)
    await hub.register(staying_conn)
    await hub.join(staying_conn, chat.id)

    _, placeholder = await relay.submit_message(chat.id, "hi")
    await eventually(lambda: len(leaving.frames) == 1)
    await hub.unregister(leaving_conn)
    gate.set()
    await relay.wait_idle()
    await staying_conn.drained()

    assert leaving.types() == ["message-update"]
    assert staying.types() == ["message-update", "message-update", "message-complete"]
    assert hub.connection_count == 1


@pytest.mark.asyncio
async def test_edit_racing_stream_is_last_writer_wins(repository, hub):
    """An edit during streaming is overwritten by the next snapshot."""
    gate = asyncio.Event()
    relay = RelayEngine(repository, FakeCompletionClient(["a", gate, "b"]), hub)
    chat, viewer, connection = await chat_with_viewer(repository, hub, "race")

    _, placeholder = await relay.submit_message(chat.id, "hi")
    await eventually(lambda: repository.snapshots(placeholder.id) == ["a"])
    edited = await relay.edit_message(placeholder.id, "edited by hand")
    assert edited.content == "edited by hand"

    gate.set()
    await relay.wait_idle()
    await connection.drained()

    assert (await repository.get_message(placeholder.id)).content == "ab"
    assert viewer.types() == ["message-update", "message-edited", "message-update", "message-complete"]


@pytest.mark.asyncio
async def test_concurrent_submissions_to_one_chat(repository, hub, relay, fake_client):
    chat, viewer, connection = await chat_with_viewer(repository, hub, "busy")

    results = await asyncio.gather(*[relay.submit_message(chat.id, f"m{i}") for i in range(10)])
    await relay.wait_idle()
    await connection.drained()

    placeholders = {bot.id for _, bot in results}
    assert len(placeholders) == 10
    completes = [f for f in viewer.frames if f["type"] == "message-complete"]
    assert {f["messageId"] for f in completes} == placeholders
    messages = await repository.list_messages(chat.id)
    assert len(messages) == 20
    assert all(m.content == "Hello!" for m in messages if m.role == "assistant")
