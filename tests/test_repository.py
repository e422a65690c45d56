"""Test suite for the in-memory repository."""

import pytest

from botchat.domain.exceptions import ValidationError
from botchat.domain.models import BotUpdate, SettingsUpdate
from botchat.repositories.memory import InMemoryRepository


@pytest.mark.asyncio
async def test_settings_are_returned_as_copies():
    repository = InMemoryRepository()
    settings = await repository.get_settings()
    settings.token_limit = 1

    assert (await repository.get_settings()).token_limit == 4000

    updated = await repository.update_settings(SettingsUpdate(temperature=0.1))
    updated.temperature = 1.9
    assert (await repository.get_settings()).temperature == 0.1


@pytest.mark.asyncio
async def test_partial_updates_are_validated():
    repository = InMemoryRepository()

    with pytest.raises(ValidationError):
        await repository.update_settings(SettingsUpdate(token_limit=None))
    with pytest.raises(ValidationError):
        await repository.update_bot(1, BotUpdate(model=None))

    assert (await repository.get_settings()).token_limit == 4000
    assert (await repository.get_bot(1)).model == "gpt-4o"
