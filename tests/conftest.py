"""Shared pytest fixtures for the plotter test suite."""

import pytest
from unittest.mock import MagicMock, AsyncMock


async def stream_of(chunks, error=None):
    """Async generator over text chunks, optionally failing at the end."""
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        openrouter_api_key="or-test-key",
        openai_api_key="sk-test-key",
        sqlite_db_path=tmp_path / "stories.db",
        local_store_dir=tmp_path / "local",
        log_dir=tmp_path / "logs",
        completion_word_threshold=5,
        outline_retry_delay=0.0,
        autosave_interval=5.0,
    )


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store(settings):
    """Return an initialized StoryRecordStore backed by a temp file."""
    from models.database import StoryRecordStore
    return StoryRecordStore(settings.sqlite_db_path)


@pytest.fixture
def local_store():
    from persistence.local_store import InMemoryLocalStore
    return InMemoryLocalStore()


@pytest.fixture
def snapshots(local_store):
    from persistence.snapshot import SnapshotStore
    return SnapshotStore(local_store)


@pytest.fixture
def sample_story():
    """An unsaved three-chapter story."""
    from models.story import Story, chapters_from_outline
    outline = [
        "Mara finds a door in the sea wall.",
        "She opens it and the tide follows her in.",
        "The keeper of the lighthouse comes looking.",
    ]
    return Story(
        user_id="u1",
        title="The Sea Door",
        premise="A lighthouse keeper's daughter finds a door in the sea",
        outline=outline,
        characters="<character name='Mara' aliases='' pronouns='she/her' age='17'>Curious.</character>",
        chapters=chapters_from_outline(outline),
    )


# ---------------------------------------------------------------------------
# Provider mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider(settings):
    """MagicMock standing in for ProviderClient.

    ``complete`` is an AsyncMock; ``stream`` yields ``stream_chunks`` and then
    raises ``stream_error`` when one is set.
    """
    provider = MagicMock()
    provider.settings = settings
    provider.supports_json_mode = False
    provider.complete = AsyncMock(return_value="")
    provider.stream_chunks = ["Once ", "upon ", "a ", "time"]
    provider.stream_error = None
    provider.stream = MagicMock(
        side_effect=lambda *a, **kw: stream_of(list(provider.stream_chunks), provider.stream_error)
    )
    return provider


@pytest.fixture
def no_sleep():
    """AsyncMock replacing asyncio.sleep; records the requested delays."""
    return AsyncMock(return_value=None)
