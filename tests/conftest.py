import pytest

from tests.fakes import FakeAIClient, FakeIntervalsClient, make_task
from timesync.config import Settings
from timesync.infrastructure.storage.json_store import JsonDocumentStore
from timesync.services.container import build_services


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        STORAGE_DIR=tmp_path / "storage",
        OPENAI_API_KEY=None,
        AZURE_OPENAI_ENDPOINT=None,
        GRAPH_TENANT_ID=None,
        GRAPH_CLIENT_ID=None,
        GRAPH_CLIENT_SECRET=None,
        DUPLICATE_BATCH_DELAY_SECONDS=0,
        MATCH_DELAY_SECONDS=0,
    )


@pytest.fixture
def store(test_settings) -> JsonDocumentStore:
    store = JsonDocumentStore(test_settings.STORAGE_DIR)
    store.initialize()
    return store


@pytest.fixture
def fake_ai() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def intervals() -> FakeIntervalsClient:
    return FakeIntervalsClient(tasks=[make_task()])


@pytest.fixture
def services(test_settings, store, fake_ai):
    return build_services(config=test_settings, store=store, ai_client=fake_ai)
