from __future__ import annotations

import pytest

from cmdflow.core.store import GraphStore
from cmdflow.utils.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(STEP_DELAY_MS=0, HISTORY_LIMIT=100, STEP_GUARD_LIMIT=2000)


@pytest.fixture
def store(settings: Settings) -> GraphStore:
    return GraphStore(settings=settings)


@pytest.fixture
def trigger_id(store: GraphStore) -> str:
    return store.nodes[0].id
