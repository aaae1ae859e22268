from datetime import datetime, timezone

import pytest

from convointel.services.merge_engine import ConversationIntelligenceService, KeyedLock
from convointel.services.record_store import InMemoryRecordStore, Records

from .fakes import RecordingSink, ScriptedAnalyzer

# A Tuesday
NOW = datetime(2025, 1, 7, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def records(store):
    return Records(store)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_service(records, sink):

    def factory(*results):
        return ConversationIntelligenceService(records, analyzer=ScriptedAnalyzer(*results), sink=sink, locks=KeyedLock())

    return factory
