from convointel.utils import health_check
from convointel.utils.config import config


def _client(healthy):

    class FakeClient:

        def __init__(self, settings):
            pass

        def health_check(self):
            return healthy

    return FakeClient


def _broken(settings):
    raise RuntimeError('no credentials')


def test_all_components_healthy(monkeypatch) -> None:
    monkeypatch.setattr(config.pipeline, 'record_store', 'opensearch')
    monkeypatch.setattr(health_check, 'BedrockLLM', _client(True))
    monkeypatch.setattr(health_check, 'TranscribeClient', _client(True))
    monkeypatch.setattr(health_check, 'OpenSearchClient', _client(True))

    status = health_check.get_health_status()

    assert set(status) == {'bedrock_llm', 'transcribe', 'opensearch'}
    assert health_check.check_health() is True


def test_failing_component_is_reported(monkeypatch) -> None:
    monkeypatch.setattr(config.pipeline, 'record_store', 'opensearch')
    monkeypatch.setattr(health_check, 'BedrockLLM', _client(True))
    monkeypatch.setattr(health_check, 'TranscribeClient', _broken)
    monkeypatch.setattr(health_check, 'OpenSearchClient', _client(False))

    status = health_check.get_health_status()

    assert status['transcribe'] == {'healthy': False, 'service': 'Amazon Transcribe', 'error': 'no credentials'}
    assert status['opensearch']['healthy'] is False
    assert health_check.check_health() is False


def test_memory_store_skips_opensearch(monkeypatch) -> None:
    monkeypatch.setattr(config.pipeline, 'record_store', 'memory')
    monkeypatch.setattr(health_check, 'BedrockLLM', _client(True))
    monkeypatch.setattr(health_check, 'TranscribeClient', _client(True))

    assert 'opensearch' not in health_check.get_health_status()
    assert health_check.get_system_info()['configuration']['record_store'] == 'memory'
