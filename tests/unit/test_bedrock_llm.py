import pytest
from botocore.exceptions import ClientError

from convointel.utils import bedrock_llm
from convointel.utils.bedrock_llm import BedrockLLM, BedrockLLMError
from convointel.utils.config import BedrockLLMConfig


class FakeRuntime:
    """Plays back one scripted outcome per converse_stream call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def converse_stream(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return {'stream': outcome}


def _text_stream(*chunks, stop_reason='end_turn'):
    events = [{'contentBlockDelta': {'delta': {'text': chunk}}} for chunk in chunks]
    events.append({'messageStop': {'stopReason': stop_reason}})
    events.append({'metadata': {'usage': {'inputTokens': 12, 'outputTokens': 3}, 'metrics': {'latencyMs': 40}}})
    return events


def _client_error(code):
    return ClientError({'Error': {'Code': code, 'Message': code}}, 'ConverseStream')


@pytest.fixture
def settings():
    return BedrockLLMConfig(region='us-east-1', model_id='test-model', max_tokens=100, temperature=0.3, retry_attempts=3, retry_delay=0,
                            read_timeout=5)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(bedrock_llm.time, 'sleep', lambda seconds: None)


def test_streamed_text_is_joined(settings) -> None:
    runtime = FakeRuntime(_text_stream('{"a"', ': 1}'))
    llm = BedrockLLM(settings, runtime_client=runtime)

    text, metrics = llm.generate_response([{'role': 'user', 'content': [{'text': 'hi'}]}], 'system', stop_sequences=['```'])

    assert text == '{"a": 1}'
    assert metrics == {'inputTokens': 12, 'outputTokens': 3, 'latencyMs': 40}
    request = runtime.requests[0]
    assert request['modelId'] == 'test-model'
    assert request['inferenceConfig'] == {'maxTokens': 100, 'temperature': 0.3, 'stopSequences': ['```']}


def test_zero_temperature_is_respected(settings) -> None:
    runtime = FakeRuntime(_text_stream('OK'))

    BedrockLLM(settings, runtime_client=runtime).generate_response([], 'system', temperature=0.0)

    assert runtime.requests[0]['inferenceConfig']['temperature'] == 0.0


def test_throttling_is_retried(settings) -> None:
    runtime = FakeRuntime(_client_error('ThrottlingException'), [{'throttlingException': {'message': 'slow down'}}], _text_stream('done'))

    text, _ = BedrockLLM(settings, runtime_client=runtime).generate_response([], 'system')

    assert text == 'done'
    assert len(runtime.requests) == 3


def test_validation_error_is_not_retried(settings) -> None:
    runtime = FakeRuntime(_client_error('ValidationException'), _text_stream('unused'))

    with pytest.raises(BedrockLLMError):
        BedrockLLM(settings, runtime_client=runtime).generate_response([], 'system')

    assert len(runtime.requests) == 1


def test_gives_up_after_retry_attempts(settings) -> None:
    runtime = FakeRuntime(*[_client_error('ServiceUnavailableException')] * 3)

    with pytest.raises(BedrockLLMError, match='after 3 attempts'):
        BedrockLLM(settings, runtime_client=runtime).generate_response([], 'system')


def test_health_check(settings) -> None:
    assert BedrockLLM(settings, runtime_client=FakeRuntime(_text_stream('OK'))).health_check() is True
    assert BedrockLLM(settings, runtime_client=FakeRuntime(_client_error('AccessDeniedException'))).health_check() is False
