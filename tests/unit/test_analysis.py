import pytest

from convointel.services.analysis import AnalysisError, ConversationAnalysisService, TranscriptionService
from convointel.utils.bedrock_llm import BedrockLLMError
from convointel.utils.transcribe_client import TranscriptionError


class FakeLLM:

    def __init__(self, response='', error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate_response(self, messages, system_prompt=None, stop_sequences=None, **kwargs):
        self.calls.append({'messages': messages, 'system_prompt': system_prompt, 'stop_sequences': stop_sequences})
        if self.error:
            raise self.error
        return self.response, {'inputTokens': 10}


def test_analyze_parses_model_json() -> None:
    llm = FakeLLM('\n{"conversation_metadata": {"title": "Sync"}, "speakers": [],}\n')

    analysis = ConversationAnalysisService(llm=llm).analyze('SPEAKER 1: hello', 'Alex')

    assert analysis == {'conversation_metadata': {'title': 'Sync'}, 'speakers': []}
    call = llm.calls[0]
    assert '"Alex"' in call['system_prompt']
    assert call['stop_sequences'] == ['```']
    assert call['messages'][0]['content'][0]['text'].endswith('SPEAKER 1: hello')
    assert call['messages'][-1] == {'role': 'assistant', 'content': [{'text': '```json'}]}


def test_empty_transcript_is_rejected() -> None:
    llm = FakeLLM('{}')

    with pytest.raises(AnalysisError) as excinfo:
        ConversationAnalysisService(llm=llm).analyze('   ', 'Alex')

    assert excinfo.value.code == 'EMPTY_TRANSCRIPT'
    assert llm.calls == []


def test_model_failure_is_unavailable() -> None:
    service = ConversationAnalysisService(llm=FakeLLM(error=BedrockLLMError('throttled')))

    with pytest.raises(AnalysisError) as excinfo:
        service.analyze('SPEAKER 1: hello', 'Alex')

    assert excinfo.value.code == 'ANALYSIS_UNAVAILABLE'


@pytest.mark.parametrize('response', ['I could not analyze this.', '[1, 2, 3]', ''])
def test_non_object_output_is_invalid(response) -> None:
    with pytest.raises(AnalysisError) as excinfo:
        ConversationAnalysisService(llm=FakeLLM(response)).analyze('SPEAKER 1: hello', 'Alex')

    assert excinfo.value.code == 'INVALID_ANALYSIS'


class FakeTranscribeClient:

    def __init__(self, error=None):
        self.error = error

    def transcribe_audio(self, audio_bytes, filename):
        if self.error:
            raise self.error
        return {'segments': [{'text': 'hi', 'start': 0.0, 'end': 1.0}]}


def test_transcription_service_delegates() -> None:
    assert TranscriptionService(client=FakeTranscribeClient()).transcribe(b'a', 'a.mp3')['segments'][0]['text'] == 'hi'


def test_transcription_service_propagates_errors() -> None:
    service = TranscriptionService(client=FakeTranscribeClient(TranscriptionError('timed out', code='TRANSCRIPTION_TIMEOUT', transient=True)))

    with pytest.raises(TranscriptionError) as excinfo:
        service.transcribe(b'a', 'a.mp3')

    assert excinfo.value.transient is True
