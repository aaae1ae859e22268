import pytest

from convointel.services.merge_engine import ConversationIntelligenceService, KeyedLock
from convointel.services.transcript_processor import SubmissionError, TranscriptProcessor
from convointel.utils.config import PipelineConfig
from convointel.utils.transcribe_client import TranscriptionError

from ..fakes import ScriptedAnalyzer, build_analysis, speaker


class FakeTranscriber:

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls = []

    def transcribe(self, audio_bytes, filename):
        self.calls.append((audio_bytes, filename))
        if self.error:
            raise self.error
        return self.payload


PAYLOAD = {
    'segments': [
        {'text': 'Hi Maria, how are you?', 'start': 0.0, 'end': 2.5},
        {'text': 'Great, thanks.', 'start': 3.0, 'end': 4.0},
        {'text': 'Want to meet next Monday?', 'start': 12.0, 'end': 14.0},
    ]
}


@pytest.fixture
def pipeline():
    return PipelineConfig(max_workers=1, max_upload_bytes=10, suggestion_limit=10)


@pytest.fixture
def make_processor(records, sink, pipeline):
    created = []

    def factory(*results, transcriber=None):
        analyzer = ScriptedAnalyzer(*results)
        intelligence = ConversationIntelligenceService(records, analyzer=analyzer, sink=sink, locks=KeyedLock())
        processor = TranscriptProcessor(records, intelligence, transcriber=transcriber or FakeTranscriber(PAYLOAD), sink=sink, pipeline_config=pipeline)
        processor.analyzer = analyzer
        created.append(processor)
        return processor

    yield factory

    for processor in created:
        processor.shutdown()


def test_text_submission_completes(make_processor, records, sink) -> None:
    processor = make_processor(build_analysis([speaker('Maria', communication={'frequency': 'weekly'})]))

    pending = processor.submit_text('acct-1', 'Alex', '  SPEAKER 1: hi Maria  ')
    assert pending.status == 'pending'

    done = processor.wait(pending.id, timeout=10)

    assert done.status == 'completed'
    assert done.error is None
    assert done.insights['people'] == 1
    assert done.processing_time_ms is not None
    assert processor.analyzer.calls == [('SPEAKER 1: hi Maria', 'Alex')]

    stored = records.get_transcript(pending.id, account_id='acct-1')
    assert stored.status == 'completed'
    assert stored.completed_at is not None
    assert sink.events[0] == 'processing'
    assert sink.events[-1] == 'complete'


def test_audio_submission_transcribes_then_analyzes(make_processor, records) -> None:
    transcriber = FakeTranscriber(PAYLOAD)
    processor = make_processor(build_analysis(), transcriber=transcriber)

    pending = processor.submit_audio('acct-1', 'Alex', b'audio', 'call.mp3', num_speakers=2)
    done = processor.wait(pending.id, timeout=10)

    assert transcriber.calls == [(b'audio', 'call.mp3')]
    assert done.status == 'completed'
    assert [g.speaker for g in done.speakers] == ['SPEAKER 1', 'SPEAKER 2']
    assert done.full_text.startswith('[00:00:00 - 00:00:04] SPEAKER 1: Hi Maria, how are you? Great, thanks.')
    assert 'SPEAKER 2: Want to meet next Monday?' in done.full_text
    assert processor.analyzer.calls[0][0] == done.full_text
    assert records.get_transcript(pending.id).full_text == done.full_text


def test_transcription_failure_marks_transcript_failed(make_processor, records, sink) -> None:
    error = TranscriptionError('Transcribe is unavailable', code='TRANSCRIPTION_UNAVAILABLE', transient=True)
    processor = make_processor(build_analysis(), transcriber=FakeTranscriber(error=error))

    pending = processor.submit_audio('acct-1', 'Alex', b'audio', 'call.wav')
    done = processor.wait(pending.id, timeout=10)

    assert done.status == 'failed'
    assert done.error.code == 'TRANSCRIPTION_UNAVAILABLE'
    assert processor.analyzer.calls == []
    assert records.get_transcript(pending.id).error.message == 'Transcribe is unavailable'
    assert sink.notifications[-1].event == 'error'
    assert sink.notifications[-1].data == {'code': 'TRANSCRIPTION_UNAVAILABLE'}


def test_silent_recording_fails_with_no_speech(make_processor) -> None:
    processor = make_processor(build_analysis(), transcriber=FakeTranscriber({'segments': [{'text': '  ', 'start': 0}]}))

    done = processor.wait(processor.submit_audio('acct-1', 'Alex', b'audio', 'call.wav').id, timeout=10)

    assert done.status == 'failed'
    assert done.error.code == 'NO_SPEECH'


def test_analysis_failure_keeps_transcribed_text(make_processor, records) -> None:
    processor = make_processor({'speakers': []})

    pending = processor.submit_audio('acct-1', 'Alex', b'audio', 'call.mp3')
    done = processor.wait(pending.id, timeout=10)

    assert done.status == 'failed'
    assert done.error.code == 'INVALID_ANALYSIS'
    assert 'Hi Maria' in records.get_transcript(pending.id).full_text


def test_unexpected_error_is_recorded(make_processor) -> None:
    processor = make_processor(RuntimeError('model exploded'))

    done = processor.wait(processor.submit_text('acct-1', 'Alex', 'hello').id, timeout=10)

    assert done.status == 'failed'
    assert done.error.code == 'PROCESSING_FAILED'
    assert done.error.message == 'model exploded'


@pytest.mark.parametrize('audio, filename, code', [
    (b'audio', 'notes.pdf', 'UNSUPPORTED_FORMAT'),
    (b'audio', 'noextension', 'UNSUPPORTED_FORMAT'),
    (b'', 'call.mp3', 'EMPTY_UPLOAD'),
    (b'x' * 11, 'call.mp3', 'FILE_TOO_LARGE'),
])
def test_rejected_uploads(make_processor, store, audio, filename, code) -> None:
    processor = make_processor(build_analysis())

    with pytest.raises(SubmissionError) as excinfo:
        processor.submit_audio('acct-1', 'Alex', audio, filename)

    assert excinfo.value.code == code
    assert store.count('transcripts') == 0


def test_empty_text_is_rejected(make_processor) -> None:
    processor = make_processor(build_analysis())

    with pytest.raises(SubmissionError) as excinfo:
        processor.submit_text('acct-1', 'Alex', '   ')

    assert excinfo.value.code == 'EMPTY_TRANSCRIPT'


def test_process_unknown_transcript_returns_none(make_processor) -> None:
    assert make_processor(build_analysis()).process('missing') is None


def test_finished_work_is_not_retained(make_processor, records) -> None:
    processor = make_processor(build_analysis())

    ids = [processor.submit_text('acct-1', 'Alex', f'SPEAKER 1: note {i}').id for i in range(3)]
    processor.shutdown()

    assert processor.futures == {}
    assert [processor.wait(transcript_id).status for transcript_id in ids] == ['completed'] * 3
