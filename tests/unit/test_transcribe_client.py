import pytest
import requests
from botocore.exceptions import ClientError, EndpointConnectionError

from convointel.utils import transcribe_client
from convointel.utils.config import TranscribeConfig
from convointel.utils.transcribe_client import TranscribeClient, TranscriptionError, media_format, parse_transcript_json

RESULT = {
    'results': {
        'transcripts': [{'transcript': 'Hi Maria. Great, thanks.'}],
        'audio_segments': [
            {'transcript': 'Hi Maria.', 'start_time': '0.5', 'end_time': '1.2'},
            {'transcript': ' ', 'start_time': '1.2', 'end_time': '1.3'},
            {'transcript': 'Great, thanks.', 'start_time': '2.0', 'end_time': '3.1'},
        ],
    }
}


class FakeS3:

    def __init__(self):
        self.objects = {}
        self.deleted = []

    def put_object(self, Bucket, Key, Body):
        self.objects[Key] = Body

    def delete_object(self, Bucket, Key):
        self.deleted.append(Key)


class FakeTranscribe:

    def __init__(self, statuses, failure_reason='', start_error=None):
        self.statuses = list(statuses)
        self.failure_reason = failure_reason
        self.start_error = start_error
        self.jobs = []

    def start_transcription_job(self, **kwargs):
        if self.start_error:
            raise self.start_error
        self.jobs.append(kwargs)

    def get_transcription_job(self, TranscriptionJobName):
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        job = {'TranscriptionJobStatus': status}
        if status == 'COMPLETED':
            job['Transcript'] = {'TranscriptFileUri': 'https://example.com/result.json'}
        if status == 'FAILED':
            job['FailureReason'] = self.failure_reason
        return {'TranscriptionJob': job}

    def list_transcription_jobs(self, MaxResults):
        return {'TranscriptionJobSummaries': []}


class FakeResponse:

    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


@pytest.fixture
def settings():
    return TranscribeConfig(region='us-east-1', bucket='audio', key_prefix='uploads/', language_code='en-US', poll_interval=0, timeout=0)


@pytest.fixture
def fetched(monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return FakeResponse(RESULT)

    monkeypatch.setattr(transcribe_client.requests, 'get', fake_get)
    return calls


def test_media_format() -> None:
    assert media_format('call.MP3') == 'mp3'
    assert media_format('memo.m4a') == 'mp4'
    assert media_format('notes.txt') is None
    assert media_format('') is None


def test_parse_prefers_audio_segments() -> None:
    assert parse_transcript_json(RESULT) == [
        {'text': 'Hi Maria.', 'start': 0.5, 'end': 1.2},
        {'text': 'Great, thanks.', 'start': 2.0, 'end': 3.1},
    ]


def test_parse_falls_back_to_flat_transcript() -> None:
    data = {
        'results': {
            'transcripts': [{'transcript': 'Hello there'}],
            'items': [
                {'start_time': '0.1', 'end_time': '0.4'},
                {'type': 'punctuation'},
                {'start_time': '0.5', 'end_time': '0.9'},
            ],
        }
    }

    assert parse_transcript_json(data) == [{'text': 'Hello there', 'start': 0.1, 'end': 0.9}]
    assert parse_transcript_json({'results': {'transcripts': [{'transcript': ''}]}}) == []


def test_transcribe_audio_success(settings, fetched) -> None:
    s3 = FakeS3()
    transcribe = FakeTranscribe(['IN_PROGRESS', 'COMPLETED'])
    client = TranscribeClient(settings, s3_client=s3, transcribe_client=transcribe)
    settings.timeout = 60

    payload = client.transcribe_audio(b'audio', 'call.wav')

    assert [s['text'] for s in payload['segments']] == ['Hi Maria.', 'Great, thanks.']
    assert transcribe.jobs[0]['MediaFormat'] == 'wav'
    assert transcribe.jobs[0]['Media']['MediaFileUri'].startswith('s3://audio/uploads/convointel-')
    assert fetched == ['https://example.com/result.json']
    assert s3.deleted == list(s3.objects)


def test_unsupported_format_is_permanent(settings) -> None:
    client = TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['COMPLETED']))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'audio', 'notes.pdf')

    assert excinfo.value.code == 'UNSUPPORTED_FORMAT'
    assert excinfo.value.transient is False


def test_empty_audio(settings) -> None:
    client = TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['COMPLETED']))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'', 'call.mp3')

    assert excinfo.value.code == 'EMPTY_AUDIO'


def test_failed_job_reports_format_problem(settings) -> None:
    s3 = FakeS3()
    client = TranscribeClient(settings, s3_client=s3, transcribe_client=FakeTranscribe(['FAILED'], failure_reason='Invalid media format'))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'audio', 'call.mp3')

    assert excinfo.value.code == 'UNSUPPORTED_FORMAT'
    assert excinfo.value.transient is False
    assert len(s3.deleted) == 1


def test_job_timeout_is_transient(settings) -> None:
    client = TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['IN_PROGRESS']))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'audio', 'call.mp3')

    assert excinfo.value.code == 'TRANSCRIPTION_TIMEOUT'
    assert excinfo.value.transient is True


def test_throttling_is_transient(settings) -> None:
    error = ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'slow down'}}, 'StartTranscriptionJob')
    client = TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['COMPLETED'], start_error=error))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'audio', 'call.mp3')

    assert excinfo.value.code == 'TRANSCRIPTION_FAILED'
    assert excinfo.value.transient is True


def test_connection_error_is_unavailable(settings) -> None:
    error = EndpointConnectionError(endpoint_url='https://transcribe.us-east-1.amazonaws.com')
    client = TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['COMPLETED'], start_error=error))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'audio', 'call.mp3')

    assert excinfo.value.code == 'TRANSCRIPTION_UNAVAILABLE'


def test_fetch_failure_is_transient(settings, monkeypatch) -> None:

    def fake_get(url, timeout):
        raise requests.ConnectionError('reset')

    monkeypatch.setattr(transcribe_client.requests, 'get', fake_get)
    client = TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['COMPLETED']))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'audio', 'call.mp3')

    assert excinfo.value.transient is True


def test_invalid_result_document(settings, monkeypatch) -> None:
    monkeypatch.setattr(transcribe_client.requests, 'get', lambda url, timeout: FakeResponse(ValueError('not json')))
    client = TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['COMPLETED']))

    with pytest.raises(TranscriptionError) as excinfo:
        client.transcribe_audio(b'audio', 'call.mp3')

    assert excinfo.value.code == 'TRANSCRIPTION_FAILED'
    assert excinfo.value.transient is False


def test_health_check(settings) -> None:
    assert TranscribeClient(settings, s3_client=FakeS3(), transcribe_client=FakeTranscribe(['COMPLETED'])).health_check() is True
