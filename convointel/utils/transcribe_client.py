"""
Amazon Transcribe client wrapper: stages audio in S3, runs a batch job, and
returns time-stamped segments.
"""

import os
import time
import uuid
from typing import Any, Dict, List, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from .config import TranscribeConfig
from .logging_config import get_logger

logger = get_logger(__name__)

MEDIA_FORMATS = {
    '.mp3': 'mp3',
    '.wav': 'wav',
    '.m4a': 'mp4',
    '.mp4': 'mp4',
    '.webm': 'webm',
    '.ogg': 'ogg',
    '.flac': 'flac',
    '.amr': 'amr',
}

TRANSIENT_ERROR_CODES = ('ThrottlingException', 'LimitExceededException', 'InternalFailureException', 'ServiceUnavailable',
                         'RequestTimeout', 'SlowDown')


class TranscriptionError(Exception):
    """Transcription failure.

    Attributes:
        code: Short machine-readable error code
        transient: True when retrying the same input may succeed
    """

    def __init__(self, message: str, code: str = 'TRANSCRIPTION_FAILED', transient: bool = False):
        super().__init__(message)
        self.code = code
        self.transient = transient


def media_format(filename: str) -> Optional[str]:
    """Transcribe media format for a filename, or None if unsupported."""
    return MEDIA_FORMATS.get(os.path.splitext(filename or '')[1].lower())


def parse_transcript_json(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Convert an Amazon Transcribe result document into segments.

    Args:
        data: Transcript JSON as written by Transcribe

    Returns:
        List of {text, start, end} dicts
    """
    results = data.get('results') or {}
    segments = []

    for segment in results.get('audio_segments') or []:
        text = (segment.get('transcript') or '').strip()
        if text:
            segments.append({'text': text, 'start': float(segment.get('start_time', 0)), 'end': float(segment.get('end_time', 0))})

    if segments:
        return segments

    # Older result documents only carry the flat transcript and per-word items
    transcripts = results.get('transcripts') or []
    text = ' '.join((t.get('transcript') or '').strip() for t in transcripts).strip()
    if not text:
        return []
    timed = [item for item in results.get('items') or [] if 'start_time' in item]
    start = float(timed[0]['start_time']) if timed else 0.0
    end = float(timed[-1]['end_time']) if timed else 0.0
    return [{'text': text, 'start': start, 'end': end}]


class TranscribeClient:
    """Amazon Transcribe batch client with timeout and error classification."""

    def __init__(self, config: TranscribeConfig, s3_client=None, transcribe_client=None):
        """
        Initialize Transcribe client.

        Args:
            config: TranscribeConfig instance
            s3_client: Optional pre-built S3 client
            transcribe_client: Optional pre-built Transcribe client
        """
        self.config = config
        self.s3 = s3_client or boto3.client('s3', region_name=config.region)
        self.transcribe = transcribe_client or boto3.client('transcribe', region_name=config.region)

        logger.info(f'Initialized Transcribe client with staging bucket: {config.bucket}')

    def transcribe_audio(self, audio_bytes: bytes, filename: str) -> Dict[str, Any]:
        """
        Transcribe an audio recording.

        Args:
            audio_bytes: Raw audio content
            filename: Original filename, used to detect the media format

        Returns:
            {'segments': [{text, start, end}]}

        Raises:
            TranscriptionError: On unsupported format, job failure, or timeout
        """
        fmt = media_format(filename)
        if fmt is None:
            raise TranscriptionError(f'Unsupported audio format: {filename}', code='UNSUPPORTED_FORMAT', transient=False)
        if not audio_bytes:
            raise TranscriptionError('Audio file is empty', code='EMPTY_AUDIO', transient=False)

        job_name = f'convointel-{uuid.uuid4()}'
        key = f'{self.config.key_prefix}{job_name}{os.path.splitext(filename)[1].lower()}'

        try:
            self.s3.put_object(Bucket=self.config.bucket, Key=key, Body=audio_bytes)
            self.transcribe.start_transcription_job(TranscriptionJobName=job_name,
                                                    LanguageCode=self.config.language_code,
                                                    MediaFormat=fmt,
                                                    Media={'MediaFileUri': f's3://{self.config.bucket}/{key}'})
            logger.info(f'Started transcription job {job_name} for {filename} ({len(audio_bytes)} bytes)')

            transcript_uri = self._wait_for_job(job_name)

            response = requests.get(transcript_uri, timeout=30)
            response.raise_for_status()
            segments = parse_transcript_json(response.json())

            logger.info(f'Transcription job {job_name} produced {len(segments)} segments')
            return {'segments': segments}

        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            logger.error(f'Transcribe request failed ({code}): {e}')
            raise TranscriptionError(f'Transcription request failed: {e}', code='TRANSCRIPTION_FAILED', transient=code in TRANSIENT_ERROR_CODES)
        except BotoCoreError as e:
            logger.error(f'Transcribe connection error: {e}')
            raise TranscriptionError(f'Transcription service unreachable: {e}', code='TRANSCRIPTION_UNAVAILABLE', transient=True)
        except ValueError as e:
            logger.error(f'Invalid transcript document for job {job_name}: {e}')
            raise TranscriptionError(f'Invalid transcript document: {e}', code='TRANSCRIPTION_FAILED', transient=False)
        except requests.RequestException as e:
            logger.error(f'Failed to fetch transcript for job {job_name}: {e}')
            raise TranscriptionError(f'Failed to fetch transcript: {e}', code='TRANSCRIPTION_UNAVAILABLE', transient=True)
        finally:
            self._cleanup(key)

    def _wait_for_job(self, job_name: str) -> str:
        """Poll a job until it finishes; returns the transcript file URI."""
        deadline = time.monotonic() + self.config.timeout

        while True:
            job = self.transcribe.get_transcription_job(TranscriptionJobName=job_name)['TranscriptionJob']
            status = job.get('TranscriptionJobStatus')

            if status == 'COMPLETED':
                return job['Transcript']['TranscriptFileUri']

            if status == 'FAILED':
                reason = job.get('FailureReason', 'unknown reason')
                code = 'UNSUPPORTED_FORMAT' if 'format' in reason.lower() else 'TRANSCRIPTION_FAILED'
                raise TranscriptionError(f'Transcription job failed: {reason}', code=code, transient=False)

            if time.monotonic() >= deadline:
                raise TranscriptionError(f'Transcription job {job_name} timed out after {self.config.timeout}s',
                                         code='TRANSCRIPTION_TIMEOUT',
                                         transient=True)

            logger.debug(f'Transcription job {job_name} is {status}')
            time.sleep(self.config.poll_interval)

    def _cleanup(self, key: str) -> None:
        try:
            self.s3.delete_object(Bucket=self.config.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f'Failed to delete staged audio {key}: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the Transcribe service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            self.transcribe.list_transcription_jobs(MaxResults=1)
            return True

        except Exception as e:
            logger.error(f'Transcribe health check failed: {e}')
            return False
