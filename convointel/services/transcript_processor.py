"""
Transcript submission and background processing.
"""

import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional

from ..models.core import Transcript, TranscriptError, new_id
from ..utils.config import PipelineConfig, config
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now
from ..utils.transcribe_client import TranscriptionError
from .analysis import AnalysisError, TranscriptionService
from .merge_engine import ConversationIntelligenceService
from .notifications import NotificationSink
from .record_store import Records
from .speaker_segmenter import assign_speakers, format_transcript, group_by_speaker, segments_from_payload

logger = get_logger(__name__)


class SubmissionError(Exception):
    """Rejected transcript submission."""

    def __init__(self, message: str, code: str = 'INVALID_SUBMISSION'):
        super().__init__(message)
        self.code = code


class TranscriptProcessor:
    """Accept recordings or transcripts and process them on a worker pool.

    A transcript moves ``pending -> processing -> completed | failed``.
    Submitted work cannot be cancelled; callers observe the transcript record.
    """

    def __init__(self,
                 records: Records,
                 intelligence: ConversationIntelligenceService,
                 transcriber: Optional[TranscriptionService] = None,
                 sink: Optional[NotificationSink] = None,
                 pipeline_config: Optional[PipelineConfig] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.records = records
        self.intelligence = intelligence
        self.transcriber = transcriber or TranscriptionService()
        self.sink = sink or intelligence.sink
        self.pipeline = pipeline_config or config.pipeline
        self.executor = executor or ThreadPoolExecutor(max_workers=self.pipeline.max_workers, thread_name_prefix='transcript')
        self.futures: Dict[str, Future] = {}

        logger.info(f'Initialized TranscriptProcessor with {self.pipeline.max_workers} workers')

    def _validate_upload(self, audio_bytes: bytes, filename: str) -> None:
        extension = os.path.splitext(filename or '')[1].lower()
        if extension not in self.pipeline.allowed_extensions:
            raise SubmissionError(f'Unsupported file type {extension or "(none)"}; allowed: {", ".join(self.pipeline.allowed_extensions)}',
                                  code='UNSUPPORTED_FORMAT')
        if not audio_bytes:
            raise SubmissionError('Audio file is empty', code='EMPTY_UPLOAD')
        if len(audio_bytes) > self.pipeline.max_upload_bytes:
            raise SubmissionError(f'Audio file is {len(audio_bytes)} bytes; the limit is {self.pipeline.max_upload_bytes}', code='FILE_TOO_LARGE')

    def _create(self, account_id: str, account_name: str, filename: str, num_speakers: int, full_text: str = '') -> Transcript:
        now = utc_now()
        transcript = Transcript(id=new_id(),
                                account_id=account_id,
                                account_name=account_name,
                                filename=filename,
                                num_speakers=max(int(num_speakers or 1), 1),
                                full_text=full_text,
                                status='pending',
                                created_at=now,
                                updated_at=now)
        return self.records.save_transcript(transcript)

    def submit_audio(self, account_id: str, account_name: str, audio_bytes: bytes, filename: str, num_speakers: int = 2) -> Transcript:
        """Queue an audio recording for transcription and analysis.

        Args:
            account_id: Owning account
            account_name: Display name of the account owner
            audio_bytes: Raw audio
            filename: Original filename; its extension must be allowed
            num_speakers: Expected number of speakers

        Returns:
            The pending Transcript record

        Raises:
            SubmissionError: If the file type or size is not accepted
        """
        self._validate_upload(audio_bytes, filename)
        transcript = self._create(account_id, account_name, filename, num_speakers)
        self._track(transcript.id, self.executor.submit(self.process, transcript.id, audio_bytes=audio_bytes))
        logger.info(f'Queued audio transcript {transcript.id} ({filename}, {len(audio_bytes)} bytes) for account {account_id}')
        return transcript

    def submit_text(self, account_id: str, account_name: str, text: str, filename: str = 'transcript.txt', num_speakers: int = 2) -> Transcript:
        """Queue an existing transcript text for analysis.

        Raises:
            SubmissionError: If the text is empty
        """
        if not text or not text.strip():
            raise SubmissionError('Transcript text is empty', code='EMPTY_TRANSCRIPT')

        transcript = self._create(account_id, account_name, filename, num_speakers, full_text=text.strip())
        self._track(transcript.id, self.executor.submit(self.process, transcript.id))
        logger.info(f'Queued text transcript {transcript.id} ({len(text)} chars) for account {account_id}')
        return transcript

    def _track(self, transcript_id: str, future: Future) -> None:
        # Finished futures are dropped; their outcome lives on the transcript record
        self.futures[transcript_id] = future
        future.add_done_callback(lambda _: self.futures.pop(transcript_id, None))

    def wait(self, transcript_id: str, timeout: Optional[float] = None) -> Optional[Transcript]:
        """Block until a submitted transcript finishes processing.

        Transcripts that already finished are read back from the store.
        """
        future = self.futures.pop(transcript_id, None)
        return future.result(timeout=timeout) if future else self.records.get_transcript(transcript_id)

    def process(self, transcript_id: str, audio_bytes: Optional[bytes] = None, now=None) -> Optional[Transcript]:
        """Run transcription (for audio) and analysis for a stored transcript.

        Never raises: failures are recorded on the transcript as ``failed``
        with an error message and code. Text obtained before a failure is kept.

        Args:
            transcript_id: Transcript to process
            audio_bytes: Audio to transcribe; when None the stored full text is analyzed
            now: Reference time passed to the analysis

        Returns:
            The final Transcript record, or None if it does not exist
        """
        transcript = self.records.get_transcript(transcript_id)
        if transcript is None:
            logger.error(f'Transcript {transcript_id} not found')
            return None

        started = time.monotonic()
        account_id = transcript.account_id

        try:
            transcript.status = 'processing'
            transcript.updated_at = utc_now()
            self.records.save_transcript(transcript)
            self.sink.processing(account_id, transcript_id)

            if audio_bytes is not None:
                self.sink.progress(account_id, transcript_id, 'transcribing', 'Transcribing audio')
                payload = self.transcriber.transcribe(audio_bytes, transcript.filename)
                segments = assign_speakers(segments_from_payload(payload), transcript.num_speakers)
                if not segments:
                    raise TranscriptionError('No speech detected in recording', code='NO_SPEECH', transient=False)

                transcript.full_text = format_transcript(segments)
                transcript.speakers = group_by_speaker(segments)
                transcript.updated_at = utc_now()
                self.records.save_transcript(transcript)
                logger.info(f'Transcript {transcript_id} has {len(segments)} segments from {len(transcript.speakers)} speakers')

            outcome = self.intelligence.process_analysis(transcript_id, transcript.full_text, account_id, transcript.account_name, now)

            transcript.insights = outcome.summary()
            transcript.status = 'completed'
            transcript.error = None
            transcript.completed_at = utc_now()

        except TranscriptionError as e:
            self._fail(transcript, str(e), e.code)
            self.sink.error(account_id, transcript_id, str(e), e.code)
        except AnalysisError as e:
            self._fail(transcript, str(e), e.code)
        except Exception as e:
            self._fail(transcript, str(e), 'PROCESSING_FAILED')

        transcript.processing_time_ms = int((time.monotonic() - started) * 1000)
        transcript.updated_at = utc_now()
        try:
            self.records.save_transcript(transcript)
        except Exception as e:
            logger.error(f'Failed to save final state of transcript {transcript_id}: {e}')

        logger.info(f'Transcript {transcript_id} {transcript.status} in {transcript.processing_time_ms} ms')
        return transcript

    @staticmethod
    def _fail(transcript: Transcript, message: str, code: str) -> None:
        logger.error(f'Transcript {transcript.id} failed ({code}): {message}')
        transcript.status = 'failed'
        transcript.error = TranscriptError(message=message, code=code)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
