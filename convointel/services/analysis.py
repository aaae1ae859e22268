"""
Boundaries to the external transcription and conversation-analysis services.
"""

from typing import Any, Dict, Optional

from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.config import config
from ..utils.json_utils import parse_json_lenient
from ..utils.logging_config import get_logger
from ..utils.transcribe_client import TranscribeClient, TranscriptionError

logger = get_logger(__name__)

OUTPUT_SHAPE = """{
  "conversation_metadata": {
    "title": "string",
    "summary": {"short": "one line", "extended": "up to five lines"},
    "duration_minutes": 30,
    "tags": ["meeting", "work"],
    "detected_speakers": 2
  },
  "speakers": [
    {
      "speaker_label": "SPEAKER 1",
      "name": "John Doe",
      "is_user": false,
      "profile": {
        "relationship": {"type": "friend|family|colleague|client|investor|mentor|acquaintance|other", "subtype": "string", "source": "string"},
        "communication": {"frequency": "daily|weekly|monthly|quarterly|yearly|rarely"},
        "sentiment": {"closenessScore": 0.8, "tone": "warm|neutral|formal|casual|professional"},
        "summary": "string",
        "key_info": {
          "hobbies": ["string"],
          "interests": ["string"],
          "favorites": {"movies": ["string"], "music": ["string"], "books": ["string"], "food": ["string"]},
          "travel": ["string"],
          "work_info": {"company": "string", "position": "string", "industry": "string"},
          "personal_info": {"relatives": ["string"], "pets": ["string"], "birthdate": "string", "location": ["string"]}
        },
        "common_topics": [{"topic": "string", "frequency": 1}],
        "important_dates": [{"date": "YYYY-MM-DD or descriptive text", "description": "string", "type": "string"}]
      }
    }
  ],
  "action_items": [{"description": "string", "assigned_to": "string", "from_speaker": "SPEAKER 1", "extracted_from": "quote"}],
  "tasks": [{"title": "string", "from": "SPEAKER 1", "due_date_text": "next Monday at 3pm", "dueDate": "", "priority": "high|normal|low", "extracted_from": "quote"}],
  "reminders": [{"title": "string", "from": "SPEAKER 1", "due_date_text": "Friday 2 PM", "dueDate": "", "priority": "high|normal|low", "category": "meeting|call|task|deadline|personal|email|followup", "extracted_from": "quote"}],
  "pending_followups": [{"person": "string", "description": "string", "priority": "high|medium|low", "extracted_from": "quote"}],
  "suggested_followups": [{"person": "string", "reason": "string", "priority": "high|medium|low"}],
  "network_connections": [{"person1": "string", "person2": "string", "relationship_type": "string", "strength": 0.9}]
}"""


class AnalysisError(Exception):
    """Conversation analysis failure.

    Attributes:
        code: Short machine-readable error code
    """

    def __init__(self, message: str, code: str = 'ANALYSIS_FAILED'):
        super().__init__(message)
        self.code = code


class ConversationAnalysisService:
    """Turn a speaker-labelled transcript into structured conversation intelligence using Bedrock."""

    def __init__(self, llm: Optional[BedrockLLM] = None):
        """Initialize the conversation analysis service."""
        self.llm = llm or BedrockLLM(config.bedrock_llm)

        logger.info('Initialized ConversationAnalysisService')

    def analyze(self, transcript_text: str, account_name: str) -> Dict[str, Any]:
        """Analyze a transcript.

        The result is untrusted: callers must sanitize and validate it.

        Args:
            transcript_text: Speaker-labelled transcript text
            account_name: Display name of the account owner

        Returns:
            Raw analysis dict

        Raises:
            AnalysisError: If the model call fails or returns no JSON object
        """
        if not transcript_text or not transcript_text.strip():
            raise AnalysisError('Transcript is empty', code='EMPTY_TRANSCRIPT')

        system_prompt = f"""
You are an active listening assistant. Convert a raw multi-speaker transcript into structured conversational intelligence.

The account owner is "{account_name}". Mark the speaker who is the account owner with "is_user": true.

Instructions:
- Detect every unique speaker. Use a speaker's name when it is said in the conversation, otherwise keep the speaker label.
- Give a short title (5-8 words), a one-line summary and an extended summary.
- Extract action items, tasks and reminders. Keep the deadline exactly as spoken in "due_date_text" (e.g. "next Monday at 3pm"). Fill "dueDate" (ISO 8601) only when an exact calendar date is stated.
- Extract follow-ups someone committed to (pending_followups) and people worth reconnecting with (suggested_followups).
- Build a personal profile for each speaker who is not the account owner: relationship, communication frequency, sentiment, hobbies, interests, favorites, work and personal details.
- Record relationships between people mentioned in the conversation as network_connections.
- Dates must be ISO strings (YYYY-MM-DD) or descriptive text. Lists must be JSON arrays, never stringified JSON.
- Only include facts stated or clearly implied in the conversation.

Return a single JSON object with this exact structure:
```json
{OUTPUT_SHAPE}
```"""

        llm_messages = [{
            'role': 'user',
            'content': [{
                'text': f'Analyze this conversation transcript:\n{transcript_text}'
            }]
        }, {
            'role': 'assistant',
            'content': [{
                'text': '```json'
            }]
        }]

        try:
            response, metrics = self.llm.generate_response(messages=llm_messages, system_prompt=system_prompt, stop_sequences=['```'])
        except BedrockLLMError as e:
            logger.error(f'LLM error during conversation analysis: {e}')
            raise AnalysisError(f'Conversation analysis failed: {e}', code='ANALYSIS_UNAVAILABLE')

        if metrics:
            logger.debug(f'Conversation analysis usage: {metrics}')

        try:
            analysis = parse_json_lenient(response)
        except ValueError as e:
            logger.error(f'Failed to parse conversation analysis (length {len(response)}): {e}')
            raise AnalysisError('Conversation analysis returned invalid JSON', code='INVALID_ANALYSIS')

        if not isinstance(analysis, dict):
            logger.error(f'Expected analysis object, got {type(analysis).__name__}')
            raise AnalysisError('Conversation analysis returned invalid JSON', code='INVALID_ANALYSIS')

        logger.info(f'Conversation analysis completed with {len(analysis.get("speakers") or [])} speakers')
        return analysis


class TranscriptionService:
    """Speech-to-text boundary backed by Amazon Transcribe."""

    def __init__(self, client: Optional[TranscribeClient] = None):
        self.client = client or TranscribeClient(config.transcribe)

    def transcribe(self, audio_bytes: bytes, filename: str) -> Dict[str, Any]:
        """Transcribe audio into ``{segments: [{text, start, end}]}``.

        Raises:
            TranscriptionError: With ``transient`` set for network or timeout failures
        """
        try:
            return self.client.transcribe_audio(audio_bytes, filename)
        except TranscriptionError as e:
            logger.error(f'Transcription of {filename} failed ({e.code}, transient={e.transient}): {e}')
            raise
