"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
import os
import sys
from typing import Any, Dict, List

from fastmcp import FastMCP

# Add the project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from convointel.services.merge_engine import ConversationIntelligenceService  # noqa: E402
from convointel.services.record_store import Records, RecordStoreError, create_record_store  # noqa: E402
from convointel.services.tracking import TrackingError, TrackingService  # noqa: E402
from convointel.services.transcript_processor import SubmissionError, TranscriptProcessor  # noqa: E402
from convointel.utils.config import config  # noqa: E402
from convointel.utils.health_check import get_health_status  # noqa: E402
from convointel.utils.logging_config import get_logger  # noqa: E402
from convointel.utils.timestamp_utils import to_iso  # noqa: E402

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Conversation Intelligence')
records = Records(create_record_store())
intelligence_service = ConversationIntelligenceService(records)
processor = TranscriptProcessor(records, intelligence_service)
tracking_service = TrackingService(records)


def _require(value: str, name: str) -> None:
    if not value or not value.strip():
        raise ValueError(f'{name} is required')


def _transcript_view(transcript) -> Dict[str, Any]:
    return {
        'id': transcript.id,
        'status': transcript.status,
        'filename': transcript.filename,
        'full_text': transcript.full_text,
        'insights': transcript.insights,
        'error': {
            'message': transcript.error.message,
            'code': transcript.error.code
        } if transcript.error else None,
        'processing_time_ms': transcript.processing_time_ms,
        'completed_at': to_iso(transcript.completed_at),
    }


@mcp.tool()
def analyze_transcript(account_id: str, account_name: str, transcript_text: str, num_speakers: int = 2) -> Dict[str, Any]:
    """Analyze a conversation transcript and update people, tasks, reminders and follow-ups.

    Args:
        account_id: Account ID
        account_name: Display name of the account owner
        transcript_text: Speaker-labelled transcript text
        num_speakers: Expected number of speakers (default: 2)

    Returns:
        Transcript status, insights summary, and error (if any)

    Raises:
        Exception: If the submission is rejected or processing cannot run
    """
    try:
        _require(account_id, 'Account ID')

        transcript = processor.submit_text(account_id, account_name, transcript_text, num_speakers=num_speakers)
        transcript = processor.wait(transcript.id)

        logger.debug(f'MCP analysis of transcript {transcript.id} finished with status {transcript.status}')
        return _transcript_view(transcript)

    except SubmissionError as e:
        logger.error(f'Submission rejected in MCP analyze: {e}')
        raise Exception(f'Transcript analysis failed: {e}')
    except Exception as e:
        logger.error(f'Unexpected error in MCP analyze: {e}')
        raise Exception(f'Transcript analysis failed: {e}')


@mcp.tool()
def get_transcript(account_id: str, transcript_id: str) -> Dict[str, Any]:
    """Get a transcript's processing status and results.

    Args:
        account_id: Account ID
        transcript_id: Transcript ID

    Returns:
        Transcript status, text, insights summary, and error (if any)
    """
    try:
        _require(account_id, 'Account ID')
        transcript = records.get_transcript(transcript_id, account_id)
        if transcript is None:
            raise ValueError(f'Transcript {transcript_id} not found')
        return _transcript_view(transcript)

    except RecordStoreError as e:
        logger.error(f'Record store error in MCP get_transcript: {e}')
        raise Exception(f'Transcript lookup failed: {e}')


@mcp.tool()
def suggested_followups(account_id: str) -> List[Dict[str, Any]]:
    """List people worth reconnecting with.

    Args:
        account_id: Account ID

    Returns:
        Stored open suggestions followed by computed overdue contacts
    """
    try:
        _require(account_id, 'Account ID')
        return tracking_service.suggested_followups(account_id)

    except RecordStoreError as e:
        logger.error(f'Record store error in MCP suggested_followups: {e}')
        raise Exception(f'Suggested follow-ups failed: {e}')


@mcp.tool()
def complete_followup(account_id: str, followup_id: str, completed: bool = True) -> Dict[str, Any]:
    """Mark a follow-up completed or reopen it.

    Args:
        account_id: Account ID
        followup_id: Follow-up ID
        completed: New completion state (default: True)

    Returns:
        Follow-up ID and completion state
    """
    try:
        followup = tracking_service.complete_followup(account_id, followup_id, completed)
        return {'id': followup.id, 'completed': followup.completed, 'completed_at': to_iso(followup.completed_at)}

    except (TrackingError, RecordStoreError) as e:
        logger.error(f'Error in MCP complete_followup: {e}')
        raise Exception(f'Completing follow-up failed: {e}')


@mcp.tool()
def complete_reminder(account_id: str, reminder_id: str, completed: bool = True) -> Dict[str, Any]:
    """Mark a reminder completed or reopen it.

    Args:
        account_id: Account ID
        reminder_id: Reminder ID
        completed: New completion state (default: True)

    Returns:
        Reminder ID and completion state
    """
    try:
        reminder = tracking_service.complete_reminder(account_id, reminder_id, completed)
        return {'id': reminder.id, 'completed': reminder.completed, 'completed_at': to_iso(reminder.completed_at)}

    except (TrackingError, RecordStoreError) as e:
        logger.error(f'Error in MCP complete_reminder: {e}')
        raise Exception(f'Completing reminder failed: {e}')


@mcp.tool()
def network_graph(account_id: str) -> Dict[str, Any]:
    """Get the account's contact network.

    Args:
        account_id: Account ID

    Returns:
        Graph nodes and edges plus summary statistics
    """
    try:
        _require(account_id, 'Account ID')
        return {**tracking_service.network_graph(account_id), 'stats': tracking_service.network_stats(account_id)}

    except RecordStoreError as e:
        logger.error(f'Record store error in MCP network_graph: {e}')
        raise Exception(f'Network graph failed: {e}')


@mcp.tool()
def health_status() -> Dict[str, Any]:
    """Report the health of Bedrock, Transcribe and the record store.

    Returns:
        Health status per component
    """
    return get_health_status()


if __name__ == '__main__':
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    mcp.run(transport=transport, host=host, port=port)
