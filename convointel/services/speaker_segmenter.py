"""
Speaker segmentation over time-stamped transcription segments.

``assign_speakers`` is a timing heuristic, not diarization: it cannot tell
voices apart, so the same person talking in two non-adjacent windows may get
two different labels.
"""

from typing import Any, Dict, List

from ..models.core import SpeakerGroup, TranscriptSegment
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import format_offset

logger = get_logger(__name__)

WINDOW_SECONDS = 10


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def segments_from_payload(payload: Dict[str, Any]) -> List[TranscriptSegment]:
    """Convert a transcription payload ``{segments: [{text, start, end}]}`` into segments.

    Segments with blank text are dropped.
    """
    segments = []
    for raw in payload.get('segments') or []:
        if not isinstance(raw, dict):
            continue
        text = str(raw.get('text') or '').strip()
        if not text:
            continue
        segments.append(
            TranscriptSegment(text=text,
                              start=_to_float(raw.get('start')),
                              end=_to_float(raw.get('end')),
                              speaker=str(raw.get('speaker') or '')))
    return segments


def assign_speakers(segments: List[TranscriptSegment], num_speakers: int) -> List[TranscriptSegment]:
    """Label segments by rotating through speakers per 10-second window.

    A new window (the segment start falls in a different 10s bucket than the
    previous segment) moves to the next label, cycling ``SPEAKER 1..n``.

    Args:
        segments: Segments in chronological order
        num_speakers: Expected number of speakers (at least 1 is used)

    Returns:
        The same segments with ``speaker`` set
    """
    num_speakers = max(int(num_speakers or 1), 1)
    turn = -1
    current_window = None

    for segment in segments:
        window = int(segment.start // WINDOW_SECONDS)
        if window != current_window:
            current_window = window
            turn += 1
        segment.speaker = f'SPEAKER {(turn % num_speakers) + 1}'

    logger.debug(f'Assigned {num_speakers} speaker labels across {turn + 1} windows')
    return segments


def group_by_speaker(segments: List[TranscriptSegment]) -> List[SpeakerGroup]:
    """Group segments per speaker label, in order of first appearance."""
    groups: Dict[str, SpeakerGroup] = {}
    for segment in segments:
        group = groups.get(segment.speaker)
        if group is None:
            group = groups[segment.speaker] = SpeakerGroup(label=segment.speaker)
        group.segments.append(segment)
        group.total_speaking_time += max(segment.end - segment.start, 0.0)
    return list(groups.values())


def format_transcript(segments: List[TranscriptSegment]) -> str:
    """Render segments as readable speaker turns.

    Each contiguous run of one speaker becomes a block
    ``[HH:MM:SS - HH:MM:SS] LABEL: text``.
    """
    blocks = []
    run: List[TranscriptSegment] = []

    def flush():
        if run:
            text = ' '.join(s.text.strip() for s in run if s.text.strip())
            blocks.append(f'[{format_offset(run[0].start)} - {format_offset(run[-1].end)}] {run[0].speaker}: {text}')

    for segment in segments:
        if run and segment.speaker != run[-1].speaker:
            flush()
            run = []
        run.append(segment)
    flush()

    return '\n\n'.join(blocks)
