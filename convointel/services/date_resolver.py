"""
Relative date resolution for free-text deadlines ("tomorrow at 2pm", "next Monday").
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from ..utils.logging_config import get_logger

logger = get_logger(__name__)

END_OF_DAY_HOUR = 17
FRIDAY = 4
WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

# Anchors are checked in this order; the first one contained in the text wins
ANCHORS = ('tomorrow', 'today', 'next week', 'end of week', 'end of day', 'next month')

_DURATION = re.compile(r'\bin\s+(\d+)\s+(hour|day|week)s?\b')
_CLOCK = re.compile(r'\b(\d{1,2})(?::(\d{2}))?\s*(a\.m\.|p\.m\.|am|pm)?(?![\w:])')
_UNIT_DELTAS = {'hour': timedelta(hours=1), 'day': timedelta(days=1), 'week': timedelta(weeks=1)}


def _parse_clock(text: str) -> Optional[tuple]:
    """Find a clock time such as "3pm", "3:30 p.m." or "15:00" in text.

    A bare number with neither minutes nor a meridiem is not a clock time.

    Returns:
        (hour, minute) tuple, or None if no clock time is present
    """
    for match in _CLOCK.finditer(text):
        hour_text, minute_text, meridiem = match.groups()
        if minute_text is None and meridiem is None:
            continue

        hour = int(hour_text)
        minute = int(minute_text) if minute_text else 0
        if meridiem:
            if hour < 1 or hour > 12:
                continue
            if meridiem.startswith('p') and hour < 12:
                hour += 12
            elif meridiem.startswith('a') and hour == 12:
                hour = 0
        if hour > 23 or minute > 59:
            continue
        return hour, minute
    return None


def _at(base: datetime, hour: int, minute: int = 0) -> datetime:
    return base.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _anchor_date(anchor: str, now: datetime) -> datetime:
    if anchor == 'tomorrow':
        return now + timedelta(days=1)
    if anchor == 'today':
        return now
    if anchor == 'next week':
        return now + timedelta(weeks=1)
    if anchor == 'end of week':
        friday = _at(now + timedelta(days=(FRIDAY - now.weekday()) % 7), END_OF_DAY_HOUR)
        # Past Friday 17:00 the week is over; use the next one
        return friday if friday > now else friday + timedelta(weeks=1)
    if anchor == 'end of day':
        return _at(now, END_OF_DAY_HOUR)
    return now + timedelta(days=30)


def resolve(text: Optional[str], now: datetime) -> Optional[datetime]:
    """Resolve relative-date text to an absolute datetime.

    Recognized, in priority order:
      1. named anchors: tomorrow, today, next week, end of week (coming Friday
         17:00, the following one once that has passed), end of day (17:00), next month (+30 days)
      2. durations: "in N hours|days|weeks"
      3. weekday names: next occurrence strictly after today, 17:00 by default

    For anchors and weekdays a clock time in the text replaces the time of day.

    Args:
        text: Free-text deadline phrase
        now: Reference time; the result keeps its tzinfo

    Returns:
        Resolved datetime, or None when no pattern matches
    """
    if not text or not isinstance(text, str):
        return None

    lowered = ' '.join(text.lower().split())

    for anchor in ANCHORS:
        if anchor in lowered:
            resolved = _anchor_date(anchor, now)
            clock = _parse_clock(lowered)
            if clock:
                resolved = _at(resolved, *clock)
            return resolved

    duration = _DURATION.search(lowered)
    if duration:
        amount = int(duration.group(1))
        return now + amount * _UNIT_DELTAS[duration.group(2)]

    for index, day in enumerate(WEEKDAYS):
        if day in lowered:
            days_ahead = (index - now.weekday()) % 7 or 7
            clock = _parse_clock(lowered) or (END_OF_DAY_HOUR, 0)
            return _at(now + timedelta(days=days_ahead), *clock)

    logger.debug(f'No date pattern matched: {text!r}')
    return None
