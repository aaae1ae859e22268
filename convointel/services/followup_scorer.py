"""
Suggested follow-ups computed from how long it has been since each contact.
"""

from dataclasses import dataclass
from typing import Iterable, List

from ..models.core import FollowUp, Person
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import days_between

logger = get_logger(__name__)

# Days without contact before a person is suggested, by usual contact frequency
FREQUENCY_THRESHOLDS = {
    'daily': 2,
    'weekly': 10,
    'monthly': 35,
    'quarterly': 100,
    'yearly': 400,
    'rarely': 730,
}
DEFAULT_THRESHOLD = 30


@dataclass
class OverdueSuggestion:
    person: Person
    reason: str
    priority: str
    days_since_contact: int


def compute_overdue(people: Iterable[Person], now) -> List[OverdueSuggestion]:
    """Suggest reconnecting with people contacted less recently than usual.

    People past their frequency threshold get a ``medium`` suggestion, past
    twice the threshold a ``high`` one. People never contacted are skipped.
    Nothing is persisted; callers dedupe against stored suggestions.

    Args:
        people: People to score
        now: Reference time

    Returns:
        Suggestions, most overdue first
    """
    suggestions = []

    for person in people:
        last_contacted = person.communication.last_contacted
        if last_contacted is None:
            continue

        days = days_between(last_contacted, now)
        frequency = person.communication.frequency
        threshold = FREQUENCY_THRESHOLDS.get(frequency, DEFAULT_THRESHOLD)

        if days > threshold:
            suggestions.append(
                OverdueSuggestion(person=person,
                                  reason=f"You haven't connected with {person.name} in {days} days. You usually talk {frequency}.",
                                  priority='high' if days > threshold * 2 else 'medium',
                                  days_since_contact=days))

    suggestions.sort(key=lambda s: s.days_since_contact, reverse=True)
    logger.debug(f'Computed {len(suggestions)} overdue suggestions')
    return suggestions


def merge_suggestions(existing: List[FollowUp], computed: List[OverdueSuggestion], limit: int = 10) -> List[OverdueSuggestion]:
    """Drop computed suggestions for people that already have an open suggested follow-up.

    Args:
        existing: Stored follow-ups
        computed: Output of ``compute_overdue``
        limit: Maximum number of suggestions returned

    Returns:
        At most ``limit`` new suggestions
    """
    covered = {f.person_id for f in existing if f.type == 'suggested' and not f.completed}
    fresh = [s for s in computed if s.person.id not in covered]
    return fresh[:max(limit, 0)]
