"""
Field validators: the boundary between untyped analysis output and typed records.

Each validator accepts anything (usually a sanitized dict) and returns a fully
populated record, substituting safe defaults for missing or invalid fields.
Validators never raise.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from ..models.core import (FOLLOWUP_PRIORITIES, FREQUENCIES, OBLIGATION_PRIORITIES, RELATIONSHIP_TYPES, REMINDER_CATEGORIES, TONES,
                           ActionItem, CommonTopic, Communication, Favorites, ImportantDate, KeyInfo, PersonalInfo, Profile,
                           Relationship, Sentiment, WorkInfo)
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import from_iso, utc_now

logger = get_logger(__name__)

DEFAULT_CLOSENESS = 0.5
DEFAULT_STRENGTH = 0.5


@dataclass
class ExtractedObligation:
    """A validated task or reminder, before it is bound to an account and transcript."""
    title: str = 'Untitled'
    from_speaker: str = ''
    due_date: Optional[datetime] = None
    due_date_text: str = ''
    priority: str = 'normal'
    category: str = 'task'
    extracted_from: str = ''


@dataclass
class ExtractedFollowUp:
    person: str = ''
    description: str = ''
    reason: str = ''
    priority: str = 'medium'
    extracted_from: str = ''


@dataclass
class ExtractedConnection:
    person1: str = ''
    person2: str = ''
    relationship_type: str = ''
    strength: float = DEFAULT_STRENGTH


def _total(default_factory: Callable[[], Any]):
    """Return ``default_factory()`` instead of raising."""

    def decorator(func):

        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.error(f'{func.__name__} failed, using defaults: {e}')
                return default_factory()

        return wrapper

    return decorator


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _get(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ''


def _choice(value: Any, allowed, default: str) -> str:
    text = _text(value).lower()
    return text if text in allowed else default


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _count(value: Any) -> int:
    number = _number(value)
    return max(int(number), 0) if number is not None else 0


def _unit_interval(value: Any, default: float) -> float:
    number = _number(value)
    if number is None or number < 0 or number > 1:
        return default
    return number


def _string_list(value: Any) -> List[str]:
    """Strings from a list, stripped, blanks and duplicates removed, order kept."""
    if not isinstance(value, list):
        return []
    seen = []
    for item in value:
        text = _text(item)
        if text and text not in seen:
            seen.append(text)
    return seen


@_total(Profile)
def validate_person_profile(data: Any) -> Profile:
    """Build a Profile from a (sanitized) speaker profile dict."""
    data = _dict(data)
    key_info = _dict(_get(data, 'key_info', 'keyInfo'))
    favorites = _dict(key_info.get('favorites'))
    work_info = _dict(_get(key_info, 'work_info', 'workInfo'))
    personal_info = _dict(_get(key_info, 'personal_info', 'personalInfo'))

    topics = []
    for topic in _get(data, 'common_topics', 'commonTopics') or []:
        topic = _dict(topic)
        name = _text(topic.get('topic'))
        if name:
            topics.append(CommonTopic(topic=name, frequency=max(_count(topic.get('frequency')), 1)))

    dates = []
    for date in _get(data, 'important_dates', 'importantDates') or []:
        date = _dict(date)
        when = _text(date.get('date'))
        if when:
            dates.append(ImportantDate(date=when, description=_text(date.get('description')), type=_text(date.get('type')) or 'other'))

    return Profile(summary=_text(data.get('summary')),
                   key_info=KeyInfo(hobbies=_string_list(key_info.get('hobbies')),
                                    interests=_string_list(key_info.get('interests')),
                                    favorites=Favorites(movies=_string_list(favorites.get('movies')),
                                                        music=_string_list(favorites.get('music')),
                                                        books=_string_list(favorites.get('books')),
                                                        food=_string_list(favorites.get('food'))),
                                    travel=_string_list(key_info.get('travel')),
                                    work_info=WorkInfo(company=_text(work_info.get('company')),
                                                       position=_text(work_info.get('position')),
                                                       industry=_text(work_info.get('industry'))),
                                    personal_info=PersonalInfo(relatives=_string_list(personal_info.get('relatives')),
                                                               pets=_string_list(personal_info.get('pets')),
                                                               birthdate=_text(personal_info.get('birthdate')),
                                                               location=_string_list(personal_info.get('location')))),
                   common_topics=topics,
                   important_dates=dates)


@_total(Relationship)
def validate_relationship(data: Any) -> Relationship:
    data = _dict(data)
    return Relationship(type=_choice(data.get('type'), RELATIONSHIP_TYPES, 'other'),
                        subtype=_text(data.get('subtype')),
                        source=_text(data.get('source')))


@_total(Communication)
def validate_communication(data: Any, now: Optional[datetime] = None) -> Communication:
    """Validate communication tracking; ``last_contacted`` defaults to now."""
    data = _dict(data)
    last_contacted = from_iso(_get(data, 'last_contacted', 'lastContacted')) or now or utc_now()
    return Communication(last_contacted=last_contacted,
                         frequency=_choice(data.get('frequency'), FREQUENCIES, 'rarely'),
                         total_conversations=_count(_get(data, 'total_conversations', 'totalConversations')),
                         conversation_counter=_count(_get(data, 'conversation_counter', 'conversationCounter')))


@_total(Sentiment)
def validate_sentiment(data: Any) -> Sentiment:
    data = _dict(data)
    return Sentiment(closeness_score=_unit_interval(_get(data, 'closenessScore', 'closeness_score'), DEFAULT_CLOSENESS),
                     tone=_choice(data.get('tone'), TONES, 'neutral'))


@_total(ExtractedObligation)
def validate_task_reminder(data: Any, kind: str = 'reminder') -> ExtractedObligation:
    """Validate a task or reminder entry.

    Stored priorities are high/normal/low, so ``medium`` becomes ``normal``.
    Tasks always carry the ``task`` category.

    Args:
        data: Task or reminder dict
        kind: 'task' or 'reminder'
    """
    data = _dict(data)
    priority = _text(data.get('priority')).lower()
    if priority == 'medium':
        priority = 'normal'
    category = 'task' if kind == 'task' else _choice(data.get('category'), REMINDER_CATEGORIES, 'task')
    due_date = from_iso(_get(data, 'dueDate', 'due_date_iso'))
    if due_date is not None and due_date.tzinfo is None:
        due_date = due_date.replace(tzinfo=timezone.utc)
    return ExtractedObligation(title=_text(data.get('title')) or 'Untitled',
                               from_speaker=_text(_get(data, 'from', 'from_speaker')),
                               due_date=due_date,
                               due_date_text=_text(_get(data, 'due_date_text', 'dueDateText')),
                               priority=priority if priority in OBLIGATION_PRIORITIES else 'normal',
                               category=category,
                               extracted_from=_text(_get(data, 'extracted_from', 'extractedFrom')))


@_total(ExtractedFollowUp)
def validate_follow_up(data: Any) -> ExtractedFollowUp:
    data = _dict(data)
    return ExtractedFollowUp(person=_text(data.get('person')),
                             description=_text(_get(data, 'description', 'context')),
                             reason=_text(data.get('reason')),
                             priority=_choice(data.get('priority'), FOLLOWUP_PRIORITIES, 'medium'),
                             extracted_from=_text(_get(data, 'extracted_from', 'extractedFrom')))


@_total(lambda: ActionItem(description=''))
def validate_action_item(data: Any) -> ActionItem:
    data = _dict(data)
    return ActionItem(description=_text(data.get('description')),
                      assigned_to=_text(_get(data, 'assigned_to', 'assignedTo')),
                      speaker=_text(_get(data, 'from_speaker', 'speaker')),
                      completed=False)


@_total(ExtractedConnection)
def validate_connection(data: Any) -> ExtractedConnection:
    data = _dict(data)
    return ExtractedConnection(person1=_text(data.get('person1')),
                               person2=_text(data.get('person2')),
                               relationship_type=_text(_get(data, 'relationship_type', 'relationshipType')),
                               strength=_unit_interval(data.get('strength'), DEFAULT_STRENGTH))
