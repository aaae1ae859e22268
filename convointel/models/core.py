"""
Core data models for conversation intelligence records.

Every record is a dataclass with explicit defaults. Records are stored as
plain JSON documents; ``to_document`` / ``from_document`` convert between
the two (datetimes travel as ISO-8601 strings).
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.timestamp_utils import from_iso

RELATIONSHIP_TYPES = ('friend', 'family', 'colleague', 'client', 'investor', 'mentor', 'acquaintance', 'other')
FREQUENCIES = ('daily', 'weekly', 'monthly', 'quarterly', 'yearly', 'rarely')
TONES = ('warm', 'neutral', 'formal', 'casual', 'professional')
PROCESSING_STATUSES = ('pending', 'processing', 'completed', 'failed')
OBLIGATION_PRIORITIES = ('high', 'normal', 'low')
REMINDER_CATEGORIES = ('meeting', 'call', 'task', 'deadline', 'personal', 'email', 'followup')
FOLLOWUP_TYPES = ('pending', 'suggested')
FOLLOWUP_PRIORITIES = ('high', 'medium', 'low')


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_name(name: str) -> str:
    """Lookup key for a person's name: lower-cased, whitespace collapsed."""
    return ' '.join((name or '').split()).lower()


def make_initials(name: str) -> str:
    """Initials from the first two words of a name."""
    words = (name or '').split()
    return ''.join(word[0] for word in words[:2]).upper()


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


def to_document(record: Any) -> Dict[str, Any]:
    """Convert a dataclass record to a JSON-safe document."""
    return _serialize(asdict(record))


def _str_list(value: Any) -> List[str]:
    return [str(item) for item in value] if isinstance(value, list) else []


@dataclass
class TranscriptSegment:
    """A time-stamped piece of transcribed speech."""
    text: str
    start: float = 0.0
    end: float = 0.0
    speaker: str = ''


@dataclass
class SpeakerGroup:
    """All segments attributed to one speaker label."""
    label: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    total_speaking_time: float = 0.0

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'SpeakerGroup':
        segments = [
            TranscriptSegment(text=s.get('text', ''), start=s.get('start', 0.0), end=s.get('end', 0.0), speaker=s.get('speaker', ''))
            for s in doc.get('segments') or []
        ]
        return cls(label=doc.get('label', ''), segments=segments, total_speaking_time=doc.get('total_speaking_time', 0.0))


@dataclass
class Relationship:
    type: str = 'other'
    subtype: str = ''
    source: str = ''


@dataclass
class Communication:
    last_contacted: Optional[datetime] = None
    frequency: str = 'rarely'
    total_conversations: int = 0
    conversation_counter: int = 0


@dataclass
class Sentiment:
    closeness_score: float = 0.5
    tone: str = 'neutral'


@dataclass
class Favorites:
    movies: List[str] = field(default_factory=list)
    music: List[str] = field(default_factory=list)
    books: List[str] = field(default_factory=list)
    food: List[str] = field(default_factory=list)


@dataclass
class WorkInfo:
    company: str = ''
    position: str = ''
    industry: str = ''


@dataclass
class PersonalInfo:
    relatives: List[str] = field(default_factory=list)
    pets: List[str] = field(default_factory=list)
    birthdate: str = ''
    location: List[str] = field(default_factory=list)


@dataclass
class KeyInfo:
    hobbies: List[str] = field(default_factory=list)
    interests: List[str] = field(default_factory=list)
    favorites: Favorites = field(default_factory=Favorites)
    travel: List[str] = field(default_factory=list)
    work_info: WorkInfo = field(default_factory=WorkInfo)
    personal_info: PersonalInfo = field(default_factory=PersonalInfo)


@dataclass
class CommonTopic:
    topic: str
    frequency: int = 1


@dataclass
class ImportantDate:
    date: str
    description: str = ''
    type: str = 'other'


@dataclass
class Profile:
    summary: str = ''
    key_info: KeyInfo = field(default_factory=KeyInfo)
    common_topics: List[CommonTopic] = field(default_factory=list)
    important_dates: List[ImportantDate] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Profile':
        key_info = doc.get('key_info') or {}
        favorites = key_info.get('favorites') or {}
        work_info = key_info.get('work_info') or {}
        personal_info = key_info.get('personal_info') or {}
        return cls(summary=doc.get('summary', ''),
                   key_info=KeyInfo(hobbies=_str_list(key_info.get('hobbies')),
                                    interests=_str_list(key_info.get('interests')),
                                    favorites=Favorites(movies=_str_list(favorites.get('movies')),
                                                        music=_str_list(favorites.get('music')),
                                                        books=_str_list(favorites.get('books')),
                                                        food=_str_list(favorites.get('food'))),
                                    travel=_str_list(key_info.get('travel')),
                                    work_info=WorkInfo(company=work_info.get('company', ''),
                                                       position=work_info.get('position', ''),
                                                       industry=work_info.get('industry', '')),
                                    personal_info=PersonalInfo(relatives=_str_list(personal_info.get('relatives')),
                                                               pets=_str_list(personal_info.get('pets')),
                                                               birthdate=personal_info.get('birthdate', ''),
                                                               location=_str_list(personal_info.get('location')))),
                   common_topics=[CommonTopic(topic=t.get('topic', ''), frequency=t.get('frequency', 1)) for t in doc.get('common_topics') or []],
                   important_dates=[
                       ImportantDate(date=d.get('date', ''), description=d.get('description', ''), type=d.get('type', 'other'))
                       for d in doc.get('important_dates') or []
                   ])


@dataclass
class Connection:
    """One-directional network edge from the owning person to ``person_id``."""
    person_id: str
    relationship_type: str = ''
    strength: float = 0.5


@dataclass
class Person:
    """A contact of the account owner, built up across conversations."""
    id: str
    account_id: str
    name: str
    initials: str = ''
    relationship: Relationship = field(default_factory=Relationship)
    communication: Communication = field(default_factory=Communication)
    sentiment: Sentiment = field(default_factory=Sentiment)
    profile: Profile = field(default_factory=Profile)
    connections: List[Connection] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def name_key(self) -> str:
        return normalize_name(self.name)

    def to_document(self) -> Dict[str, Any]:
        doc = to_document(self)
        doc['name_key'] = self.name_key
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Person':
        relationship = doc.get('relationship') or {}
        communication = doc.get('communication') or {}
        sentiment = doc.get('sentiment') or {}
        return cls(id=doc['id'],
                   account_id=doc.get('account_id', ''),
                   name=doc.get('name', ''),
                   initials=doc.get('initials', ''),
                   relationship=Relationship(type=relationship.get('type', 'other'),
                                             subtype=relationship.get('subtype', ''),
                                             source=relationship.get('source', '')),
                   communication=Communication(last_contacted=from_iso(communication.get('last_contacted')),
                                               frequency=communication.get('frequency', 'rarely'),
                                               total_conversations=communication.get('total_conversations', 0),
                                               conversation_counter=communication.get('conversation_counter', 0)),
                   sentiment=Sentiment(closeness_score=sentiment.get('closeness_score', 0.5), tone=sentiment.get('tone', 'neutral')),
                   profile=Profile.from_document(doc.get('profile') or {}),
                   connections=[
                       Connection(person_id=c.get('person_id', ''),
                                  relationship_type=c.get('relationship_type', ''),
                                  strength=c.get('strength', 0.5)) for c in doc.get('connections') or []
                   ],
                   created_at=from_iso(doc.get('created_at')),
                   updated_at=from_iso(doc.get('updated_at')))


@dataclass
class Participant:
    speaker_label: str
    name: str
    person_id: Optional[str] = None
    is_user: bool = False


@dataclass
class Summary:
    short: str = ''
    extended: str = ''


@dataclass
class ActionItem:
    description: str
    assigned_to: str = ''
    speaker: str = ''
    completed: bool = False


@dataclass
class Conversation:
    """One analyzed transcript and who took part in it."""
    id: str
    account_id: str
    transcript_id: str
    title: str
    summary: Summary = field(default_factory=Summary)
    participants: List[Participant] = field(default_factory=list)
    date: Optional[datetime] = None
    duration: int = 0
    tags: List[str] = field(default_factory=list)
    action_items: List[ActionItem] = field(default_factory=list)
    processing_status: str = 'pending'
    created_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        return to_document(self)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Conversation':
        summary = doc.get('summary') or {}
        return cls(id=doc['id'],
                   account_id=doc.get('account_id', ''),
                   transcript_id=doc.get('transcript_id', ''),
                   title=doc.get('title', ''),
                   summary=Summary(short=summary.get('short', ''), extended=summary.get('extended', '')),
                   participants=[
                       Participant(speaker_label=p.get('speaker_label', ''),
                                   name=p.get('name', ''),
                                   person_id=p.get('person_id'),
                                   is_user=bool(p.get('is_user', False))) for p in doc.get('participants') or []
                   ],
                   date=from_iso(doc.get('date')),
                   duration=doc.get('duration', 0),
                   tags=_str_list(doc.get('tags')),
                   action_items=[
                       ActionItem(description=a.get('description', ''),
                                  assigned_to=a.get('assigned_to', ''),
                                  speaker=a.get('speaker', ''),
                                  completed=bool(a.get('completed', False))) for a in doc.get('action_items') or []
                   ],
                   processing_status=doc.get('processing_status', 'pending'),
                   created_at=from_iso(doc.get('created_at')))


@dataclass
class TranscriptError:
    message: str
    code: str = 'PROCESSING_FAILED'


@dataclass
class Transcript:
    """A submitted recording (or text) and its processing state."""
    id: str
    account_id: str
    account_name: str = ''
    filename: str = ''
    num_speakers: int = 2
    full_text: str = ''
    speakers: List[SpeakerGroup] = field(default_factory=list)
    insights: Dict[str, Any] = field(default_factory=dict)
    status: str = 'pending'
    error: Optional[TranscriptError] = None
    processing_time_ms: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        return to_document(self)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Transcript':
        error = doc.get('error')
        return cls(id=doc['id'],
                   account_id=doc.get('account_id', ''),
                   account_name=doc.get('account_name', ''),
                   filename=doc.get('filename', ''),
                   num_speakers=doc.get('num_speakers', 2),
                   full_text=doc.get('full_text', ''),
                   speakers=[SpeakerGroup.from_document(s) for s in doc.get('speakers') or []],
                   insights=doc.get('insights') or {},
                   status=doc.get('status', 'pending'),
                   error=TranscriptError(message=error.get('message', ''), code=error.get('code', 'PROCESSING_FAILED')) if error else None,
                   processing_time_ms=doc.get('processing_time_ms'),
                   created_at=from_iso(doc.get('created_at')),
                   updated_at=from_iso(doc.get('updated_at')),
                   completed_at=from_iso(doc.get('completed_at')))


@dataclass
class Obligation:
    """Fields shared by tasks and reminders extracted from a conversation."""
    id: str
    account_id: str
    transcript_id: str
    title: str
    from_speaker: str = ''
    due_date: Optional[datetime] = None
    due_date_text: str = ''
    priority: str = 'normal'
    category: str = 'task'
    extracted_from: str = ''
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        return to_document(self)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'Obligation':
        return cls(id=doc['id'],
                   account_id=doc.get('account_id', ''),
                   transcript_id=doc.get('transcript_id', ''),
                   title=doc.get('title', ''),
                   from_speaker=doc.get('from_speaker', ''),
                   due_date=from_iso(doc.get('due_date')),
                   due_date_text=doc.get('due_date_text', ''),
                   priority=doc.get('priority', 'normal'),
                   category=doc.get('category', 'task'),
                   extracted_from=doc.get('extracted_from', ''),
                   completed=bool(doc.get('completed', False)),
                   completed_at=from_iso(doc.get('completed_at')),
                   created_at=from_iso(doc.get('created_at')))


@dataclass
class Task(Obligation):
    pass


@dataclass
class Reminder(Obligation):
    pass


@dataclass
class FollowUp:
    """A pending (stated) or suggested (inferred) reason to reconnect with a person."""
    id: str
    account_id: str
    person_id: str
    type: str
    context: str
    conversation_id: Optional[str] = None
    priority: str = 'medium'
    reason: str = ''
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        return to_document(self)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> 'FollowUp':
        return cls(id=doc['id'],
                   account_id=doc.get('account_id', ''),
                   person_id=doc.get('person_id', ''),
                   type=doc.get('type', 'pending'),
                   context=doc.get('context', ''),
                   conversation_id=doc.get('conversation_id'),
                   priority=doc.get('priority', 'medium'),
                   reason=doc.get('reason', ''),
                   completed=bool(doc.get('completed', False)),
                   completed_at=from_iso(doc.get('completed_at')),
                   created_at=from_iso(doc.get('created_at')))


@dataclass
class AnalysisOutcome:
    """Records created or touched by one ``process_analysis`` run."""
    conversation: Conversation
    people: List[Person] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    reminders: List[Reminder] = field(default_factory=list)
    followups: List[FollowUp] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            'conversation_id': self.conversation.id,
            'title': self.conversation.title,
            'participants': len(self.conversation.participants),
            'people': len(self.people),
            'tasks': len(self.tasks),
            'reminders': len(self.reminders),
            'followups': len(self.followups),
        }
