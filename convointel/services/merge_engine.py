"""
Entity resolution and incremental merge of analysis results into records.

``process_analysis`` turns one analyzed transcript into a Conversation and
creates or updates the People, Tasks, Reminders and FollowUps it mentions.
Steps up to and including the Conversation write are the critical path and
raise on failure; everything after it is best effort.
"""

import threading
from contextlib import contextmanager
from typing import Any, Dict, Hashable, List, Optional, Tuple

from ..models.core import (FREQUENCIES, RELATIONSHIP_TYPES, TONES, AnalysisOutcome, Connection, Conversation, FollowUp, Participant, Person,
                           Profile, Reminder, Summary, Task, make_initials, new_id, normalize_name)
from ..utils.json_utils import parse_json_lenient
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import from_iso, utc_now
from .analysis import AnalysisError, ConversationAnalysisService
from .date_resolver import resolve
from .field_validator import (validate_action_item, validate_communication, validate_connection, validate_follow_up,
                              validate_person_profile, validate_relationship, validate_sentiment, validate_task_reminder)
from .notifications import LoggingNotificationSink, NotificationSink
from .record_store import Records
from .response_sanitizer import sanitize

logger = get_logger(__name__)


class KeyedLock:
    """Mutual exclusion per key. Locks exist only while someone holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every service in the process so concurrent transcripts serialize person merges
person_locks = KeyedLock()


def _union(existing: List[str], incoming: List[str]) -> List[str]:
    merged = list(existing)
    for item in incoming:
        if item not in merged:
            merged.append(item)
    return merged


def merge_profile(current: Profile, incoming: Profile) -> Profile:
    """Merge newly observed profile facts into a stored profile.

    List fields are unioned. Scalars are replaced only by non-empty values.
    Important dates and common topics are appended as-is.
    """
    key_info, new_info = current.key_info, incoming.key_info

    if incoming.summary:
        current.summary = incoming.summary

    key_info.hobbies = _union(key_info.hobbies, new_info.hobbies)
    key_info.interests = _union(key_info.interests, new_info.interests)
    key_info.travel = _union(key_info.travel, new_info.travel)
    for name in ('movies', 'music', 'books', 'food'):
        setattr(key_info.favorites, name, _union(getattr(key_info.favorites, name), getattr(new_info.favorites, name)))
    for name in ('relatives', 'pets', 'location'):
        setattr(key_info.personal_info, name, _union(getattr(key_info.personal_info, name), getattr(new_info.personal_info, name)))

    for name in ('company', 'position', 'industry'):
        value = getattr(new_info.work_info, name)
        if value:
            setattr(key_info.work_info, name, value)
    if new_info.personal_info.birthdate:
        key_info.personal_info.birthdate = new_info.personal_info.birthdate

    # TODO: dedupe important_dates/common_topics once stored records can be migrated
    current.important_dates.extend(incoming.important_dates)
    current.common_topics.extend(incoming.common_topics)
    return current


class ConversationIntelligenceService:
    """Resolve and merge conversation analysis into persisted records."""

    def __init__(self, records: Records, analyzer=None, sink: Optional[NotificationSink] = None, locks: Optional[KeyedLock] = None):
        """Initialize the service.

        Args:
            records: Typed record repository
            analyzer: Object with ``analyze(transcript_text, account_name) -> dict``;
                defaults to the Bedrock-backed ConversationAnalysisService
            sink: Notification sink, logs by default
            locks: Per-person merge locks, process-wide by default
        """
        self.records = records
        self.analyzer = analyzer or ConversationAnalysisService()
        self.sink = sink or LoggingNotificationSink()
        self.locks = locks if locks is not None else person_locks

        logger.info('Initialized ConversationIntelligenceService')

    def process_analysis(self, transcript_id: str, transcript_text: str, account_id: str, account_name: str, now=None) -> AnalysisOutcome:
        """Analyze a transcript and merge the result into the account's records.

        Args:
            transcript_id: Transcript the analysis belongs to
            transcript_text: Speaker-labelled transcript text
            account_id: Owning account
            account_name: Display name of the account owner
            now: Reference time for contact dates and relative deadlines

        Returns:
            AnalysisOutcome with every record created or touched

        Raises:
            AnalysisError: If analysis fails or lacks conversation metadata
            RecordStoreError: If a person or the conversation cannot be written
        """
        now = now or utc_now()

        try:
            self.sink.progress(account_id, transcript_id, 'analyzing', 'Analyzing conversation')
            raw = self.analyzer.analyze(transcript_text, account_name)
            if not self._has_metadata(raw):
                raise AnalysisError('Analysis result is missing conversation metadata', code='INVALID_ANALYSIS')

            analysis = sanitize(raw)
            conversation = self._build_conversation(analysis, account_id, transcript_id, now)
            people = self._resolve_speakers(analysis['speakers'], conversation, account_id, account_name, now)
            self.sink.progress(account_id, transcript_id, 'people', f'Resolved {len(people)} people', people=len(people))

            conversation.action_items = [item for item in map(validate_action_item, analysis['action_items']) if item.description]
            self.records.save_conversation(conversation)
            logger.info(f'Saved conversation {conversation.id} with {len(conversation.participants)} participants '
                        f'and {len(conversation.action_items)} action items')
        except Exception as e:
            logger.error(f'Critical analysis step failed for transcript {transcript_id}: {e}')
            self.sink.error(account_id, transcript_id, str(e), getattr(e, 'code', 'PROCESSING_FAILED'))
            raise

        outcome = AnalysisOutcome(conversation=conversation, people=people)

        outcome.tasks = self._create_obligations(analysis['tasks'], 'task', account_id, transcript_id, now)
        outcome.reminders = self._create_obligations(analysis['reminders'], 'reminder', account_id, transcript_id, now)
        self.sink.progress(account_id,
                           transcript_id,
                           'obligations',
                           f'Created {len(outcome.tasks)} tasks and {len(outcome.reminders)} reminders',
                           tasks=len(outcome.tasks),
                           reminders=len(outcome.reminders))

        outcome.followups = self._create_pending_followups(analysis['pending_followups'], outcome, account_id, now)
        outcome.followups += self._create_suggested_followups(analysis['suggested_followups'], conversation, account_id, now)
        self.sink.progress(account_id, transcript_id, 'followups', f'Created {len(outcome.followups)} follow-ups', followups=len(outcome.followups))

        connected = self._add_connections(analysis['network_connections'], outcome, account_id, now)
        logger.info(f'Added {connected} network connections for transcript {transcript_id}')

        summary = outcome.summary()
        logger.info(f'Processed analysis for transcript {transcript_id}: {summary}')
        self.sink.complete(account_id, transcript_id, summary)
        return outcome

    @staticmethod
    def _has_metadata(raw: Any) -> bool:
        if isinstance(raw, str):
            try:
                raw = parse_json_lenient(raw)
            except ValueError:
                return False
        return isinstance(raw, dict) and bool(raw.get('conversation_metadata'))

    @staticmethod
    def _build_conversation(analysis: Dict[str, Any], account_id: str, transcript_id: str, now) -> Conversation:
        metadata = analysis['conversation_metadata']
        return Conversation(id=new_id(),
                            account_id=account_id,
                            transcript_id=transcript_id,
                            title=metadata['title'] or 'Untitled Conversation',
                            summary=Summary(short=metadata['summary']['short'], extended=metadata['summary']['extended']),
                            date=now,
                            duration=metadata['duration_minutes'],
                            tags=list(metadata['tags']),
                            processing_status='completed',
                            created_at=now)

    def _resolve_speakers(self, speakers: List[Dict[str, Any]], conversation: Conversation, account_id: str, account_name: str,
                          now) -> List[Person]:
        """Bind each speaker to the account owner or to a created/merged Person."""
        touched: Dict[str, Person] = {}
        created = 0

        for speaker in speakers:
            label = speaker['speaker_label']

            if speaker['is_user']:
                conversation.participants.append(Participant(speaker_label=label, name=account_name, is_user=True))
                continue

            name = speaker['name']
            if not normalize_name(name):
                logger.debug(f'Speaker {label or "?"} has no name, adding unlinked participant')
                conversation.participants.append(Participant(speaker_label=label, name=label))
                continue

            person, is_new = self._upsert_person(account_id, name, speaker['profile'], now, count_contact=normalize_name(name) not in touched)
            created += int(is_new)
            touched[person.name_key] = person
            conversation.participants.append(Participant(speaker_label=label, name=person.name, person_id=person.id))

        logger.info(f'Resolved {len(touched)} people from {len(speakers)} speakers ({created} new)')
        return list(touched.values())

    def _upsert_person(self, account_id: str, name: str, profile: Dict[str, Any], now, count_contact: bool = True) -> Tuple[Person, bool]:
        """Create or merge the named person; returns (person, created)."""
        name = ' '.join(name.split())

        with self.locks.hold((account_id, normalize_name(name))):
            person = self.records.find_person_by_name(account_id, name)
            created = person is None

            if created:
                communication = validate_communication(profile['communication'], now)
                communication.last_contacted = now
                communication.total_conversations = 1
                communication.conversation_counter = 1
                person = Person(id=new_id(),
                                account_id=account_id,
                                name=name,
                                initials=make_initials(name),
                                relationship=validate_relationship(profile['relationship']),
                                communication=communication,
                                sentiment=validate_sentiment(profile['sentiment']),
                                profile=validate_person_profile(profile),
                                created_at=now,
                                updated_at=now)
                logger.debug(f'Creating person {person.id} ({name})')
            else:
                self._merge_person(person, profile, now, count_contact)
                logger.debug(f'Merging into person {person.id} ({person.name})')

            return self.records.save_person(person), created

    @staticmethod
    def _merge_person(person: Person, profile: Dict[str, Any], now, count_contact: bool) -> None:
        """Fold a speaker profile into a stored person.

        Scalars are replaced only by valid incoming values; an invalid value
        keeps what is stored rather than resetting it to the default.
        """
        if count_contact:
            person.communication.total_conversations += 1
            person.communication.conversation_counter += 1
        person.communication.last_contacted = now
        person.updated_at = now

        relationship = profile['relationship']
        if relationship['type'].lower() in RELATIONSHIP_TYPES:
            person.relationship = validate_relationship(relationship)
        if profile['communication']['frequency'].lower() in FREQUENCIES:
            person.communication.frequency = profile['communication']['frequency'].lower()

        sentiment = profile['sentiment']
        closeness = sentiment['closenessScore']
        if closeness is not None and 0 <= closeness <= 1:
            person.sentiment.closeness_score = float(closeness)
        if sentiment['tone'].lower() in TONES:
            person.sentiment.tone = sentiment['tone'].lower()

        person.profile = merge_profile(person.profile, validate_person_profile(profile))

    def _find_or_create_minimal(self, account_id: str, name: str, now) -> Person:
        """Resolve a person by name, creating one with default fields if absent."""
        name = ' '.join(name.split())
        with self.locks.hold((account_id, normalize_name(name))):
            person = self.records.find_person_by_name(account_id, name)
            if person is not None:
                return person
            person = Person(id=new_id(), account_id=account_id, name=name, initials=make_initials(name), created_at=now, updated_at=now)
            logger.info(f'Created person {person.id} ({name}) for a pending follow-up')
            return self.records.save_person(person)

    def _create_obligations(self, entries: List[Dict[str, Any]], kind: str, account_id: str, transcript_id: str, now) -> list:
        """Validate, resolve due dates and bulk-create tasks or reminders. Best effort."""
        record_cls = Task if kind == 'task' else Reminder
        records = []

        for entry in entries:
            data = validate_task_reminder(entry, kind)
            due_date = data.due_date or resolve(data.due_date_text, now) or from_iso(data.due_date_text)
            records.append(
                record_cls(id=new_id(),
                           account_id=account_id,
                           transcript_id=transcript_id,
                           title=data.title,
                           from_speaker=data.from_speaker,
                           due_date=due_date,
                           due_date_text=data.due_date_text,
                           priority=data.priority,
                           category=data.category,
                           extracted_from=data.extracted_from,
                           created_at=now))

        if not records:
            return []

        try:
            if kind == 'task':
                self.records.insert_tasks(records)
            else:
                self.records.insert_reminders(records)
        except Exception as e:
            logger.error(f'Failed to create {len(records)} {kind}s for transcript {transcript_id}: {e}')
            return []

        resolved = sum(1 for r in records if r.due_date is not None)
        logger.info(f'Created {len(records)} {kind}s for transcript {transcript_id} ({resolved} with due dates)')
        return records

    def _create_pending_followups(self, entries: List[Dict[str, Any]], outcome: AnalysisOutcome, account_id: str, now) -> List[FollowUp]:
        """Pending follow-ups create their person on demand."""
        followups = []
        known = {person.id for person in outcome.people}

        for entry in entries:
            data = validate_follow_up(entry)
            if not data.person:
                logger.debug('Skipping pending follow-up without a person')
                continue
            try:
                person = self._find_or_create_minimal(account_id, data.person, now)
                if person.id not in known:
                    known.add(person.id)
                    outcome.people.append(person)

                followups.append(
                    self.records.save_followup(
                        FollowUp(id=new_id(),
                                 account_id=account_id,
                                 person_id=person.id,
                                 type='pending',
                                 context=data.description or data.extracted_from,
                                 conversation_id=outcome.conversation.id,
                                 priority=data.priority,
                                 created_at=now)))
            except Exception as e:
                logger.error(f'Failed to create pending follow-up for {data.person}: {e}')

        logger.info(f'Created {len(followups)} pending follow-ups from {len(entries)} entries')
        return followups

    def _create_suggested_followups(self, entries: List[Dict[str, Any]], conversation: Conversation, account_id: str, now) -> List[FollowUp]:
        """Suggested follow-ups for unknown people are dropped."""
        followups = []

        for entry in entries:
            data = validate_follow_up(entry)
            try:
                person = self.records.find_person_by_name(account_id, data.person) if data.person else None
                if person is None:
                    logger.debug(f'Dropping suggested follow-up for unknown person {data.person!r}')
                    continue

                followups.append(
                    self.records.save_followup(
                        FollowUp(id=new_id(),
                                 account_id=account_id,
                                 person_id=person.id,
                                 type='suggested',
                                 context=data.reason or data.description,
                                 conversation_id=conversation.id,
                                 priority=data.priority,
                                 reason=data.reason,
                                 created_at=now)))
            except Exception as e:
                logger.error(f'Failed to create suggested follow-up for {data.person}: {e}')

        logger.info(f'Created {len(followups)} suggested follow-ups from {len(entries)} entries')
        return followups

    def _add_connections(self, entries: List[Dict[str, Any]], outcome: AnalysisOutcome, account_id: str, now) -> int:
        """Add a one-directional edge from person1 to person2 when both are known."""
        added = 0

        for entry in entries:
            data = validate_connection(entry)
            if not normalize_name(data.person1) or not normalize_name(data.person2):
                continue
            try:
                with self.locks.hold((account_id, normalize_name(data.person1))):
                    source = self.records.find_person_by_name(account_id, data.person1)
                    target = self.records.find_person_by_name(account_id, data.person2)
                    if source is None or target is None or source.id == target.id:
                        logger.debug(f'Skipping connection {data.person1!r} -> {data.person2!r}')
                        continue
                    if any(c.person_id == target.id for c in source.connections):
                        continue

                    source.connections.append(Connection(person_id=target.id, relationship_type=data.relationship_type, strength=data.strength))
                    source.updated_at = now
                    self.records.save_person(source)
                    added += 1

                for index, person in enumerate(outcome.people):
                    if person.id == source.id:
                        outcome.people[index] = source
            except Exception as e:
                logger.error(f'Failed to add connection {data.person1!r} -> {data.person2!r}: {e}')

        return added
