"""
Record persistence: the store capability and a typed repository over it.
"""

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..models.core import Conversation, FollowUp, Person, Reminder, Task, Transcript, normalize_name
from ..utils.config import config
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient, OpenSearchError

logger = get_logger(__name__)

PEOPLE = 'people'
CONVERSATIONS = 'conversations'
TRANSCRIPTS = 'transcripts'
TASKS = 'tasks'
REMINDERS = 'reminders'
FOLLOWUPS = 'followups'
COLLECTIONS = (PEOPLE, CONVERSATIONS, TRANSCRIPTS, TASKS, REMINDERS, FOLLOWUPS)


class RecordStoreError(Exception):
    """Custom exception for record store errors."""
    pass


class RecordStore(ABC):
    """Generic document persistence keyed by collection and record ID."""

    @abstractmethod
    def put(self, collection: str, record_id: str, document: Dict[str, Any]) -> None:
        """Create or replace a document."""

    def put_many(self, collection: str, documents: List[Tuple[str, Dict[str, Any]]]) -> int:
        """Create or replace many documents; returns how many were written."""
        for record_id, document in documents:
            self.put(collection, record_id, document)
        return len(documents)

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Get a document by ID, or None."""

    @abstractmethod
    def find(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Documents whose fields equal every filter value."""


class InMemoryRecordStore(RecordStore):
    """Thread-safe in-process store for local runs and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def put(self, collection: str, record_id: str, document: Dict[str, Any]) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(document)

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(document) if document is not None else None

    def find(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(document) for document in self._collections.get(collection, {}).values()
                if all(document.get(field) == value for field, value in filters.items())
            ]

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))


class OpenSearchRecordStore(RecordStore):
    """Store backed by one OpenSearch index per collection."""

    def __init__(self, client: Optional[OpenSearchClient] = None):
        self.client = client or OpenSearchClient(config.opensearch)

        for collection in COLLECTIONS:
            try:
                self.client.create_index_if_not_exists(collection)
            except OpenSearchError as e:
                logger.warning(f'Failed to create index for {collection}: {e}')

        logger.info('Initialized OpenSearchRecordStore')

    def put(self, collection: str, record_id: str, document: Dict[str, Any]) -> None:
        try:
            self.client.put_document(collection, record_id, document)
        except OpenSearchError as e:
            raise RecordStoreError(f'Failed to write {collection}/{record_id}: {e}')

    def put_many(self, collection: str, documents: List[Tuple[str, Dict[str, Any]]]) -> int:
        try:
            return self.client.bulk_put(collection, documents)
        except OpenSearchError as e:
            raise RecordStoreError(f'Failed to bulk write {collection}: {e}')

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.client.get_document(collection, record_id)
        except OpenSearchError as e:
            raise RecordStoreError(f'Failed to read {collection}/{record_id}: {e}')

    def find(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            return self.client.search_documents(collection, filters)
        except OpenSearchError as e:
            raise RecordStoreError(f'Failed to search {collection}: {e}')


class Records:
    """Typed repository for pipeline records, scoped by account."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _owned(self, collection: str, account_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        document = self.store.get(collection, record_id)
        if document is None or document.get('account_id') != account_id:
            return None
        return document

    # People

    def find_person_by_name(self, account_id: str, name: str) -> Optional[Person]:
        """Case-insensitive exact-name lookup within an account."""
        name_key = normalize_name(name)
        if not name_key:
            return None
        documents = self.store.find(PEOPLE, {'account_id': account_id, 'name_key': name_key})
        if len(documents) > 1:
            logger.warning(f'{len(documents)} people share the name {name_key!r} in account {account_id}')
        return Person.from_document(documents[0]) if documents else None

    def get_person(self, account_id: str, person_id: str) -> Optional[Person]:
        document = self._owned(PEOPLE, account_id, person_id)
        return Person.from_document(document) if document else None

    def list_people(self, account_id: str) -> List[Person]:
        return [Person.from_document(doc) for doc in self.store.find(PEOPLE, {'account_id': account_id})]

    def save_person(self, person: Person) -> Person:
        self.store.put(PEOPLE, person.id, person.to_document())
        return person

    # Conversations

    def save_conversation(self, conversation: Conversation) -> Conversation:
        self.store.put(CONVERSATIONS, conversation.id, conversation.to_document())
        return conversation

    def get_conversation(self, account_id: str, conversation_id: str) -> Optional[Conversation]:
        document = self._owned(CONVERSATIONS, account_id, conversation_id)
        return Conversation.from_document(document) if document else None

    # Transcripts

    def save_transcript(self, transcript: Transcript) -> Transcript:
        self.store.put(TRANSCRIPTS, transcript.id, transcript.to_document())
        return transcript

    def get_transcript(self, transcript_id: str, account_id: Optional[str] = None) -> Optional[Transcript]:
        document = self.store.get(TRANSCRIPTS, transcript_id)
        if document is None or (account_id is not None and document.get('account_id') != account_id):
            return None
        return Transcript.from_document(document)

    # Tasks and reminders

    def insert_tasks(self, tasks: List[Task]) -> int:
        return self.store.put_many(TASKS, [(task.id, task.to_document()) for task in tasks])

    def insert_reminders(self, reminders: List[Reminder]) -> int:
        return self.store.put_many(REMINDERS, [(reminder.id, reminder.to_document()) for reminder in reminders])

    def get_task(self, account_id: str, task_id: str) -> Optional[Task]:
        document = self._owned(TASKS, account_id, task_id)
        return Task.from_document(document) if document else None

    def save_task(self, task: Task) -> Task:
        self.store.put(TASKS, task.id, task.to_document())
        return task

    def list_tasks(self, account_id: str) -> List[Task]:
        return [Task.from_document(doc) for doc in self.store.find(TASKS, {'account_id': account_id})]

    def get_reminder(self, account_id: str, reminder_id: str) -> Optional[Reminder]:
        document = self._owned(REMINDERS, account_id, reminder_id)
        return Reminder.from_document(document) if document else None

    def save_reminder(self, reminder: Reminder) -> Reminder:
        self.store.put(REMINDERS, reminder.id, reminder.to_document())
        return reminder

    def list_reminders(self, account_id: str) -> List[Reminder]:
        return [Reminder.from_document(doc) for doc in self.store.find(REMINDERS, {'account_id': account_id})]

    # Follow-ups

    def save_followup(self, followup: FollowUp) -> FollowUp:
        self.store.put(FOLLOWUPS, followup.id, followup.to_document())
        return followup

    def get_followup(self, account_id: str, followup_id: str) -> Optional[FollowUp]:
        document = self._owned(FOLLOWUPS, account_id, followup_id)
        return FollowUp.from_document(document) if document else None

    def list_followups(self, account_id: str, followup_type: Optional[str] = None, completed: Optional[bool] = None) -> List[FollowUp]:
        filters: Dict[str, Any] = {'account_id': account_id}
        if followup_type is not None:
            filters['type'] = followup_type
        if completed is not None:
            filters['completed'] = completed
        return [FollowUp.from_document(doc) for doc in self.store.find(FOLLOWUPS, filters)]


def create_record_store(backend: Optional[str] = None) -> RecordStore:
    """Build the configured store: 'opensearch' (default) or 'memory'."""
    backend = (backend or config.pipeline.record_store).lower()
    if backend == 'memory':
        return InMemoryRecordStore()
    if backend == 'opensearch':
        return OpenSearchRecordStore()
    raise RecordStoreError(f'Unknown record store backend: {backend}')
