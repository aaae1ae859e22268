"""
User-driven updates and read models over stored records: completing
obligations, recording contact, suggested follow-ups and the contact network.
"""

from collections import Counter
from typing import Any, Dict, List, Optional

from ..models.core import FollowUp, Person, Reminder, Task
from ..utils.config import config
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import to_iso, utc_now
from .followup_scorer import compute_overdue, merge_suggestions
from .record_store import Records

logger = get_logger(__name__)


class TrackingError(Exception):
    """Custom exception for tracking errors."""
    pass


class TrackingService:
    """Completion actions and read models for one account's records."""

    def __init__(self, records: Records, suggestion_limit: Optional[int] = None):
        self.records = records
        self.suggestion_limit = config.pipeline.suggestion_limit if suggestion_limit is None else suggestion_limit

    @staticmethod
    def _set_completed(record, completed: bool, now) -> None:
        record.completed = completed
        record.completed_at = (now or utc_now()) if completed else None

    def complete_task(self, account_id: str, task_id: str, completed: bool = True, now=None) -> Task:
        """Mark a task completed (or reopen it).

        Raises:
            TrackingError: If the task does not exist for the account
        """
        task = self.records.get_task(account_id, task_id)
        if task is None:
            raise TrackingError(f'Task {task_id} not found')
        self._set_completed(task, completed, now)
        logger.info(f'Task {task_id} completed={completed}')
        return self.records.save_task(task)

    def complete_reminder(self, account_id: str, reminder_id: str, completed: bool = True, now=None) -> Reminder:
        """Mark a reminder completed (or reopen it).

        Raises:
            TrackingError: If the reminder does not exist for the account
        """
        reminder = self.records.get_reminder(account_id, reminder_id)
        if reminder is None:
            raise TrackingError(f'Reminder {reminder_id} not found')
        self._set_completed(reminder, completed, now)
        logger.info(f'Reminder {reminder_id} completed={completed}')
        return self.records.save_reminder(reminder)

    def complete_followup(self, account_id: str, followup_id: str, completed: bool = True, now=None) -> FollowUp:
        """Mark a follow-up completed (or reopen it).

        Completing a follow-up also counts as contact with its person.

        Raises:
            TrackingError: If the follow-up does not exist for the account
        """
        followup = self.records.get_followup(account_id, followup_id)
        if followup is None:
            raise TrackingError(f'Follow-up {followup_id} not found')
        self._set_completed(followup, completed, now)
        self.records.save_followup(followup)
        logger.info(f'Follow-up {followup_id} completed={completed}')

        if completed:
            try:
                self.record_contact(account_id, followup.person_id, now)
            except TrackingError as e:
                logger.warning(f'Follow-up {followup_id} completed but contact not recorded: {e}')
        return followup

    def record_contact(self, account_id: str, person_id: str, now=None) -> Person:
        """Set a person's last contact time.

        Raises:
            TrackingError: If the person does not exist for the account
        """
        person = self.records.get_person(account_id, person_id)
        if person is None:
            raise TrackingError(f'Person {person_id} not found')
        now = now or utc_now()
        person.communication.last_contacted = now
        person.updated_at = now
        logger.debug(f'Recorded contact with person {person_id}')
        return self.records.save_person(person)

    def suggested_followups(self, account_id: str, now=None) -> List[Dict[str, Any]]:
        """Open suggested follow-ups plus freshly computed overdue contacts.

        Computed suggestions are not stored; a person with an open stored
        suggestion is not suggested again. The computed part is capped.
        """
        now = now or utc_now()
        people = {person.id: person for person in self.records.list_people(account_id)}
        stored = self.records.list_followups(account_id, followup_type='suggested', completed=False)
        computed = merge_suggestions(stored, compute_overdue(people.values(), now), self.suggestion_limit)

        results = []
        for followup in stored:
            person = people.get(followup.person_id)
            results.append({
                'id': followup.id,
                'person_id': followup.person_id,
                'person_name': person.name if person else '',
                'reason': followup.reason or followup.context,
                'priority': followup.priority,
                'created_at': to_iso(followup.created_at),
                'stored': True,
            })
        for suggestion in computed:
            results.append({
                'id': None,
                'person_id': suggestion.person.id,
                'person_name': suggestion.person.name,
                'reason': suggestion.reason,
                'priority': suggestion.priority,
                'days_since_contact': suggestion.days_since_contact,
                'stored': False,
            })

        logger.debug(f'Suggested follow-ups for {account_id}: {len(stored)} stored, {len(computed)} computed')
        return results

    def network_graph(self, account_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """Nodes for every person and a directed edge for every stored connection."""
        people = self.records.list_people(account_id)
        ids = {person.id for person in people}

        nodes = [{
            'id': person.id,
            'name': person.name,
            'initials': person.initials,
            'closeness': person.sentiment.closeness_score,
        } for person in people]

        edges = [{
            'source': person.id,
            'target': connection.person_id,
            'strength': connection.strength,
            'type': connection.relationship_type,
        } for person in people for connection in person.connections if connection.person_id in ids]

        return {'nodes': nodes, 'edges': edges}

    def network_stats(self, account_id: str) -> Dict[str, Any]:
        people = self.records.list_people(account_id)
        total_connections = sum(len(person.connections) for person in people)
        average_closeness = sum(p.sentiment.closeness_score for p in people) / len(people) if people else 0.0

        return {
            'total_people': len(people),
            'total_connections': total_connections,
            'relationship_breakdown': dict(Counter(p.relationship.type for p in people)),
            'average_closeness': round(average_closeness, 2),
            'frequency_breakdown': dict(Counter(p.communication.frequency for p in people)),
        }
