from datetime import timedelta

import pytest

from convointel.models.core import Communication, Connection, FollowUp, Person, Relationship, Reminder, Sentiment, Task
from convointel.services.tracking import TrackingError, TrackingService


@pytest.fixture
def tracking(records):
    return TrackingService(records, suggestion_limit=10)


def _save_person(records, person_id, name, account_id='acct-1', **fields):
    return records.save_person(Person(id=person_id, account_id=account_id, name=name, initials=name[0], **fields))


def test_complete_and_reopen_task(tracking, records, now) -> None:
    records.insert_tasks([Task(id='t1', account_id='acct-1', transcript_id='tr-1', title='Send deck')])

    task = tracking.complete_task('acct-1', 't1', now=now)
    assert task.completed is True
    assert records.get_task('acct-1', 't1').completed_at == now

    reopened = tracking.complete_task('acct-1', 't1', completed=False)
    assert reopened.completed is False
    assert reopened.completed_at is None


def test_complete_reminder(tracking, records, now) -> None:
    records.insert_reminders([Reminder(id='r1', account_id='acct-1', transcript_id='tr-1', title='Call Mike', category='call')])

    tracking.complete_reminder('acct-1', 'r1', now=now)

    assert records.get_reminder('acct-1', 'r1').completed is True


def test_completion_is_scoped_to_account(tracking, records) -> None:
    records.insert_tasks([Task(id='t1', account_id='acct-1', transcript_id='tr-1', title='Send deck')])

    with pytest.raises(TrackingError):
        tracking.complete_task('acct-2', 't1')
    with pytest.raises(TrackingError):
        tracking.complete_reminder('acct-1', 'missing')


def test_completing_followup_records_contact(tracking, records, now) -> None:
    _save_person(records, 'p1', 'Mike')
    records.save_followup(FollowUp(id='f1', account_id='acct-1', person_id='p1', type='pending', context='Send intro'))

    followup = tracking.complete_followup('acct-1', 'f1', now=now)

    assert followup.completed is True
    assert records.get_person('acct-1', 'p1').communication.last_contacted == now


def test_completing_followup_for_missing_person_still_completes(tracking, records, now) -> None:
    records.save_followup(FollowUp(id='f1', account_id='acct-1', person_id='gone', type='pending', context=''))

    assert tracking.complete_followup('acct-1', 'f1', now=now).completed is True
    assert records.get_followup('acct-1', 'f1').completed is True


def test_suggested_followups_combine_stored_and_computed(tracking, records, now) -> None:
    _save_person(records, 'p1', 'Maria', communication=Communication(last_contacted=now - timedelta(days=40), frequency='monthly'))
    _save_person(records, 'p2', 'Lisa', communication=Communication(last_contacted=now - timedelta(days=90), frequency='weekly'))
    _save_person(records, 'p3', 'Sam', communication=Communication(last_contacted=now - timedelta(days=1), frequency='weekly'))
    records.save_followup(FollowUp(id='f1', account_id='acct-1', person_id='p2', type='suggested', context='Ask about trip', priority='low'))
    records.save_followup(FollowUp(id='f2', account_id='acct-1', person_id='p1', type='suggested', context='Old', completed=True))

    suggestions = tracking.suggested_followups('acct-1', now=now)

    assert [(s['person_name'], s['stored']) for s in suggestions] == [('Lisa', True), ('Maria', False)]
    assert suggestions[0]['id'] == 'f1'
    assert suggestions[0]['reason'] == 'Ask about trip'
    assert suggestions[1]['id'] is None
    assert suggestions[1]['days_since_contact'] == 40
    assert suggestions[1]['priority'] == 'medium'


def test_suggestion_limit_caps_computed_only(records, now) -> None:
    for i in range(3):
        _save_person(records, f'p{i}', f'P{i}', communication=Communication(last_contacted=now - timedelta(days=50), frequency='weekly'))
    records.save_followup(FollowUp(id='f1', account_id='acct-1', person_id='p0', type='suggested', context='x'))

    suggestions = TrackingService(records, suggestion_limit=1).suggested_followups('acct-1', now=now)

    assert [s['stored'] for s in suggestions] == [True, False]


def test_network_graph_and_stats(tracking, records) -> None:
    _save_person(records,
                 'p1',
                 'Maria',
                 relationship=Relationship(type='friend'),
                 communication=Communication(frequency='weekly'),
                 sentiment=Sentiment(closeness_score=0.9),
                 connections=[Connection(person_id='p2', relationship_type='colleague', strength=0.7),
                              Connection(person_id='elsewhere')])
    _save_person(records, 'p2', 'Alex', relationship=Relationship(type='colleague'), sentiment=Sentiment(closeness_score=0.4))
    _save_person(records, 'p9', 'Other', account_id='acct-2')

    graph = tracking.network_graph('acct-1')

    assert sorted(node['name'] for node in graph['nodes']) == ['Alex', 'Maria']
    assert graph['edges'] == [{'source': 'p1', 'target': 'p2', 'strength': 0.7, 'type': 'colleague'}]

    stats = tracking.network_stats('acct-1')
    assert stats['total_people'] == 2
    assert stats['total_connections'] == 2
    assert stats['relationship_breakdown'] == {'friend': 1, 'colleague': 1}
    assert stats['frequency_breakdown'] == {'weekly': 1, 'rarely': 1}
    assert stats['average_closeness'] == 0.65


def test_network_stats_for_empty_account(tracking) -> None:
    assert tracking.network_stats('nobody')['average_closeness'] == 0.0
