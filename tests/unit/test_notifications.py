from convointel.services.notifications import LoggingNotificationSink, NotificationSink

from ..fakes import RecordingSink


class ExplodingSink(NotificationSink):

    def emit(self, notification):
        raise ConnectionError('socket closed')


def test_helpers_build_notifications() -> None:
    sink = RecordingSink()

    sink.processing('acct-1', 'tr-1')
    sink.progress('acct-1', 'tr-1', 'people', people=2)
    sink.error('acct-1', 'tr-1', 'boom', 'NO_SPEECH')

    assert sink.events == ['processing', 'progress', 'error']
    assert sink.notifications[1].message == 'people'
    assert sink.notifications[1].data == {'stage': 'people', 'people': 2}
    assert sink.notifications[2].data == {'code': 'NO_SPEECH'}


def test_delivery_failures_are_swallowed() -> None:
    sink = ExplodingSink()

    sink.complete('acct-1', 'tr-1', {'tasks': 1})
    sink.error('acct-1', 'tr-1', 'boom')


def test_logging_sink(caplog) -> None:
    caplog.set_level('INFO', logger='convointel.services.notifications')

    LoggingNotificationSink().complete('acct-1', 'tr-1', {'tasks': 1})

    assert 'transcript=tr-1' in caplog.text
