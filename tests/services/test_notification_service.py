from datetime import datetime, timedelta, timezone

import pytest
import requests
from pymongo.errors import PyMongoError

from app.core import config
from app.db.client import MAIL_QUEUE
from app.services.notification_service import MailDispatcher, NotificationGateway


class FakeResponse:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({'url': url, 'json': json, 'headers': headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_enqueue_stores_pending_message(db) -> None:
    outcome = NotificationGateway(db).enqueue('a@b.test', 'Hello', '<p>Hi</p>')

    assert outcome == {'queued': True}
    message = db[MAIL_QUEUE].find_one()
    assert message['to'] == 'a@b.test'
    assert message['status'] == 'pending'
    assert message['attempts'] == 0


def test_enqueue_without_recipient_is_not_queued(db) -> None:
    assert NotificationGateway(db).enqueue('', 'Hello', 'body') == {'queued': False}
    assert db[MAIL_QUEUE].count_documents({}) == 0


def test_enqueue_store_failure_returns_false_instead_of_raising(db, monkeypatch) -> None:
    def _fail(*args, **kwargs):
        raise PyMongoError('queue down')

    monkeypatch.setattr(db[MAIL_QUEUE].__class__, 'insert_one', _fail)

    assert NotificationGateway(db).enqueue('a@b.test', 'Hello', 'body') == {'queued': False}


def test_dispatch_without_api_url_runs_dry(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'EMAIL_API_URL', '')
    NotificationGateway(db).enqueue('a@b.test', 'Hello', 'body')
    session = FakeSession([])

    stats = MailDispatcher(db, session=session).dispatch_pending()

    assert stats['dry_run'] == 1
    assert session.calls == []
    assert db[MAIL_QUEUE].find_one()['status'] == 'dry_run'


def test_dispatch_delivers_through_email_api(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'EMAIL_API_URL', 'https://mail.example.test/send')
    monkeypatch.setattr(config, 'EMAIL_API_KEY', 'key-123')
    NotificationGateway(db).enqueue('a@b.test', 'Hello', '<p>Hi</p>')
    session = FakeSession([FakeResponse(200)])

    stats = MailDispatcher(db, session=session).dispatch_pending()

    assert stats['sent'] == 1
    assert session.calls[0]['json']['to'] == ['a@b.test']
    assert session.calls[0]['headers']['Authorization'] == 'Bearer key-123'
    assert db[MAIL_QUEUE].find_one()['status'] == 'sent'


def test_failed_delivery_is_retried_on_next_pass_then_marked_failed(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'EMAIL_API_URL', 'https://mail.example.test/send')
    monkeypatch.setattr(config, 'MAIL_MAX_ATTEMPTS', 2)
    NotificationGateway(db).enqueue('a@b.test', 'Hello', 'body')
    session = FakeSession([requests.ConnectionError('refused'), FakeResponse(503)])
    dispatcher = MailDispatcher(db, session=session)

    first = dispatcher.dispatch_pending()
    assert first['pending'] == 1
    assert len(session.calls) == 1
    assert db[MAIL_QUEUE].find_one()['status'] == 'pending'

    second = dispatcher.dispatch_pending()
    assert second['failed'] == 1
    message = db[MAIL_QUEUE].find_one()
    assert message['status'] == 'failed'
    assert message['attempts'] == 2


@pytest.mark.parametrize('limit', [1, 2])
def test_dispatch_respects_limit(db, monkeypatch, limit) -> None:
    monkeypatch.setattr(config, 'EMAIL_API_URL', '')
    gateway = NotificationGateway(db)
    for i in range(3):
        gateway.enqueue(f'user{i}@b.test', 'Hello', 'body')

    MailDispatcher(db, session=FakeSession([])).dispatch_pending(limit=limit)

    assert db[MAIL_QUEUE].count_documents({'status': 'pending'}) == 3 - limit


def _stuck_message(db, claimed_minutes_ago: int, attempts: int = 1) -> None:
    now = datetime.now(timezone.utc)
    db[MAIL_QUEUE].insert_one({
        'to': 'a@b.test',
        'subject': 'Hello',
        'html': 'body',
        'status': 'sending',
        'attempts': attempts,
        'created_at': now - timedelta(hours=1),
        'claimed_at': now - timedelta(minutes=claimed_minutes_ago),
    })


def test_claim_records_claim_time(db) -> None:
    NotificationGateway(db).enqueue('a@b.test', 'Hello', 'body')

    message = MailDispatcher(db, session=FakeSession([]))._claim_next([])

    assert message['status'] == 'sending'
    assert message['claimed_at'] is not None


def test_abandoned_sending_message_is_reclaimed(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'EMAIL_API_URL', 'https://mail.example.test/send')
    monkeypatch.setattr(config, 'MAIL_SENDING_TIMEOUT_SECONDS', 600)
    _stuck_message(db, claimed_minutes_ago=30)

    stats = MailDispatcher(db, session=FakeSession([FakeResponse(200)])).dispatch_pending()

    assert stats['sent'] == 1
    message = db[MAIL_QUEUE].find_one()
    assert message['status'] == 'sent'
    assert message['attempts'] == 2


def test_recently_claimed_message_is_left_alone(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'MAIL_SENDING_TIMEOUT_SECONDS', 600)
    _stuck_message(db, claimed_minutes_ago=1)
    session = FakeSession([])

    MailDispatcher(db, session=session).dispatch_pending()

    assert session.calls == []
    assert db[MAIL_QUEUE].find_one()['status'] == 'sending'


def test_reclaimed_message_past_max_attempts_is_failed(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'EMAIL_API_URL', 'https://mail.example.test/send')
    monkeypatch.setattr(config, 'MAIL_MAX_ATTEMPTS', 2)
    _stuck_message(db, claimed_minutes_ago=30, attempts=2)
    session = FakeSession([])

    stats = MailDispatcher(db, session=session).dispatch_pending()

    assert stats['failed'] == 1
    assert session.calls == []
    assert db[MAIL_QUEUE].find_one()['status'] == 'failed'


def test_outcome_write_failure_leaves_message_reclaimable(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'EMAIL_API_URL', '')
    monkeypatch.setattr(config, 'MAIL_SENDING_TIMEOUT_SECONDS', 600)
    NotificationGateway(db).enqueue('a@b.test', 'Hello', 'body')
    collection_class = db[MAIL_QUEUE].__class__
    real_update_one = collection_class.update_one

    def _fail(*args, **kwargs):
        raise PyMongoError('write timeout')

    monkeypatch.setattr(collection_class, 'update_one', _fail)
    MailDispatcher(db, session=FakeSession([])).dispatch_pending()
    assert db[MAIL_QUEUE].find_one()['status'] == 'sending'

    monkeypatch.setattr(collection_class, 'update_one', real_update_one)
    db[MAIL_QUEUE].update_one({}, {'$set': {'claimed_at': datetime.now(timezone.utc) - timedelta(hours=1)}})
    stats = MailDispatcher(db, session=FakeSession([])).dispatch_pending()

    assert stats['dry_run'] == 1
    assert db[MAIL_QUEUE].find_one()['status'] == 'dry_run'
