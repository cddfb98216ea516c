"""Tests for the maintenance Celery tasks.

Tasks run eagerly through .apply() against the test database.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from agora.config import clear_settings_cache
from agora.db.models import Notification, Story
from agora.db.types import utcnow
from agora.tasks import purge_expired_stories, purge_read_notifications
from tests.factories import create_notification, create_story, create_user


@pytest.fixture(autouse=True)
def task_sessions(session_factory):
    with patch("agora.tasks.maintenance.get_session_factory", return_value=session_factory):
        yield


class TestPurgeReadNotificationsTask:
    def test_deletes_old_read_rows(self, db, session_factory):
        alice = create_user(db, username="alice")
        bob = create_user(db, username="bob")
        now = utcnow()
        create_notification(db, alice, bob, is_read=True, created_at=now - timedelta(days=31))
        kept = create_notification(db, alice, bob, is_read=False)

        result = purge_read_notifications.apply(kwargs={"request_id": "req-1"}).get()

        assert result == {"status": "ok", "deleted": 1}
        with session_factory() as s:
            assert s.execute(select(Notification.id)).scalars().all() == [kept.id]

    def test_honours_retention_setting(self, monkeypatch, db):
        monkeypatch.setenv("NOTIFICATION_RETENTION_DAYS", "7")
        clear_settings_cache()
        alice = create_user(db, username="alice")
        bob = create_user(db, username="bob")
        create_notification(db, alice, bob, is_read=True, created_at=utcnow() - timedelta(days=8))

        result = purge_read_notifications.apply().get()

        assert result["deleted"] == 1


class TestPurgeExpiredStoriesTask:
    def test_deletes_expired_and_deleted(self, db, session_factory):
        author = create_user(db, username="author")
        create_story(db, author, created_at=utcnow() - timedelta(hours=30))
        create_story(db, author, is_deleted=True)
        live = create_story(db, author)

        result = purge_expired_stories.apply().get()

        assert result == {"status": "ok", "deleted": 2}
        with session_factory() as s:
            assert s.execute(select(Story.id)).scalars().all() == [live.id]

    def test_idempotent(self, db):
        author = create_user(db, username="author")
        create_story(db, author, created_at=utcnow() - timedelta(hours=30))

        purge_expired_stories.apply().get()

        assert purge_expired_stories.apply().get()["deleted"] == 0
