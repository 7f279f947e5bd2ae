"""
Tests for the bounded notification feed.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dinkdrop.models import NotificationType
from dinkdrop.notifications import NotificationFeed, make_notification

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _note(i: int):
    return make_notification(NotificationType.GENERAL, f"n{i}", f"message {i}", T0 + timedelta(seconds=i))


def test_newest_first():
    feed = NotificationFeed()
    feed.push(_note(1))
    feed.push(_note(2))
    assert [n.title for n in feed.items()] == ["n2", "n1"]


def test_capacity_evicts_oldest():
    feed = NotificationFeed(capacity=20)
    for i in range(25):
        feed.push(_note(i))
    items = feed.items()
    assert len(items) == 20
    assert items[0].title == "n24"
    assert items[-1].title == "n5"


def test_extend_keeps_emission_order():
    feed = NotificationFeed(capacity=5)
    feed.extend([_note(1), _note(2), _note(3)])
    assert [n.title for n in feed.items()] == ["n3", "n2", "n1"]


def test_mark_read_and_unread():
    feed = NotificationFeed()
    a, b = _note(1), _note(2)
    feed.extend([a, b])
    assert feed.mark_read(a.id) is True
    assert feed.mark_read("missing") is False
    assert [n.id for n in feed.unread()] == [b.id]


def test_clear_and_len():
    feed = NotificationFeed(capacity=3)
    feed.extend([_note(i) for i in range(5)])
    assert len(feed) == 3
    feed.clear()
    assert len(feed) == 0


def test_invalid_capacity():
    with pytest.raises(ValueError):
        NotificationFeed(capacity=0)
