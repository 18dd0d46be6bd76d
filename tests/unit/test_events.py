"""
Unit tests for the EventBus (scriptcrm/bus/events.py).
No mocking required, pure Python.
"""

import logging

import pytest
from scriptcrm.bus.events import (
    EventBus,
    EVENT_SCRIPT_CREATED, EVENT_SCRIPT_UPDATED, EVENT_SCRIPT_DELETED,
    EVENT_SCRIPT_DUPLICATED, EVENT_SCRIPT_VERSIONED, EVENT_SCRIPT_METRICS_UPDATED,
)

ALL_EVENTS = [
    EVENT_SCRIPT_CREATED, EVENT_SCRIPT_UPDATED, EVENT_SCRIPT_DELETED,
    EVENT_SCRIPT_DUPLICATED, EVENT_SCRIPT_VERSIONED, EVENT_SCRIPT_METRICS_UPDATED,
]


@pytest.fixture
def bus():
    """Fresh EventBus for each test, never share state between tests."""
    return EventBus()


# ---------------------------------------------------------------------------
# Basic emit / subscribe
# ---------------------------------------------------------------------------

def test_handler_called_on_emit(bus):
    received = []
    bus.on(EVENT_SCRIPT_CREATED, lambda data: received.append(data))
    bus.emit(EVENT_SCRIPT_CREATED, {'script_id': 'abc'})
    assert received == [{'script_id': 'abc'}]


def test_multiple_handlers_called_in_registration_order(bus):
    calls = []
    bus.on('evt', lambda d: calls.append('a'))
    bus.on('evt', lambda d: calls.append('b'))
    bus.emit('evt', {})
    assert calls == ['a', 'b']


def test_emit_no_handlers_is_silent(bus):
    bus.emit('unknown_event', {'x': 1})


def test_emit_default_data_is_empty_dict(bus):
    received = []
    bus.on('evt', lambda data: received.append(data))
    bus.emit('evt')
    assert received == [{}]


# ---------------------------------------------------------------------------
# Error isolation
# ---------------------------------------------------------------------------

def test_handler_exception_does_not_propagate(bus, caplog):
    """A bad handler must not crash the bus or prevent other handlers from running."""
    good_calls = []

    def bad_handler(data):
        raise RuntimeError("handler exploded")

    bus.on('evt', bad_handler)
    bus.on('evt', lambda d: good_calls.append(True))

    with caplog.at_level(logging.ERROR, logger='scriptcrm.bus.events'):
        bus.emit('evt', {})

    assert good_calls == [True]
    assert any('handler exploded' in r.message for r in caplog.records)


# ---------------------------------------------------------------------------
# clear()
# ---------------------------------------------------------------------------

def test_clear_removes_all_handlers(bus):
    calls = []
    bus.on('evt', lambda d: calls.append(1))
    bus.clear()
    bus.emit('evt', {})
    assert calls == []


def test_clear_allows_reregistration(bus):
    calls = []
    bus.on('evt', lambda d: calls.append('first'))
    bus.clear()
    bus.on('evt', lambda d: calls.append('second'))
    bus.emit('evt', {})
    assert calls == ['second']


def test_events_are_isolated(bus):
    a_calls, b_calls = [], []
    bus.on(EVENT_SCRIPT_CREATED, lambda d: a_calls.append(True))
    bus.on(EVENT_SCRIPT_DELETED, lambda d: b_calls.append(True))

    bus.emit(EVENT_SCRIPT_CREATED, {})
    assert a_calls == [True]
    assert b_calls == []


# ---------------------------------------------------------------------------
# Event name constants
# ---------------------------------------------------------------------------

def test_event_constants_are_strings():
    for c in ALL_EVENTS:
        assert isinstance(c, str) and c.startswith('script_')


def test_event_constants_are_unique():
    assert len(ALL_EVENTS) == len(set(ALL_EVENTS))
