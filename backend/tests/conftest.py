from __future__ import annotations

import os

os.environ.setdefault("QUIZ_DATABASE_URL", "sqlite://")
os.environ.setdefault("QUIZ_REFRESH_INTERVAL_SECONDS", "0")
os.environ.setdefault("QUIZ_TIMEZONE", "America/New_York")

import pytest  # noqa: E402

from dailyquiz.db.base import Base  # noqa: E402
from dailyquiz.db.session import get_engine  # noqa: E402
from dailyquiz.telemetry import TelemetryEvent, register_listener, unregister_listener  # noqa: E402


@pytest.fixture
def clean_database():
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield engine


@pytest.fixture
def telemetry_events():
    events: list[TelemetryEvent] = []
    register_listener(events.append)
    yield events
    unregister_listener(events.append)
