"""Mini README: Shared fixtures for the ledger test-suite.

Structure:
    * settings - explicit settings object with short lock timeouts.
    * audit_sink / notification_sink - in-memory sinks for assertions.
    * directory - demo project directory (prj_0001, distributable 99591.00).
    * service - LedgerService wired to the fixtures above.
    * AYSE / MEHMET / ZEYNEP - person references used across tests.
"""

from __future__ import annotations

import pytest

from ttoledger.configuration import LedgerSettings
from ttoledger.events import RecordingAuditSink, RecordingNotificationSink
from ttoledger.finance import PersonRef
from ttoledger.service import LedgerService
from ttoledger.storage import InMemoryProjectDirectory

AYSE = PersonRef.user("usr_ayse")
MEHMET = PersonRef.user("usr_mehmet")
ZEYNEP = PersonRef.personnel("per_zeynep")

DEMO_PROJECT = "prj_0001"


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(lock_timeout_seconds=2.0, concurrency_retry_attempts=3)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def notification_sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def directory() -> InMemoryProjectDirectory:
    return InMemoryProjectDirectory.with_demo_data()


@pytest.fixture
def service(directory, settings, audit_sink, notification_sink) -> LedgerService:
    return LedgerService(
        directory,
        settings=settings,
        audit_sink=audit_sink,
        notification_sink=notification_sink,
    )
