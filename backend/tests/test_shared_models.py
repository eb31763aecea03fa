"""Tests for shared model utilities."""

import uuid
from datetime import UTC, datetime, timedelta, timezone

from app.models.shared import UUIDType, ensure_utc, generate_uuid, utc_now


class TestGenerateUuid:
    def test_returns_unique_uuid4(self):
        results = {generate_uuid() for _ in range(10)}
        assert len(results) == 10
        assert all(r.version == 4 for r in results)


class TestUtcNow:
    def test_returns_utc(self):
        assert utc_now().tzinfo == UTC


class TestEnsureUtc:
    def test_none(self):
        assert ensure_utc(None) is None

    def test_naive_gets_utc(self):
        naive = datetime(2026, 3, 1, 12, 0)
        assert ensure_utc(naive) == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def test_aware_unchanged(self):
        aware = datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(aware) is aware


class TestUUIDType:
    def test_bind_accepts_uuid_and_string(self):
        value = uuid.uuid4()
        assert UUIDType().process_bind_param(value, None) == str(value)
        assert UUIDType().process_bind_param(str(value), None) == str(value)

    def test_bind_none(self):
        assert UUIDType().process_bind_param(None, None) is None

    def test_result_parses_string(self):
        value = uuid.uuid4()
        assert UUIDType().process_result_value(str(value), None) == value
        assert UUIDType().process_result_value(None, None) is None
