"""Tests for the allow-listed audit filter, pagination and sort parsing."""

from datetime import datetime, timezone

import pytest

from adminlog.models.audit_record import Severity
from adminlog.services.audit_filters import (
    AuditLogFilter,
    MAX_OFFSET,
    MAX_PAGE_SIZE,
    escape_like,
    parse_pagination,
    parse_sort,
    parse_timestamp,
)


class TestParseTimestamp:

    def test_date_only_is_midnight_utc(self):
        assert parse_timestamp("2024-01-01") == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_end_of_day_widening(self):
        parsed = parse_timestamp("2024-01-31", end_of_day=True)
        assert parsed == datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_explicit_time_not_widened(self):
        parsed = parse_timestamp("2024-01-31T10:00:00", end_of_day=True)
        assert parsed == datetime(2024, 1, 31, 10, 0, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = parse_timestamp("2024-01-31T10:00:00+02:00")
        assert parsed == datetime(2024, 1, 31, 8, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("raw", [None, "", "   ", "not-a-date", "2024-13-45"])
    def test_invalid_dates_dropped(self, raw):
        assert parse_timestamp(raw) is None


class TestFromParams:

    def test_recognised_keys(self):
        audit_filter = AuditLogFilter.from_params({
            "startDate": "2024-01-01",
            "endDate": "2024-01-31",
            "adminId": "admin-1",
            "action": "update",
            "entity": "Products",
            "severity": "warning",
            "search": "ada",
        })
        assert audit_filter.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert audit_filter.end.date().isoformat() == "2024-01-31"
        assert audit_filter.actor_id == "admin-1"
        assert audit_filter.action == "UPDATE"
        assert audit_filter.entity == "Products"
        assert audit_filter.severity == Severity.WARNING
        assert audit_filter.search == "ada"

    def test_actor_id_alias(self):
        assert AuditLogFilter.from_params({"actorId": "a-9"}).actor_id == "a-9"

    @pytest.mark.security
    def test_unknown_keys_ignored(self):
        audit_filter = AuditLogFilter.from_params({
            "$where": "1 == 1",
            "actor_role": "admin",
            "timestamp": "2024-01-01",
        })
        assert audit_filter.is_empty
        assert audit_filter == AuditLogFilter()

    def test_invalid_values_dropped(self):
        audit_filter = AuditLogFilter.from_params({
            "startDate": "yesterday",
            "severity": "LOUD",
            "entity": "   ",
        })
        assert audit_filter.is_empty

    def test_describe_range(self):
        assert AuditLogFilter().describe_range() == "All to All"
        audit_filter = AuditLogFilter.from_params({"startDate": "2024-01-01"})
        assert audit_filter.describe_range() == "2024-01-01 to All"


class TestPaginationAndSort:

    @pytest.mark.parametrize("page,limit,expected", [
        (None, None, (1, 20)),
        ("3", "50", (3, 50)),
        ("0", "-5", (1, 20)),
        ("abc", "1000", (1, MAX_PAGE_SIZE)),
        ("100000000000000000000", "20", (MAX_OFFSET // 20 + 1, 20)),
    ])
    def test_parse_pagination(self, page, limit, expected):
        assert parse_pagination(page, limit) == expected

    def test_parse_sort_defaults(self):
        assert parse_sort() == ("timestamp", "desc")

    def test_parse_sort_alias_and_order(self):
        assert parse_sort("createdAt", "ASC") == ("timestamp", "asc")
        assert parse_sort("actorName", "desc") == ("actor_name", "desc")

    def test_parse_sort_rejects_unknown(self):
        assert parse_sort("password", "sideways") == ("timestamp", "desc")


def test_escape_like():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
