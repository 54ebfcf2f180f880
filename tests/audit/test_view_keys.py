"""Tests for auditor view keys."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import TypeAdapter, ValidationError

from zkpayroll.audit.view_keys import (
    AggregateOnlyScope,
    EmployeeListScope,
    FullCompanyScope,
    Scope,
    TimeRangeScope,
    ViewKey,
    ViewKeyManager,
)
from zkpayroll.errors import InvalidScopeError

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def manager():
    return ViewKeyManager()


class TestScopes:
    def test_discriminated_union(self):
        adapter = TypeAdapter(Scope)
        scope = adapter.validate_python({"kind": "time_range", "start": 202601, "end": 202603})
        assert isinstance(scope, TimeRangeScope)
        assert isinstance(adapter.validate_python({"kind": "aggregate_only"}), AggregateOnlyScope)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(Scope).validate_python({"kind": "everything"})

    def test_employee_list_json_round_trip(self):
        adapter = TypeAdapter(Scope)
        scope = EmployeeListScope(employees=frozenset({"GALICE", "GBOB"}))
        assert adapter.validate_json(adapter.dump_json(scope)) == scope


class TestIssue:
    def test_fields(self, manager):
        key = manager.issue("acme", "admin", "auditor", FullCompanyScope(), 30, now=NOW)

        assert len(key.id) == 32
        assert key.company == "acme"
        assert key.granted_by == "admin"
        assert key.auditor == "auditor"
        assert key.created_at == NOW
        assert key.expires_at == NOW + timedelta(days=30)
        assert key.revoked_at is None

    def test_unique_ids(self, manager):
        a = manager.issue("acme", "admin", "auditor", FullCompanyScope(), 30)
        b = manager.issue("acme", "admin", "auditor", FullCompanyScope(), 30)
        assert a.id != b.id

    @pytest.mark.parametrize("days", [0, -1])
    def test_non_positive_duration(self, manager, days):
        with pytest.raises(InvalidScopeError, match="positive"):
            manager.issue("acme", "admin", "auditor", FullCompanyScope(), days)

    @pytest.mark.parametrize("days", [1.5, "30", True])
    def test_non_int_duration(self, manager, days):
        with pytest.raises(InvalidScopeError):
            manager.issue("acme", "admin", "auditor", FullCompanyScope(), days)

    def test_duration_above_maximum(self):
        manager = ViewKeyManager(max_duration_days=90)
        with pytest.raises(InvalidScopeError, match="exceeds"):
            manager.issue("acme", "admin", "auditor", FullCompanyScope(), 91)

    def test_inverted_time_range(self, manager):
        with pytest.raises(InvalidScopeError) as exc_info:
            manager.issue(
                "acme", "admin", "auditor", TimeRangeScope(start=202606, end=202601), 30
            )
        assert exc_info.value.details == {"start": 202606, "end": 202601}

    def test_single_period_range_allowed(self, manager):
        key = manager.issue("acme", "admin", "auditor", TimeRangeScope(start=202601, end=202601), 1)
        assert key.scope.start == key.scope.end

    def test_empty_employee_list(self, manager):
        with pytest.raises(InvalidScopeError):
            manager.issue(
                "acme", "admin", "auditor", EmployeeListScope(employees=frozenset()), 30
            )

    def test_key_is_immutable(self, manager):
        key = manager.issue("acme", "admin", "auditor", FullCompanyScope(), 30)
        with pytest.raises(ValidationError):
            key.company = "other"


class TestValidity:
    def test_valid_until_expiry(self, manager):
        key = manager.issue("acme", "admin", "auditor", AggregateOnlyScope(), 30, now=NOW)

        assert manager.is_valid(key, now=NOW)
        assert manager.is_valid(key, now=NOW + timedelta(days=30))
        assert not manager.is_valid(key, now=NOW + timedelta(days=30, seconds=1))

    def test_naive_now_read_as_utc(self, manager):
        key = manager.issue("acme", "admin", "auditor", AggregateOnlyScope(), 30, now=NOW)
        naive_expiry = (NOW + timedelta(days=30)).replace(tzinfo=None)

        assert key.is_active(naive_expiry)
        assert manager.is_valid(key, now=naive_expiry)
        assert not manager.is_valid(key, now=naive_expiry + timedelta(seconds=1))

    def test_naive_issue_and_revoke_times_stored_as_utc(self, manager):
        naive = NOW.replace(tzinfo=None)
        key = manager.issue("acme", "admin", "auditor", AggregateOnlyScope(), 30, now=naive)
        manager.revoke(key.id, now=naive)

        assert key.created_at == NOW
        assert manager.get(key.id).revoked_at == NOW

    def test_revocation_is_immediate(self, manager):
        key = manager.issue("acme", "admin", "auditor", AggregateOnlyScope(), 30, now=NOW)

        manager.revoke(key.id, now=NOW)

        # The caller's copy predates the revocation; the manager's record wins
        assert key.revoked_at is None
        assert not manager.is_valid(key, now=NOW)
        assert manager.get(key.id).revoked_at == NOW

    def test_revoke_is_idempotent(self, manager):
        key = manager.issue("acme", "admin", "auditor", AggregateOnlyScope(), 30, now=NOW)

        manager.revoke(key.id, now=NOW)
        manager.revoke(key.id, now=NOW + timedelta(days=1))

        assert manager.get(key.id).revoked_at == NOW

    def test_revoke_unknown_is_noop(self, manager):
        manager.revoke("does-not-exist")

    def test_unknown_key_checked_on_its_own_fields(self, manager):
        foreign = ViewKey(
            id="f" * 32,
            company="acme",
            auditor="auditor",
            granted_by="admin",
            created_at=NOW,
            expires_at=NOW + timedelta(days=1),
            scope=FullCompanyScope(),
        )
        assert manager.is_valid(foreign, now=NOW)
        assert not manager.is_valid(foreign, now=NOW + timedelta(days=2))


class TestLookup:
    def test_get(self, manager):
        key = manager.issue("acme", "admin", "auditor", FullCompanyScope(), 30)
        assert manager.get(key.id) == key
        assert manager.get("missing") is None

    def test_list_for_company(self, manager):
        first = manager.issue("acme", "admin", "a1", FullCompanyScope(), 30, now=NOW)
        second = manager.issue(
            "acme", "admin", "a2", AggregateOnlyScope(), 30, now=NOW + timedelta(hours=1)
        )
        manager.issue("globex", "admin", "a3", FullCompanyScope(), 30, now=NOW)

        assert [k.id for k in manager.list_for_company("acme")] == [first.id, second.id]

    def test_json_round_trip(self, manager):
        key = manager.issue(
            "acme",
            "admin",
            "auditor",
            EmployeeListScope(employees=frozenset({"GALICE"})),
            30,
        )
        assert ViewKey.model_validate_json(key.model_dump_json()) == key
