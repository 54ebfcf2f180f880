"""Auditor view keys.

A view key grants one auditor time-bounded, scoped visibility into a
company's payment records. The scope is a closed set of variants, modelled as
a pydantic discriminated union on ``kind``:

- :class:`FullCompanyScope` - every record, with employee identities
- :class:`AggregateOnlyScope` - counts and sums only
- :class:`TimeRangeScope` - records whose period lies in ``[start, end]``
- :class:`EmployeeListScope` - records of the listed employees only

Keys expire on their own (checked at query time) or are revoked explicitly;
revocation is immediate and idempotent.

Example:
    >>> from zkpayroll.audit.view_keys import AggregateOnlyScope, ViewKeyManager
    >>>
    >>> manager = ViewKeyManager()
    >>> key = manager.issue("acme", "admin", "auditor", AggregateOnlyScope(), 30)
    >>> assert manager.is_valid(key)
    >>> manager.revoke(key.id)
    >>> assert not manager.is_valid(key)
"""

import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from zkpayroll.errors import InvalidScopeError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DURATION_DAYS = 365


def _as_utc(now: datetime | None) -> datetime:
    """Return *now* as an aware datetime, reading naive values as UTC."""
    if now is None:
        return datetime.now(UTC)
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


class FullCompanyScope(BaseModel):
    kind: Literal["full_company"] = "full_company"


class AggregateOnlyScope(BaseModel):
    kind: Literal["aggregate_only"] = "aggregate_only"


class TimeRangeScope(BaseModel):
    """Restricts a key to billing periods ``start..end`` (``YYYYMM``, inclusive)."""

    kind: Literal["time_range"] = "time_range"
    start: int
    end: int


class EmployeeListScope(BaseModel):
    kind: Literal["employee_list"] = "employee_list"
    employees: frozenset[str]


Scope = Annotated[
    FullCompanyScope | AggregateOnlyScope | TimeRangeScope | EmployeeListScope,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# View key
# ---------------------------------------------------------------------------


class ViewKey(BaseModel):
    """An auditor's disclosure grant.

    Attributes:
        id: Random hex identifier
        company: Company the key discloses
        auditor: Auditor identity the key was granted to
        granted_by: Admin identity that issued the key
        created_at: Issue time (UTC)
        expires_at: ``created_at + duration``
        scope: Disclosure scope
        revoked_at: Revocation time, if revoked
    """

    model_config = {"frozen": True}

    id: str
    company: str
    auditor: str
    granted_by: str
    created_at: datetime
    expires_at: datetime
    scope: Scope
    revoked_at: datetime | None = None

    def is_active(self, now: datetime | None = None) -> bool:
        """True unless revoked or ``now`` is past ``expires_at``.

        A naive ``now`` is read as UTC.
        """
        if self.revoked_at is not None:
            return False
        return _as_utc(now) <= self.expires_at


class ViewKeyManager:
    """Issues, looks up and revokes view keys.

    Args:
        max_duration_days: Longest lifetime a key may be issued with
    """

    def __init__(self, max_duration_days: int = DEFAULT_MAX_DURATION_DAYS):
        self.max_duration_days = max_duration_days
        self._keys: dict[str, ViewKey] = {}

    def issue(
        self,
        company: str,
        grantor: str,
        auditor: str,
        scope: Scope,
        duration_days: int,
        now: datetime | None = None,
    ) -> ViewKey:
        """Issue a view key valid for *duration_days* from *now*.

        Raises:
            InvalidScopeError: If the duration is not a positive int within
                the configured maximum, or a time range has ``start > end``.
        """
        if not isinstance(duration_days, int) or isinstance(duration_days, bool):
            raise InvalidScopeError("duration_days must be an int")
        if duration_days <= 0:
            raise InvalidScopeError(f"duration_days must be positive, got {duration_days}")
        if duration_days > self.max_duration_days:
            raise InvalidScopeError(
                f"duration_days {duration_days} exceeds maximum of {self.max_duration_days}"
            )
        if isinstance(scope, TimeRangeScope) and scope.start > scope.end:
            raise InvalidScopeError(
                f"Time range start {scope.start} is after end {scope.end}",
                details={"start": scope.start, "end": scope.end},
            )
        if isinstance(scope, EmployeeListScope) and not scope.employees:
            raise InvalidScopeError("Employee list scope names no employees")

        created_at = _as_utc(now)
        key = ViewKey(
            id=secrets.token_hex(16),
            company=company,
            auditor=auditor,
            granted_by=grantor,
            created_at=created_at,
            expires_at=created_at + timedelta(days=duration_days),
            scope=scope,
        )
        self._keys[key.id] = key
        logger.info(
            "Issued %s view key %s for company %s to %s (%d days)",
            scope.kind,
            key.id[:8],
            company,
            auditor,
            duration_days,
        )
        return key

    def is_valid(self, view_key: ViewKey, now: datetime | None = None) -> bool:
        """Whether *view_key* may be used at *now*.

        A revocation recorded by this manager applies even to stale copies of
        the key held by callers.
        """
        current = self._keys.get(view_key.id, view_key)
        return current.is_active(now) and view_key.is_active(now)

    def revoke(self, view_key_id: str, now: datetime | None = None) -> None:
        """Revoke a key. Unknown or already revoked ids are a no-op."""
        key = self._keys.get(view_key_id)
        if key is None or key.revoked_at is not None:
            logger.debug("Revoke of %s is a no-op", view_key_id[:8])
            return
        self._keys[view_key_id] = key.model_copy(
            update={"revoked_at": _as_utc(now)}
        )
        logger.info("Revoked view key %s for company %s", view_key_id[:8], key.company)

    def get(self, view_key_id: str) -> ViewKey | None:
        return self._keys.get(view_key_id)

    def list_for_company(self, company: str) -> list[ViewKey]:
        return sorted(
            (k for k in self._keys.values() if k.company == company),
            key=lambda k: k.created_at,
        )
