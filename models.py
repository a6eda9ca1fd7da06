"""
models.py
─────────
Platform-neutral data models and the error taxonomy.

The CSV is first converted into a list of DesiredRecord.  Adapters report
the live team state using the same types, so the planner and the
reconciler never see anything Graph-specific.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum


class CanonicalRole(Enum):
    MEMBER = "member"
    OWNER = "owner"


class MembershipType(Enum):
    STANDARD = "standard"
    PRIVATE = "private"


class RunMode(Enum):
    CHANNELS = "channels"  # ensure channels exist, nothing else
    FULL = "full"  # channels, team members, channel members


# ── desired state ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DesiredRecord:
    user: str  # normalised identity (UPN / e-mail)
    role: str  # raw value from the sheet, normalised later
    channel: str  # exact channel display name
    row: int = 0  # 1-based data row in the source file


# ── live state ────────────────────────────────────────────────────────────────


@dataclass
class Team:
    group_id: str
    display_name: str


@dataclass
class ChannelDescriptor:
    name: str
    membership_type: MembershipType
    id: str | None = None  # remote ID, if the adapter knows it


@dataclass
class TeamMembership:
    user: str
    role: CanonicalRole


@dataclass
class ChannelMembership:
    channel: str
    user: str
    role: CanonicalRole


# ── results ───────────────────────────────────────────────────────────────────


class ChannelOutcome(Enum):
    CREATED = "created"
    ALREADY_EXISTED = "already_existed"
    FAILED = "failed"


@dataclass
class ChannelResult:
    name: str
    outcome: ChannelOutcome
    reason: str = ""
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is not ChannelOutcome.FAILED


@dataclass
class MembershipDiff:
    to_add: list[tuple[str, CanonicalRole]] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_add and not self.to_remove


@dataclass
class Failure:
    entity: str  # user, channel, or "channel/user"
    operation: str  # e.g. "add team member"
    reason: str


@dataclass
class BatchOutcome:
    succeeded: int = 0
    failed: int = 0
    batches: int = 0
    failures: list[Failure] = field(default_factory=list)


# ── errors ────────────────────────────────────────────────────────────────────


class ErrorKind(Enum):
    NAME_COLLISION = "name_collision"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    REJECTED = "rejected"


TRANSIENT_KINDS = frozenset({ErrorKind.NAME_COLLISION, ErrorKind.RATE_LIMITED})


class ValidationError(Exception):
    """Bad input or missing team.  Raised before any remote mutation."""

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason  # missing_file | missing_columns | empty | malformed | team_not_found
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class RemoteError(Exception):
    """A single remote call was rejected.  Scoped to one item."""

    def __init__(self, kind: ErrorKind, message: str, status: int | None = None):
        self.kind = kind
        self.message = message
        self.status = status
        super().__init__(message)

    @property
    def transient(self) -> bool:
        return self.kind in TRANSIENT_KINDS


class RemoteUnavailable(Exception):
    """The directory service cannot be reached at all.  Ends the run."""
