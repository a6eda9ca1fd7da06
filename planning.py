"""
planning.py
───────────
Pure planning helpers: batch sizing, role normalisation, desired-state
builders and the membership diff.

Nothing in here talks to the network.
"""

from __future__ import annotations
from typing import Iterable

from loguru import logger

from models import CanonicalRole, DesiredRecord, MembershipDiff

# (upper bound on record count, batch size)
_BATCH_STEPS = [
    (50, 25),
    (200, 50),
    (500, 75),
    (1000, 100),
]
_MAX_BATCH = 150

_ROLE_NAMES = {role.value: role for role in CanonicalRole}


def batch_size_for(count: int) -> int:
    """Pick a batch size for a job of ``count`` records."""
    if count < 0:
        raise ValueError(f"record count cannot be negative: {count}")
    for limit, size in _BATCH_STEPS:
        if count <= limit:
            return size
    return _MAX_BATCH


def normalize_identity(value: str) -> str:
    return value.strip().lower()


def normalize_role(
    raw: str | None, user: str | None = None, channel: str | None = None
) -> CanonicalRole:
    """
    Map a free-form role string to a CanonicalRole.

    Anything other than "member" / "owner" (any case) falls back to MEMBER
    and logs a warning naming the row's user and channel.
    """
    role = _ROLE_NAMES.get((raw or "").strip().lower())
    if role is not None:
        return role
    logger.warning(
        "Unrecognised role {!r} for user {} in channel {} – treating as member",
        raw,
        user or "?",
        channel or "?",
    )
    return CanonicalRole.MEMBER


# ── desired state ─────────────────────────────────────────────────────────────


def desired_channel_names(records: Iterable[DesiredRecord]) -> list[str]:
    seen: dict[str, None] = {}
    for rec in records:
        seen.setdefault(rec.channel, None)
    return list(seen)


def desired_team_members(
    records: Iterable[DesiredRecord],
) -> dict[str, CanonicalRole]:
    # Only presence matters at team level; additions go in as members.
    members: dict[str, CanonicalRole] = {}
    for rec in records:
        members.setdefault(rec.user, CanonicalRole.MEMBER)
    return members


def desired_channel_members(
    records: Iterable[DesiredRecord],
) -> dict[str, dict[str, CanonicalRole]]:
    """channel → {user → role}; a repeated (channel, user) row overwrites the role."""
    lookup: dict[str, dict[str, CanonicalRole]] = {}
    for rec in records:
        role = normalize_role(rec.role, user=rec.user, channel=rec.channel)
        lookup.setdefault(rec.channel, {})[rec.user] = role
    return lookup


# ── diff ──────────────────────────────────────────────────────────────────────


def compute_membership_diff(
    current: dict[str, CanonicalRole],
    desired: dict[str, CanonicalRole],
) -> MembershipDiff:
    """
    Compute what has to change to turn ``current`` into ``desired``.

    Owners are never scheduled for removal.  Additions keep the desired
    insertion order, removals keep the order of the live listing.
    """
    to_remove = [
        user
        for user, role in current.items()
        if role is CanonicalRole.MEMBER and user not in desired
    ]
    to_add = [(user, role) for user, role in desired.items() if user not in current]
    return MembershipDiff(to_add=to_add, to_remove=to_remove)
