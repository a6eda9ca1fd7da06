"""Shared fixtures: an in-memory directory and a loguru capture sink."""

from __future__ import annotations

import pytest
from loguru import logger

from adapters.base import BaseAdapter
from models import (
    CanonicalRole,
    ChannelDescriptor,
    ChannelMembership,
    DesiredRecord,
    ErrorKind,
    MembershipType,
    RemoteError,
    Team,
    TeamMembership,
)
from pacing import PacingPolicy

GROUP = "group-1"


class FakeDirectory(BaseAdapter):
    """Directory double that keeps team state in dicts and logs every call."""

    platform_name = "Fake"

    def __init__(self):
        self.channels: dict[str, MembershipType] = {}
        self.team: dict[str, CanonicalRole] = {}
        self.channel_members: dict[str, dict[str, CanonicalRole]] = {}
        self.calls: list[tuple] = []
        # name → errors raised by successive create_channel calls
        self.create_errors: dict[str, list[RemoteError]] = {}
        # channels that become visible when a create on them fails
        self.reveal_on_error: set[str] = set()
        # (operation, user) pairs that are rejected
        self.reject: set[tuple[str, str]] = set()
        # listing name → errors raised by successive calls; listing names are
        # "channels", "private channels", "team", or a channel name for members
        self.list_errors: dict[str, list[RemoteError]] = {}

    def add_channel(self, name, mtype=MembershipType.PRIVATE, members=None):
        self.channels[name] = mtype
        self.channel_members[name] = dict(members or {})

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if not c[0].startswith(("list", "get"))]

    def _listing(self, key: str) -> None:
        queued = self.list_errors.get(key)
        if queued:
            error = queued.pop(0)
            if error is not None:  # None lets that call through
                raise error

    def _check(self, op: str, user: str) -> None:
        if (op, user) in self.reject:
            raise RemoteError(ErrorKind.REJECTED, f"{op} rejected for {user}", 400)

    def get_team(self, name):
        self.calls.append(("get_team", name))
        return Team(GROUP, name)

    def list_channels(self, group_id, membership_type=None):
        self.calls.append(("list_channels", membership_type))
        self._listing("channels" if membership_type is None else "private channels")
        return [
            ChannelDescriptor(name, mtype)
            for name, mtype in self.channels.items()
            if membership_type is None or mtype is membership_type
        ]

    def create_channel(self, group_id, name, membership_type):
        self.calls.append(("create_channel", name))
        queued = self.create_errors.get(name)
        if queued:
            error = queued.pop(0)
            if name in self.reveal_on_error:
                self.add_channel(name, membership_type)
            raise error
        if name in self.channels:
            raise RemoteError(ErrorKind.NAME_COLLISION, f"{name} already exists", 409)
        self.add_channel(name, membership_type)
        return ChannelDescriptor(name, membership_type)

    def list_team_members(self, group_id):
        self.calls.append(("list_team_members",))
        self._listing("team")
        return [TeamMembership(u, r) for u, r in self.team.items()]

    def add_team_member(self, group_id, user, role):
        self.calls.append(("add_team_member", user, role))
        self._check("add_team_member", user)
        self.team[user] = role

    def remove_team_member(self, group_id, user):
        self.calls.append(("remove_team_member", user))
        self._check("remove_team_member", user)
        del self.team[user]

    def list_channel_members(self, group_id, channel_name):
        self.calls.append(("list_channel_members", channel_name))
        self._listing(channel_name)
        return [
            ChannelMembership(channel_name, u, r)
            for u, r in self.channel_members[channel_name].items()
        ]

    def add_channel_member(self, group_id, channel_name, user):
        self.calls.append(("add_channel_member", channel_name, user))
        self._check("add_channel_member", user)
        if user not in self.team:
            raise RemoteError(ErrorKind.REJECTED, f"{user} is not a team member", 400)
        self.channel_members[channel_name][user] = CanonicalRole.MEMBER

    def remove_channel_member(self, group_id, channel_name, user):
        self.calls.append(("remove_channel_member", channel_name, user))
        self._check("remove_channel_member", user)
        del self.channel_members[channel_name][user]


def records(*rows) -> list[DesiredRecord]:
    """records(("alice", "Member", "General"), ...)"""
    return [
        DesiredRecord(user=u, role=r, channel=c, row=i)
        for i, (u, r, c) in enumerate(rows, start=1)
    ]


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def pacing(sleeps):
    return PacingPolicy.instant(sleep=sleeps.append)


@pytest.fixture
def log_records():
    captured = []
    handler_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    yield captured
    logger.remove(handler_id)


def warnings_in(log_records) -> list[str]:
    return [r["message"] for r in log_records if r["level"].name == "WARNING"]
