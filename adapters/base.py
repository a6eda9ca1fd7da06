"""
adapters/base.py
────────────────
Abstract interface every directory adapter must implement.

To add a new directory service:
  1. Create adapters/myservice.py
  2. Subclass BaseAdapter
  3. Implement the abstract methods
  4. Register it in main.py

Failed calls raise models.RemoteError; an unreachable service raises
models.RemoteUnavailable.  Mutating calls return nothing on success.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from models import (
    CanonicalRole,
    ChannelDescriptor,
    ChannelMembership,
    MembershipType,
    Team,
    TeamMembership,
)


class BaseAdapter(ABC):
    """
    A directory adapter translates the reconciler's requests into one
    service's API calls.  It may cache remote IDs (channel IDs, membership
    IDs) between calls, but holds no desired state.
    """

    # Human-readable name shown in the CLI
    platform_name: str = "Unknown Directory"

    # Key used to look up this adapter's section in config.json
    config_key: str = ""

    # ── teams ─────────────────────────────────────────────────────────────

    @abstractmethod
    def get_team(self, name: str) -> Team | None:
        """Look a team up by display name.  Returns None if there is none."""

    @abstractmethod
    def list_team_members(self, group_id: str) -> list[TeamMembership]:
        ...

    @abstractmethod
    def add_team_member(self, group_id: str, user: str, role: CanonicalRole) -> None:
        ...

    @abstractmethod
    def remove_team_member(self, group_id: str, user: str) -> None:
        ...

    # ── channels ──────────────────────────────────────────────────────────

    @abstractmethod
    def list_channels(
        self, group_id: str, membership_type: MembershipType | None = None
    ) -> list[ChannelDescriptor]:
        """
        List the team's channels, optionally only those of one membership
        type.  This is the authoritative listing used to detect channels
        that already exist.
        """

    @abstractmethod
    def create_channel(
        self, group_id: str, name: str, membership_type: MembershipType
    ) -> ChannelDescriptor:
        """
        Create a channel.  A name clash must surface as a RemoteError of
        kind NAME_COLLISION so the caller can re-check the listing.
        """

    @abstractmethod
    def list_channel_members(
        self, group_id: str, channel_name: str
    ) -> list[ChannelMembership]:
        ...

    @abstractmethod
    def add_channel_member(self, group_id: str, channel_name: str, user: str) -> None:
        """Add a user to a private channel as a plain member."""

    @abstractmethod
    def remove_channel_member(
        self, group_id: str, channel_name: str, user: str
    ) -> None:
        ...

    # ── credentials ───────────────────────────────────────────────────────

    def load_config(self, cfg: dict) -> None:
        """
        Pre-populate credentials from a config dict (e.g. parsed config.json).
        Override in subclasses. prompt_credentials() should only ask for
        fields that are still empty after this call.
        """

    def prompt_credentials(self) -> None:
        """
        Interactively prompt for whatever credentials are still missing and
        authenticate.  Default: nothing to ask.
        """
