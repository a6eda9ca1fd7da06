"""
adapters/graph.py
─────────────────
Adapter for Microsoft Teams via Microsoft Graph.

Model mapping:
  Team            → Microsoft 365 group with a team   (/teams/{group-id})
  Channel         → channel, membershipType standard | private
  Team member     → aadUserConversationMember on the team
  Channel member  → aadUserConversationMember on a private channel

API:   https://graph.microsoft.com/v1.0
Auth:  OAuth2 client credentials (app registration with
       TeamMember.ReadWrite.All, Channel.Create, ChannelMember.ReadWrite.All,
       Group.Read.All, User.Read.All)

Users are identified by user principal name, lower-cased. Members are
resolved from their userId; e-mail is the fallback for unreadable users.
"""

from __future__ import annotations
import getpass
import sys
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import requests
from loguru import logger

from models import (
    CanonicalRole,
    ChannelDescriptor,
    ChannelMembership,
    ErrorKind,
    MembershipType,
    RemoteError,
    RemoteUnavailable,
    Team,
    TeamMembership,
)
from adapters.base import BaseAdapter
from planning import normalize_identity

GRAPH_API = "https://graph.microsoft.com/v1.0"
LOGIN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

_MAX_TRIES = 5
_DEFAULT_RETRY_AFTER = 5.0
_MEMBER_TYPE = "#microsoft.graph.aadUserConversationMember"

# Graph error codes that mean "a channel with this name already exists"
_COLLISION_CODES = {"NameAlreadyExists", "Conflict", "ConflictingObjectName"}


def _role_of(member: dict) -> CanonicalRole:
    roles = [r.lower() for r in member.get("roles") or []]
    return CanonicalRole.OWNER if "owner" in roles else CanonicalRole.MEMBER


def _retry_after(headers) -> float:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    value = headers.get("Retry-After")
    if value is None:
        return _DEFAULT_RETRY_AFTER
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return _DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


def _classify(status: int, body: dict, text: str) -> ErrorKind:
    error = body.get("error") or {}
    code = error.get("code", "") if isinstance(error, dict) else ""
    message = error.get("message", "") if isinstance(error, dict) else ""

    if code in _COLLISION_CODES or status == 409:
        return ErrorKind.NAME_COLLISION
    # Channel creation reports clashes as a generic 400 on some tenants;
    # the message text is the only signal there.
    if "already exist" in (message or text).lower():
        return ErrorKind.NAME_COLLISION
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status in (401, 403):
        return ErrorKind.AUTH
    if status in (429, 503):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.REJECTED


class GraphAdapter(BaseAdapter):
    platform_name = "Microsoft Teams (Graph)"
    config_key = "graph"

    def __init__(self):
        self.tenant_id: str = ""
        self.client_id: str = ""
        self.client_secret: str = ""
        # Owner added to private channels created by the app (required by Graph
        # when creating private channels with application permissions).
        self.channel_owner: str = ""
        self._token: str = ""
        # Caches filled from the most recent listings
        self._channel_ids: dict[tuple[str, str], str] = {}  # (group, name) → id
        self._team_member_ids: dict[tuple[str, str], str] = {}  # (group, user) → id
        self._channel_member_ids: dict[tuple[str, str], str] = {}  # (channel id, user) → id
        self._upn_by_user_id: dict[str, str] = {}

    # ── credentials ──────────────────────────────────────────────────────

    def load_config(self, cfg: dict) -> None:
        self.tenant_id = cfg.get("tenant_id", "")
        self.client_id = cfg.get("client_id", "")
        self.client_secret = cfg.get("client_secret", "")
        self.channel_owner = normalize_identity(cfg.get("channel_owner", ""))

    def prompt_credentials(self):
        if not self.tenant_id or not self.client_id or not self.client_secret:
            print("\n  You need an Entra ID app registration with Graph application permissions.")
            print("  Azure portal → App registrations → Certificates & secrets")
        if not self.tenant_id:
            self.tenant_id = input("  Tenant ID: ").strip()
        if not self.client_id:
            self.client_id = input("  Client (application) ID: ").strip()
        if not self.client_secret:
            self.client_secret = getpass.getpass("  Client secret: ").strip()
        if not (self.tenant_id and self.client_id and self.client_secret):
            print("  Tenant ID, client ID and secret are all required.")
            sys.exit(1)
        if not self.channel_owner:
            self.channel_owner = normalize_identity(
                input("  Owner for new private channels (UPN, optional): ")
            )

        try:
            self.authenticate()
        except RemoteError as e:
            print(f"  ✘  Could not obtain a Graph token: {e.message}")
            sys.exit(1)
        print(f"  ✔  Authenticated to tenant {self.tenant_id}")

    def authenticate(self) -> None:
        try:
            r = requests.post(
                LOGIN_URL.format(tenant=self.tenant_id),
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
                timeout=10,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteUnavailable(f"token endpoint unreachable: {e}") from e
        if not r.ok:
            raise RemoteError(ErrorKind.AUTH, f"token request {r.status_code}: {r.text[:200]}", r.status_code)
        self._token = r.json()["access_token"]

    # ── internal HTTP helpers ─────────────────────────────────────────────

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = path if path.startswith("http") else f"{GRAPH_API}{path}"
        reauthenticated = False
        r = None

        for _ in range(_MAX_TRIES):
            logger.debug("Graph {} {}", method, url)
            try:
                r = requests.request(
                    method, url, json=payload, headers=self._headers(), timeout=30
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                raise RemoteUnavailable(f"Graph unreachable on {method} {path}: {e}") from e

            if r.status_code in (429, 503):
                wait = _retry_after(r.headers)
                print(f"    ⏳ Graph throttling – waiting {wait:.1f}s …")
                time.sleep(wait + 0.1)
                continue
            if r.status_code == 401 and not reauthenticated:
                # Client-credentials tokens expire after about an hour.
                reauthenticated = True
                self.authenticate()
                continue
            if not r.ok:
                body = _json_or_empty(r)
                raise RemoteError(
                    _classify(r.status_code, body, r.text),
                    f"Graph {r.status_code} on {method} {path}: {r.text[:200]}",
                    r.status_code,
                )
            return _json_or_empty(r)

        raise RemoteError(
            ErrorKind.RATE_LIMITED,
            f"Graph still throttling {method} {path} after {_MAX_TRIES} tries",
            r.status_code if r is not None else None,
        )

    def _get_all(self, path: str) -> list[dict]:
        """GET a collection, following @odata.nextLink pages."""
        items: list[dict] = []
        url: str | None = path
        while url:
            page = self._request("GET", url)
            items.extend(page.get("value", []))
            url = page.get("@odata.nextLink")
        return items

    @staticmethod
    def _member_payload(user: str, roles: list[str]) -> dict:
        return {
            "@odata.type": _MEMBER_TYPE,
            "roles": roles,
            "user@odata.bind": f"{GRAPH_API}/users('{user}')",
        }

    def _identity(self, member: dict) -> str:
        """
        The member's user principal name, lower-cased.

        Membership listings only carry ``email`` and ``userId``; mail can be
        empty or differ from the UPN, so the UPN is looked up by user ID and
        cached.  E-mail is used only when the user object cannot be read.
        """
        user_id = member.get("userId")
        if not user_id:
            return normalize_identity(member.get("email") or "")

        if user_id not in self._upn_by_user_id:
            try:
                user = self._request("GET", f"/users/{user_id}?$select=userPrincipalName")
                upn = user.get("userPrincipalName") or ""
            except RemoteError as e:
                if e.kind is not ErrorKind.NOT_FOUND:
                    raise
                upn = ""
            self._upn_by_user_id[user_id] = normalize_identity(
                upn or member.get("email") or user_id
            )
        return self._upn_by_user_id[user_id]

    def _channel_id(self, group_id: str, channel_name: str) -> str:
        key = (group_id, channel_name)
        if key not in self._channel_ids:
            self.list_channels(group_id)
        if key not in self._channel_ids:
            raise RemoteError(ErrorKind.NOT_FOUND, f"channel {channel_name!r} not found")
        return self._channel_ids[key]

    # ── BaseAdapter interface ─────────────────────────────────────────────

    def get_team(self, name: str) -> Team | None:
        safe = name.replace("'", "''")
        groups = self._get_all(
            "/groups?$filter=resourceProvisioningOptions/Any(x:x eq 'Team')"
            f" and displayName eq '{safe}'&$select=id,displayName"
        )
        if not groups:
            return None
        if len(groups) > 1:
            logger.warning("{} teams are named {!r}; using the first", len(groups), name)
        return Team(group_id=groups[0]["id"], display_name=groups[0]["displayName"])

    def list_channels(
        self, group_id: str, membership_type: MembershipType | None = None
    ) -> list[ChannelDescriptor]:
        path = f"/teams/{group_id}/channels"
        if membership_type is not None:
            path += f"?$filter=membershipType eq '{membership_type.value}'"

        channels = []
        for raw in self._get_all(path):
            mtype = (
                MembershipType.PRIVATE
                if raw.get("membershipType") == "private"
                else MembershipType.STANDARD
            )
            self._channel_ids[(group_id, raw["displayName"])] = raw["id"]
            channels.append(ChannelDescriptor(raw["displayName"], mtype, raw["id"]))
        return channels

    def create_channel(
        self, group_id: str, name: str, membership_type: MembershipType
    ) -> ChannelDescriptor:
        payload: dict = {
            "@odata.type": "#Microsoft.Graph.channel",
            "displayName": name,
            "membershipType": membership_type.value,
        }
        if membership_type is MembershipType.PRIVATE and self.channel_owner:
            payload["members"] = [self._member_payload(self.channel_owner, ["owner"])]

        result = self._request("POST", f"/teams/{group_id}/channels", payload)
        channel_id = result.get("id")
        if channel_id:
            self._channel_ids[(group_id, name)] = channel_id
        return ChannelDescriptor(name, membership_type, channel_id)

    def list_team_members(self, group_id: str) -> list[TeamMembership]:
        members = []
        for raw in self._get_all(f"/teams/{group_id}/members"):
            user = self._identity(raw)
            if not user:
                continue
            self._team_member_ids[(group_id, user)] = raw["id"]
            members.append(TeamMembership(user, _role_of(raw)))
        return members

    def add_team_member(self, group_id: str, user: str, role: CanonicalRole) -> None:
        roles = ["owner"] if role is CanonicalRole.OWNER else []
        self._request("POST", f"/teams/{group_id}/members", self._member_payload(user, roles))

    def remove_team_member(self, group_id: str, user: str) -> None:
        key = (group_id, user)
        if key not in self._team_member_ids:
            self.list_team_members(group_id)
        membership_id = self._team_member_ids.get(key)
        if membership_id is None:
            raise RemoteError(ErrorKind.NOT_FOUND, f"{user} is not a team member")
        self._request("DELETE", f"/teams/{group_id}/members/{membership_id}")
        del self._team_member_ids[key]

    def list_channel_members(
        self, group_id: str, channel_name: str
    ) -> list[ChannelMembership]:
        channel_id = self._channel_id(group_id, channel_name)
        members = []
        for raw in self._get_all(f"/teams/{group_id}/channels/{channel_id}/members"):
            user = self._identity(raw)
            if not user:
                continue
            self._channel_member_ids[(channel_id, user)] = raw["id"]
            members.append(ChannelMembership(channel_name, user, _role_of(raw)))
        return members

    def add_channel_member(self, group_id: str, channel_name: str, user: str) -> None:
        channel_id = self._channel_id(group_id, channel_name)
        self._request(
            "POST",
            f"/teams/{group_id}/channels/{channel_id}/members",
            self._member_payload(user, []),
        )

    def remove_channel_member(
        self, group_id: str, channel_name: str, user: str
    ) -> None:
        channel_id = self._channel_id(group_id, channel_name)
        key = (channel_id, user)
        if key not in self._channel_member_ids:
            self.list_channel_members(group_id, channel_name)
        membership_id = self._channel_member_ids.get(key)
        if membership_id is None:
            raise RemoteError(ErrorKind.NOT_FOUND, f"{user} is not in #{channel_name}")
        self._request(
            "DELETE", f"/teams/{group_id}/channels/{channel_id}/members/{membership_id}"
        )
        del self._channel_member_ids[key]


def _json_or_empty(r) -> dict:
    if not r.content:
        return {}
    try:
        return r.json()
    except ValueError:
        return {}
