"""
channels.py
───────────
Make sure a named channel exists, tolerating "already exists" races.

Channel creation is eventually consistent: a channel created moments ago
(by us, or by an earlier interrupted run) may be missing from the listing
yet still make a second create fail with a name clash.  On such transient
errors we cool down, re-read the listing and only retry the create if the
channel is still not visible.
"""

from __future__ import annotations

from loguru import logger

from adapters.base import BaseAdapter
from models import (
    ChannelOutcome,
    ChannelResult,
    MembershipType,
    RemoteError,
)
from pacing import PacingPolicy


def _listed(client: BaseAdapter, group_id: str, name: str) -> bool:
    return any(ch.name == name for ch in client.list_channels(group_id))


def ensure_channel(
    client: BaseAdapter,
    group_id: str,
    name: str,
    membership_type: MembershipType,
    pacing: PacingPolicy,
) -> ChannelResult:
    last_error = ""
    for attempt in range(1, pacing.create_attempts + 1):
        try:
            client.create_channel(group_id, name, membership_type)
        except RemoteError as e:
            if not e.transient:
                logger.warning("Creating channel {} failed: {}", name, e.message)
                return ChannelResult(
                    name, ChannelOutcome.FAILED, reason=e.message, attempts=attempt
                )

            last_error = e.message
            logger.info(
                "Channel {} create attempt {}/{} hit {} – re-checking listing",
                name,
                attempt,
                pacing.create_attempts,
                e.kind.value,
            )
            pacing.pause(pacing.collision_cooldown)
            try:
                visible = _listed(client, group_id, name)
            except RemoteError as list_error:
                # counts as a spent attempt
                last_error = list_error.message
                logger.info("Re-listing after {} failed: {}", name, list_error.message)
                continue
            if visible:
                return ChannelResult(
                    name, ChannelOutcome.ALREADY_EXISTED, attempts=attempt
                )
            continue

        logger.debug("Channel {} created on attempt {}", name, attempt)
        return ChannelResult(name, ChannelOutcome.CREATED, attempts=attempt)

    reason = f"gave up after {pacing.create_attempts} attempts: {last_error}"
    logger.warning("Creating channel {} failed: {}", name, reason)
    return ChannelResult(
        name, ChannelOutcome.FAILED, reason=reason, attempts=pacing.create_attempts
    )
