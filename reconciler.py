"""
reconciler.py
─────────────
The reconciliation engine.

Takes the desired records and any BaseAdapter implementation, then drives
the run:
  1. Ensure every channel named in the sheet exists
  2. Bring team membership in line with the sheet
  3. Bring each private channel's membership in line with the sheet
  4. Print a report

Removals always run before additions.  Per-item failures are collected in
the report; nothing already applied is rolled back.
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger

import console
from adapters.base import BaseAdapter
from batching import apply_batched
from channels import ensure_channel
from console import BOLD, CYAN, DIM, GREEN, RED, RESET, YELLOW
from models import (
    BatchOutcome,
    CanonicalRole,
    ChannelOutcome,
    DesiredRecord,
    Failure,
    MembershipDiff,
    MembershipType,
    RemoteError,
    RunMode,
    Team,
    ValidationError,
)
from pacing import PacingPolicy
from planning import (
    batch_size_for,
    compute_membership_diff,
    desired_channel_members,
    desired_channel_names,
    desired_team_members,
)


# ── Run report ────────────────────────────────────────────────────────────────


@dataclass
class RunReport:
    team: str
    mode: RunMode
    dry_run: bool = False
    batch_size: int = 0

    channels_created: list[str] = field(default_factory=list)
    channels_skipped: list[str] = field(default_factory=list)
    channels_unsynced: list[str] = field(default_factory=list)

    members_added: int = 0
    members_removed: int = 0

    failures: list[Failure] = field(default_factory=list)
    elapsed: float = 0.0

    def absorb(self, outcome: BatchOutcome, *, removal: bool) -> None:
        if removal:
            self.members_removed += outcome.succeeded
        else:
            self.members_added += outcome.succeeded
        self.failures.extend(outcome.failures)

    def print(self):
        console.head("═══════════════════ Reconciliation Report ═══════════════════")

        print(f"\n  Team        : {BOLD}{self.team}{RESET}")
        print(f"  Mode        : {self.mode.value}" + ("  (dry run)" if self.dry_run else ""))
        print(f"  Batch size  : {self.batch_size}")
        print(f"  Elapsed     : {self.elapsed:.1f}s\n")

        verb = "would be " if self.dry_run else ""
        print(
            f"  {'Channels':<12}"
            f"  {GREEN}{len(self.channels_created)} {verb}created{RESET}"
            f"   {DIM}{len(self.channels_skipped)} already present{RESET}"
        )
        for name in self.channels_unsynced:
            print(f"             {YELLOW}↳ not synced: {name}{RESET}")
        print(
            f"  {'Members':<12}"
            f"  {GREEN}{self.members_added} {verb}added{RESET}"
            f"   {CYAN}{self.members_removed} {verb}removed{RESET}"
        )

        if self.failures:
            print(f"\n  {RED}{len(self.failures)} failed operation(s):{RESET}")
            for f in self.failures:
                print(f"    {DIM}↳ {f.operation}: {f.entity} – {f.reason}{RESET}")
            print(f"\n  {CYAN}Re-run to retry:{RESET} the next run diffs against the live state.")
        else:
            print(f"\n  {GREEN}No failures.{RESET}")
        print()


# ── Reconciler ────────────────────────────────────────────────────────────────


class Reconciler:
    def __init__(
        self,
        client: BaseAdapter,
        pacing: PacingPolicy | None = None,
        *,
        membership_type: MembershipType = MembershipType.PRIVATE,
        dry_run: bool = False,
    ):
        self.client = client
        self.pacing = pacing or PacingPolicy()
        self.membership_type = membership_type
        self.dry_run = dry_run

    def run(
        self, team: Team, records: list[DesiredRecord], mode: RunMode = RunMode.FULL
    ) -> RunReport:
        if not records:
            raise ValidationError("empty", "no desired records to reconcile")

        started = time.monotonic()
        report = RunReport(
            team=team.display_name,
            mode=mode,
            dry_run=self.dry_run,
            batch_size=batch_size_for(len(records)),
        )

        print(f"\n🔄  Reconciling {BOLD}{team.display_name}{RESET} via {self.client.platform_name} …")
        print(f"    Source: {len(records)} rows, batch size {report.batch_size}\n")

        stages = 3 if mode is RunMode.FULL else 1

        console.head(f"[1/{stages}] Ensuring channels …")
        self._ensure_channels(team.group_id, records, report)

        if mode is RunMode.FULL:
            console.head(f"[2/{stages}] Reconciling team members …")
            self._reconcile_team(team.group_id, records, report)

            console.head(f"[3/{stages}] Reconciling channel members …")
            self._reconcile_channels(team.group_id, records, report)

        report.elapsed = time.monotonic() - started
        logger.info(
            "Run finished: {} channels created, {} added, {} removed, {} failures in {:.1f}s",
            len(report.channels_created),
            report.members_added,
            report.members_removed,
            len(report.failures),
            report.elapsed,
        )
        return report

    # ── stage 1 ───────────────────────────────────────────────────────────

    def _ensure_channels(
        self, group_id: str, records: list[DesiredRecord], report: RunReport
    ) -> None:
        listing = self._read(
            report, "channels", "list channels",
            lambda: self.client.list_channels(group_id),
        )
        if listing is None:
            return
        existing = {ch.name for ch in listing}

        for name in desired_channel_names(records):
            if name in existing:
                report.channels_skipped.append(name)
                continue

            if self.dry_run:
                console.ok(f"Would create #{name}")
                report.channels_created.append(name)
                continue

            result = ensure_channel(
                self.client, group_id, name, self.membership_type, self.pacing
            )
            if result.outcome is ChannelOutcome.CREATED:
                console.ok(f"Created #{name}")
                report.channels_created.append(name)
            elif result.outcome is ChannelOutcome.ALREADY_EXISTED:
                console.note(f"#{name} already existed")
                report.channels_skipped.append(name)
            else:
                console.fail(f"#{name}: {result.reason}")
                report.failures.append(Failure(name, "create channel", result.reason))

        if not report.channels_created:
            console.note(f"No channels created; {len(report.channels_skipped)} already present.")
        elif not self.dry_run:
            # New channels take a while to show up in listings.
            console.note(
                f"Waiting {self.pacing.propagation_delay:.0f}s for new channels to propagate …"
            )
            self.pacing.pause(self.pacing.propagation_delay)

    # ── stage 2 ───────────────────────────────────────────────────────────

    def _reconcile_team(
        self, group_id: str, records: list[DesiredRecord], report: RunReport
    ) -> None:
        listing = self._read(
            report, "team", "list team members",
            lambda: self.client.list_team_members(group_id),
        )
        if listing is None:
            return
        current = {m.user: m.role for m in listing}
        diff = compute_membership_diff(current, desired_team_members(records))

        self._apply(
            diff,
            report,
            remove=lambda user: self.client.remove_team_member(group_id, user),
            add=lambda item: self.client.add_team_member(group_id, item[0], item[1]),
            scope="team",
        )

    # ── stage 3 ───────────────────────────────────────────────────────────

    def _reconcile_channels(
        self, group_id: str, records: list[DesiredRecord], report: RunReport
    ) -> None:
        desired = desired_channel_members(records)
        listing = self._read(
            report, "channels", "list private channels",
            lambda: self.client.list_channels(group_id, MembershipType.PRIVATE),
        )
        if listing is None:
            report.channels_unsynced.extend(desired)
            return
        private = {ch.name for ch in listing}

        for name, members in desired.items():
            if name not in private:
                logger.warning(
                    "Channel {} is not a visible private channel – skipping its members",
                    name,
                )
                console.warn(f"Skipped #{name}: not a private channel (or not visible yet)")
                report.channels_unsynced.append(name)
                continue

            listing = self._read(
                report, name, f"list #{name} members",
                lambda ch=name: self.client.list_channel_members(group_id, ch),
            )
            if listing is None:
                report.channels_unsynced.append(name)
                continue
            current = {m.user: m.role for m in listing}
            diff = compute_membership_diff(current, members)
            self._apply(
                diff,
                report,
                remove=lambda user, ch=name: self.client.remove_channel_member(
                    group_id, ch, user
                ),
                # the channel add call takes no role
                add=lambda item, ch=name: self.client.add_channel_member(
                    group_id, ch, item[0]
                ),
                scope=f"#{name}",
            )

    # ── shared ────────────────────────────────────────────────────────────

    def _read(
        self, report: RunReport, entity: str, operation: str, call: Callable[[], list]
    ) -> list | None:
        """Run a listing call; a rejection is recorded and yields None."""
        try:
            return call()
        except RemoteError as e:
            logger.warning("{} failed for {}: {}", operation, entity, e.message)
            console.fail(f"{operation}: {e.message}")
            report.failures.append(Failure(entity, operation, e.message))
            return None

    def _apply(
        self,
        diff: MembershipDiff,
        report: RunReport,
        *,
        remove: Callable[[str], None],
        add: Callable[[tuple[str, CanonicalRole]], None],
        scope: str,
    ) -> None:
        if diff.empty:
            console.note(f"{scope}: already in sync")
            return

        if self.dry_run:
            for user in diff.to_remove:
                logger.info("[dry run] {}: would remove {}", scope, user)
            for user, _role in diff.to_add:
                logger.info("[dry run] {}: would add {}", scope, user)
            report.members_removed += len(diff.to_remove)
            report.members_added += len(diff.to_add)
            console.ok(f"{scope}: {len(diff.to_add)} to add, {len(diff.to_remove)} to remove")
            return

        removed = apply_batched(
            diff.to_remove,
            report.batch_size,
            remove,
            self.pacing,
            action=f"remove {scope} member",
        )
        report.absorb(removed, removal=True)

        added = apply_batched(
            diff.to_add,
            report.batch_size,
            add,
            self.pacing,
            action=f"add {scope} member",
            describe=lambda item: item[0],
        )
        report.absorb(added, removal=False)

        label = f"{scope}: +{added.succeeded} −{removed.succeeded}"
        failed = removed.failed + added.failed
        if failed:
            console.warn(f"{label}  ({failed} failed)")
        else:
            console.ok(label)
