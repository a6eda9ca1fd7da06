"""
main.py
───────
CLI entry point for the team roster reconciler.

To add a new directory service:
  1. Write your adapter in adapters/myservice.py
  2. Import it here
  3. Add it to ADAPTERS dict below
  The reconciler handles the rest automatically.
"""

from __future__ import annotations
import getpass
import json
import os
import sys

from loguru import logger

from console import BOLD, RED, RESET, YELLOW
from logsetup import setup_logging
from models import RemoteError, RemoteUnavailable, RunMode, ValidationError
from pacing import PacingPolicy
from reconciler import Reconciler
from sheet_reader import load_records

# ── Register adapters here ────────────────────────────────────────────────────
from adapters.graph import GraphAdapter

ADAPTERS = {
    "graph": GraphAdapter,
}

MODES = {
    "1": (RunMode.CHANNELS, False),
    "2": (RunMode.FULL, False),
    "3": (RunMode.FULL, True),
}

MODE_LABELS = {
    "1": "Create missing channels only",
    "2": "Full sync      (channels, team members, channel members)",
    "3": "Dry run        (show what a full sync would change)",
}


def banner():
    print(f"""
{BOLD}╔══════════════════════════════════════════════════╗
║   Team Roster Reconciler  v1.0                   ║
║   Sheet-driven · Idempotent · Rate-limit aware   ║
╚══════════════════════════════════════════════════╝{RESET}

Makes a team's channels and membership match a CSV sheet
with the columns {BOLD}User, Role, Channel{RESET}.

{YELLOW}What is changed:{RESET}
  ✔ Missing channels are created (private)
  ✔ Team members are added / removed
  ✔ Private-channel members are added / removed

{YELLOW}What is NOT changed:{RESET}
  ✘ Owners are never removed
  ✘ Channels are never deleted
  ✘ Owner roles are never granted inside channels
""")


def pick_mode() -> tuple[RunMode, bool]:
    print(f"{BOLD}What should this run do?{RESET}\n")
    for key, label in MODE_LABELS.items():
        print(f"  [{key}]  {label}")
    print()

    while True:
        choice = input("  Enter number: ").strip()
        if choice in MODES:
            return MODES[choice]
        print("  Please enter a valid number.")


def prompt(label: str, secret: bool = False) -> str:
    while True:
        val = (
            getpass.getpass(f"  {label}: ") if secret else input(f"  {label}: ")
        ).strip()
        if val:
            return val
        print("  (required)")


def load_config() -> dict:
    path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.json")
    if os.path.exists(path):
        with open(path) as f:
            return json.load(f)
    return {}


def main():
    banner()

    config = load_config()
    setup_logging(config.get("log_level", "INFO"), config.get("log_file"))
    pacing = PacingPolicy.from_config(config.get("pacing"))

    # ── What to do ────────────────────────────────────────────────────────
    mode, dry_run = pick_mode()
    sheet_path = config.get("sheet") or prompt("Path to CSV sheet")
    records = load_records(sheet_path)

    # ── Directory credentials ─────────────────────────────────────────────
    adapter = ADAPTERS[config.get("adapter", "graph")]()
    adapter.load_config(config.get(adapter.config_key, {}))
    print(f"\n{BOLD}{adapter.platform_name} credentials:{RESET}")
    adapter.prompt_credentials()

    # ── Locate the team ───────────────────────────────────────────────────
    team_name = config.get("team") or prompt("Team name")
    team = adapter.get_team(team_name)
    if team is None:
        raise ValidationError("team_not_found", team_name)
    print(f"  ✔  Team: {team.display_name}  ({team.group_id})")

    # ── Run ───────────────────────────────────────────────────────────────
    reconciler = Reconciler(adapter, pacing, dry_run=dry_run)
    report = reconciler.run(team, records, mode)
    report.print()


def cli():
    try:
        main()
    except ValidationError as e:
        logger.error("Input rejected: {}", e)
        print(f"\n  {RED}✘{RESET}  {e}")
        sys.exit(1)
    except RemoteUnavailable as e:
        logger.error("Directory service unreachable: {}", e)
        print(f"\n  {RED}✘{RESET}  Lost connection to the directory service: {e}")
        sys.exit(1)
    except RemoteError as e:
        logger.error("Directory service rejected the request: {}", e.message)
        print(f"\n  {RED}✘{RESET}  Directory service error ({e.kind.value}): {e.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\n  Reconciliation cancelled.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
