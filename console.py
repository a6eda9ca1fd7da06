"""
console.py
──────────
ANSI helpers for operator-facing progress output.
"""

from __future__ import annotations

# ── ANSI colours ──────────────────────────────────────────────────────────────
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
CYAN = "\033[96m"
BOLD = "\033[1m"
DIM = "\033[2m"
RESET = "\033[0m"


def ok(msg: str) -> None:
    print(f"  {GREEN}✔{RESET}  {msg}")


def warn(msg: str) -> None:
    print(f"  {YELLOW}⚠{RESET}  {msg}")


def fail(msg: str) -> None:
    print(f"  {RED}✘{RESET}  {msg}")


def head(msg: str) -> None:
    print(f"\n{BOLD}{msg}{RESET}")


def note(msg: str) -> None:
    print(f"  —  {msg}")
