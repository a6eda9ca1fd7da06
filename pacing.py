"""
pacing.py
─────────
Delays and retry limits used while talking to the directory service.

The service throttles aggressively, so every mutation is followed by a
short pause and every batch by a longer one.  Tests build a policy with
zero delays and a recording ``sleep``.
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field, fields
from typing import Callable


@dataclass
class PacingPolicy:
    item_delay: float = 0.5  # after each add / remove call
    batch_delay: float = 5.0  # after each batch
    propagation_delay: float = 30.0  # after creating channels
    collision_cooldown: float = 10.0  # before re-listing on "already exists"
    create_attempts: int = 3
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, cfg: dict | None) -> "PacingPolicy":
        """Build a policy from the ``pacing`` section of config.json."""
        cfg = cfg or {}
        known = {f.name for f in fields(cls) if f.name != "sleep"}
        values = {k: v for k, v in cfg.items() if k in known}
        if "create_attempts" in values:
            values["create_attempts"] = int(values["create_attempts"])
        for key in known - {"create_attempts"}:
            if key in values:
                values[key] = float(values[key])
        policy = cls(**values)
        if policy.create_attempts < 1:
            raise ValueError("create_attempts must be at least 1")
        return policy

    @classmethod
    def instant(cls, sleep: Callable[[float], None] | None = None) -> "PacingPolicy":
        return cls(
            item_delay=0,
            batch_delay=0,
            propagation_delay=0,
            collision_cooldown=0,
            sleep=sleep or (lambda _s: None),
        )

    def pause(self, seconds: float) -> None:
        if seconds > 0:
            self.sleep(seconds)
