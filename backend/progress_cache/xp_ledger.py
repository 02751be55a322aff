"""Level derivation and XP gain application."""

from __future__ import annotations

from dataclasses import dataclass

from .models import User

XP_PER_LEVEL = 150


class InvalidGain(ValueError):
    """Raised for negative XP gains; the cache has no notion of losing XP."""


@dataclass(frozen=True)
class XpChange:
    source: str
    gain: int
    previous_xp: int
    new_xp: int
    previous_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level


def derive_level(xp: int) -> int:
    return xp // XP_PER_LEVEL + 1


def apply_gain(user: User, gain: int) -> User:
    """Return a copy of ``user`` with ``gain`` XP added.

    The stored level is kept when it is already above the level derived from
    the new total, so a level never regresses.
    """
    if gain < 0:
        raise InvalidGain(f"XP gain must be non-negative, got {gain}.")
    if gain == 0:
        return user.model_copy()
    new_xp = user.current_xp + gain
    return user.model_copy(
        update={
            "current_xp": new_xp,
            "level": max(user.level, derive_level(new_xp)),
        }
    )


def describe_gain(before: User, after: User, source: str) -> XpChange:
    return XpChange(
        source=source,
        gain=after.current_xp - before.current_xp,
        previous_xp=before.current_xp,
        new_xp=after.current_xp,
        previous_level=before.level,
        new_level=after.level,
    )


__all__ = ["InvalidGain", "XP_PER_LEVEL", "XpChange", "apply_gain", "derive_level", "describe_gain"]
