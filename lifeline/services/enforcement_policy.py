"""Three-strike policy: a pure mapping from violation count to an action tier."""

import enum

from lifeline.core.exceptions import InvalidInputError


class EnforcementDecision(str, enum.Enum):
    NONE = "none"
    WARN = "warn"
    ENFORCE = "enforce"


class EnforcementState(str, enum.Enum):
    OK = "ok"
    WARNED = "warned"
    ENFORCED = "enforced"


def _check(count: int, limit: int) -> None:
    if count < 0:
        raise InvalidInputError("violation count cannot be negative")
    if limit < 1:
        raise InvalidInputError("enforcement limit must be at least 1")


def evaluate(count: int, limit: int) -> EnforcementDecision:
    """ENFORCE iff count >= limit, WARN iff count == limit - 1, else NONE."""
    _check(count, limit)
    if count >= limit:
        return EnforcementDecision.ENFORCE
    if count == limit - 1:
        return EnforcementDecision.WARN
    return EnforcementDecision.NONE


def enforcement_state(count: int, limit: int) -> EnforcementState:
    return {
        EnforcementDecision.NONE: EnforcementState.OK,
        EnforcementDecision.WARN: EnforcementState.WARNED,
        EnforcementDecision.ENFORCE: EnforcementState.ENFORCED,
    }[evaluate(count, limit)]
