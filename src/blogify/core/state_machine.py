from __future__ import annotations

from typing import Dict, List

IDLE = "idle"
AWAITING_USER_PERSIST = "awaiting_user_persist"
STREAMING = "streaming"
FINALIZING = "finalizing"
ERRORED = "errored"

# Turn lifecycle of the generation orchestrator
GENERATION_TRANSITIONS: Dict[str, List[str]] = {
    IDLE: [AWAITING_USER_PERSIST],
    AWAITING_USER_PERSIST: [STREAMING, ERRORED],
    STREAMING: [FINALIZING, ERRORED, IDLE],
    FINALIZING: [IDLE, ERRORED],
    ERRORED: [IDLE],
}


def is_valid_transition(current: str, target: str) -> bool:
    return target in GENERATION_TRANSITIONS.get(current, [])


def is_busy(current: str) -> bool:
    return current not in (IDLE, ERRORED)
