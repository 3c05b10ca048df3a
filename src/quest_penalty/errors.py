from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    POLICY_INPUT = "policy_input"
    PERSISTENCE = "persistence"
    CONCURRENT_RUN_REJECTED = "concurrent_run_rejected"


class PenaltyError(Exception):
    kind: ErrorKind = ErrorKind.PERSISTENCE


class PolicyInputError(PenaltyError, ValueError):
    """Raised for quest snapshot fields that cannot be interpreted (dates, weekdays)."""

    kind = ErrorKind.POLICY_INPUT


class PersistenceError(PenaltyError):
    kind = ErrorKind.PERSISTENCE

    def __init__(self, message: str, quest_id: str | None = None) -> None:
        super().__init__(message)
        self.quest_id = quest_id
