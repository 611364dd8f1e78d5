"""Exception taxonomy for the encounter engine and its stores."""

from __future__ import annotations


class EncounterError(Exception):
    """Base class for encounter engine failures."""


class InvalidTransition(EncounterError):
    """Raised when a lifecycle or turn operation is illegal in the current status."""

    def __init__(self, operation: str, status: str, reason: str | None = None) -> None:
        self.operation = operation
        self.status = status
        self.reason = reason
        message = f"Cannot {operation} while encounter is {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidValue(EncounterError, ValueError):
    """Raised for contract violations such as negative damage or unknown fields."""


class ConcurrentModification(EncounterError):
    """Raised when a snapshot was written by another caller since it was loaded."""

    def __init__(self, encounter_id: str, expected_version: int) -> None:
        self.encounter_id = encounter_id
        self.expected_version = expected_version
        super().__init__(f"Encounter {encounter_id} changed since version {expected_version}")
