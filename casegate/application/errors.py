from __future__ import annotations


class ClinicalDataCorruptionError(RuntimeError):
    """A stored document payload is not a JSON object.

    Raised instead of returning a validation outcome: the user cannot fix it,
    and the unit of work must roll back.
    """

    def __init__(self, entity_type: str, entity_id: object, detail: str = "") -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        message = f"Corrupt stored data for {entity_type} {entity_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RejectedOperation(Exception):
    """Aborts a unit of work that already staged changes; carries the outcome to report."""

    def __init__(self, outcome) -> None:
        self.outcome = outcome
        super().__init__(outcome.reason or str(outcome.kind))
