"""Error taxonomy for the itinerary core.

Only StructuralError and ParseError escape pipeline stages. Constraint
violations are values (see models.violations), and CollaboratorError is
always caught at the stage boundary and replaced by a fallback.
"""


class ItineraryCoreError(Exception):
    """Base class for all itinerary core errors."""


class StructuralError(ItineraryCoreError):
    """A referenced day, slot, or option does not exist, or a locked slot was mutated."""


class LockedSlotError(StructuralError):
    """Attempted to move or remove a locked slot."""

    def __init__(self, slot_id: str):
        super().__init__(f"Slot {slot_id} is locked and cannot be moved or removed")
        self.slot_id = slot_id


class ParseError(ItineraryCoreError):
    """Generation text could not be recovered into a structured result.

    Carries the diagnostic position reported by the underlying JSON parser so
    callers can log exactly where the model output broke.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: int | None = None,
        line: int | None = None,
        column: int | None = None,
        context: str = "",
    ):
        super().__init__(message)
        self.offset = offset
        self.line = line
        self.column = column
        self.context = context

    def __str__(self) -> str:
        base = super().__str__()
        if self.offset is None:
            return base
        return f"{base} (offset {self.offset}, line {self.line}, column {self.column}): {self.context!r}"


class CollaboratorError(ItineraryCoreError):
    """An external collaborator call failed."""


class CollaboratorTimeoutError(CollaboratorError):
    """Collaborator call exceeded its timeout."""


class CollaboratorCircuitOpenError(CollaboratorError):
    """Circuit breaker is open for this collaborator."""
