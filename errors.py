class FitnessTrackerError(Exception):
    """Base class for failures raised by the storage layer."""


class StorageUnavailableError(FitnessTrackerError):
    """The backing store could not complete an operation."""


class ReferentialIntegrityError(FitnessTrackerError):
    """An operation would leave or create a dangling reference."""

    def __init__(self, entity: str, entity_id: int, detail: str) -> None:
        super().__init__(f"{entity} {entity_id}: {detail}")
        self.entity = entity
        self.entity_id = entity_id


class ConstraintViolationError(FitnessTrackerError):
    """A uniqueness rule would be broken by the write."""


class InvalidIdentifierError(FitnessTrackerError, ValueError):
    """An identifier that can never exist (zero or negative) was supplied."""

    def __init__(self, value: object) -> None:
        super().__init__(f"invalid identifier: {value!r}")
        self.value = value


def check_id(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidIdentifierError(value)
    return value
