class ValidationError(ValueError):
    """Caller-recoverable input error. The record is left untouched."""


class InvalidFrequency(ValidationError):
    pass


class InvalidAnchor(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class NotFound(ValueError):
    pass


class StaleRecord(ValueError):
    def __init__(self, kind: str, record_id: int, expected: int, actual: int) -> None:
        super().__init__(
            f"{kind} {record_id} was modified concurrently "
            f"(expected version {expected}, found {actual})"
        )
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
