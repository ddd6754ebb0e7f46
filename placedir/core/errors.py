from __future__ import annotations


class PlaceDirectoryError(Exception):
    kind = "error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.kind}: {self.reason}"


class ValidationError(PlaceDirectoryError):
    kind = "validation_error"


class NotFound(PlaceDirectoryError):
    kind = "not_found"


class Forbidden(PlaceDirectoryError):
    kind = "forbidden"


class ConflictError(PlaceDirectoryError):
    """Stale state: another writer changed the record first."""

    kind = "conflict"


class ConfigurationError(PlaceDirectoryError):
    kind = "configuration_error"
