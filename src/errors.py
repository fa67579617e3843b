"""
src/errors.py

Error taxonomy for the forest-fire stream server.

Every error carries the HTTP status code the REST layer reports it with.
"""


class ForestFireError(Exception):
    """Base class for all domain errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class InvalidInput(ForestFireError):
    """Missing or malformed field, params or coords at session creation."""
    status_code = 400


class MissingInput(InvalidInput):
    """A required part of the creation request is absent."""


class InvalidDimensions(InvalidInput):
    """Field width or height is not a positive integer."""


class DuplicateCoordinate(InvalidInput):
    """Two cells share the same coordinate."""


class OutOfBounds(InvalidInput):
    """A supplied cell lies outside the field's bounding box."""


class UnknownSession(ForestFireError):
    """No live session with this id (never created, finished, or attached)."""
    status_code = 404


class InternalEngineError(ForestFireError):
    """Unexpected failure inside a running generation loop."""
    status_code = 500
