"""Domain exceptions raised by service functions."""


class ConflictError(ValueError):
    """The requested change conflicts with the current state of a record.

    Subclasses ``ValueError`` so callers that only care about "invalid
    request" keep working; the API layer maps it to HTTP 409.
    """
