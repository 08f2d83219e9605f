from __future__ import annotations


class ServiceError(Exception):
    """Error raised by service functions.

    ``message`` is a translation key; ``values`` fill its placeholders.
    """

    def __init__(self, message: str, status_code: int = 400, **values) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.values = values


class ConflictError(ServiceError):
    """The request conflicts with stored state, e.g. a concurrent write."""

    def __init__(self, message: str, **values) -> None:
        super().__init__(message, 409, **values)
