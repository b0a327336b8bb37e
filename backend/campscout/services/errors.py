"""Service-layer exceptions, mapped to HTTP status codes by the API routers."""


class NotFoundError(LookupError):
    """A referenced row does not exist."""


class StateError(ValueError):
    """The operation is not valid for the row's current state."""
