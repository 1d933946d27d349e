"""Domain errors raised by the hunt services and translated to HTTP by the routers."""


class HuntServiceError(Exception):
    """Base class for hunt/participation failures carrying an HTTP status."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class HuntError(HuntServiceError):
    """Hunt cannot be created or its settings cannot be changed."""


class ParticipationError(HuntServiceError):
    """Participant transition is not allowed (full, blocked, wrong state, ...)."""
