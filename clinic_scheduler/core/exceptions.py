"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class InvalidIntervalException(ValidationException):
    """Appointment interval is empty or inverted."""

    def __init__(self, message: str = "Appointment must end after it starts"):
        super().__init__(message)


class InvalidRangeException(ValidationException):
    """Waitlist preferred date range is inverted or starts in the past."""

    def __init__(self, message: str = "Preferred date range is invalid"):
        super().__init__(message)


class SlotConflictException(ConflictException):
    """The doctor already has an active appointment overlapping the interval."""

    def __init__(self, message: str = "The doctor already has an appointment at this time"):
        super().__init__(message)


class InvalidTransitionException(ConflictException):
    """Requested status is not reachable from the current status."""

    def __init__(self, message: str = "Status transition not allowed"):
        super().__init__(message)


class AlreadyTerminalException(ConflictException):
    """Record is in a terminal status and accepts no further transitions."""

    def __init__(self, message: str = "Record is already in a final status"):
        super().__init__(message)


class OfferExpiredException(ConflictException):
    """Waitlist offer is no longer open."""

    def __init__(self, message: str = "The waitlist offer has expired"):
        super().__init__(message)


class NotRemovableException(ConflictException):
    """Waitlist entry holds a live offer or is final."""

    def __init__(self, message: str = "Only waiting entries can be removed"):
        super().__init__(message)


class ContentionException(ConflictException):
    """Concurrent writers kept invalidating the record; retries exhausted."""

    def __init__(self, message: str = "The record is being modified concurrently, try again"):
        super().__init__(message)


class StorageFailureException(AppException):
    """Underlying storage failed."""

    def __init__(self, message: str = "Storage is temporarily unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class StaleVersionError(Exception):
    """Optimistic version check failed on write.

    Internal to the store and the queue: it is retried and, once retries are
    exhausted, surfaced as ContentionException.
    """

    def __init__(self, entity_id: object, expected_version: int):
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(f"{entity_id} is no longer at version {expected_version}")
