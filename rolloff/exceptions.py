"""
rolloff/exceptions.py
Custom exceptions for the rolloff engine

Provides typed exceptions for:
- Remote draw solicitation failures (timeout, rejection, disconnect)
- Invalid tie groups and bracket operations
- Lookups of encounters and resolutions
"""


class RolloffException(Exception):
    """Base exception for the rolloff engine"""
    status_code: int = 500

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)


class DrawSolicitationError(RolloffException):
    """
    Raised when a remote owner could not supply a draw.

    Every member of this family is recovered by a local fallback draw.
    """
    status_code = 502

    def __init__(self, message: str = "Owner failed to supply a draw"):
        super().__init__(message, self.status_code)


class DrawTimeoutError(DrawSolicitationError):
    """Raised when an owner did not answer before the solicitation timeout."""
    status_code = 504

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Owner did not respond within {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class DrawRejectedError(DrawSolicitationError):
    """
    Raised when an owner explicitly refused the request.

    Examples:
    - Entrant not found on the owner's side
    - Owner lacks rights to roll for the entrant
    """
    status_code = 403

    def __init__(self, message: str = "Owner rejected the draw request"):
        super().__init__(message)


class ParticipantDisconnectedError(DrawSolicitationError):
    """Raised for queries still pending when a participant goes away."""

    def __init__(self, user_id: str):
        super().__init__(f"Participant {user_id} disconnected")
        self.user_id = user_id


class InvalidTieGroupError(RolloffException):
    """
    Raised when a tie group would violate its invariants.

    Examples:
    - Fewer than two entrants
    - An entrant without a rank
    - Members with differing ranks
    """
    status_code = 400

    def __init__(self, message: str = "Invalid tie group"):
        super().__init__(message, self.status_code)


class BracketError(RolloffException):
    """Raised when a bracket match is resolved out of order or with a stranger."""
    status_code = 409

    def __init__(self, message: str = "Invalid bracket operation"):
        super().__init__(message, self.status_code)


class NotFoundError(RolloffException):
    """
    Raised when requested resource doesn't exist.
    """
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, self.status_code)
