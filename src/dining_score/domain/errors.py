"""Error taxonomy for voting sessions and score aggregation."""


class DiningScoreError(Exception):
    """Base class for domain errors with a user-facing message."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DiningScoreError):
    """Malformed input to a session or vote operation."""

    default_message = "The submitted data is not valid."


class SessionFullError(ValidationError):
    """Every expected guest has already voted."""

    default_message = "All guests have already voted in this session."


class NotFoundError(DiningScoreError):
    """The referenced session does not exist."""

    default_message = "Session not found."


class DuplicateVoteError(DiningScoreError):
    """The voter already submitted a vote for the session."""

    default_message = "You have already voted in this session."


class InsufficientDataError(DiningScoreError):
    """Aggregation was requested before any usable vote exists."""

    default_message = "No votes have been received yet."


class InvariantViolationError(DiningScoreError):
    """Aggregation received vote data that should have been rejected earlier."""

    default_message = "Results are unavailable for this session."


class StoreConflictError(DiningScoreError):
    """Concurrent writers kept winning the append race."""

    default_message = "The session is busy. Please try again."
