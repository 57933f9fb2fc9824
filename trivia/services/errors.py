"""Errors raised by the progression services."""


class ProgressionError(Exception):
    """Base error. Unexpected failures are re-raised as this type."""


class NotFoundError(ProgressionError):
    """A user, question, category, challenge or unlock does not exist."""


class ValidationError(ProgressionError):
    """Malformed input, e.g. an empty answer or a negative time."""


class DuplicateAnswerError(ProgressionError):
    """The (user, question) pair already has a recorded answer."""


class ChallengeAlreadyCompletedError(ProgressionError):
    pass


class LimitExceededError(ProgressionError):
    """Too many achievements equipped or belts displayed."""
