"""Exception types raised by the grading and progression engine."""


class ExamPrepError(Exception):
    """Base class for all engine errors."""


class NotFoundError(ExamPrepError):
    """A referenced question or student does not exist."""


class InvalidInputError(ExamPrepError):
    """A submission or record failed validation before any write."""


class ConflictError(ExamPrepError):
    """A conditional update lost the race; the caller may retry."""


class PersistenceError(ExamPrepError):
    """The store could not be read or written."""


class DuplicateAttemptError(ExamPrepError):
    """An attempt with the same key is already in the log."""
