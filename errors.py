"""Exceptions raised by the exam engine."""


class ExamError(Exception):
    """Base class for exam engine failures."""


class DriverError(ExamError):
    """The page automation backend failed (navigation, crashed page, missing element)."""


class UnreadableScore(ExamError):
    """The page after submission did not show a score we recognise."""


class NoQuestionsFound(ExamError):
    """The page snapshot yielded no questions (not loaded yet, verification page, wrong URL)."""


class StructureChanged(ExamError):
    """The number of questions changed between two loads of the same exam."""

    def __init__(self, expected: int, found: int, message: str = ""):
        self.expected = expected
        self.found = found
        super().__init__(message or f"expected {expected} questions, page has {found}")


class StaleCache(StructureChanged):
    """Cached answers no longer fit the live page."""


class Cancelled(ExamError):
    """The caller asked the session to stop."""
