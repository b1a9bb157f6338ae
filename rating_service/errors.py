class RatingError(Exception):
    """Base class for rating domain errors."""


class InvalidScore(RatingError):
    def __init__(self, score):
        super().__init__(f"Score must be an integer between 1 and 5, got {score!r}")
        self.score = score


class InvalidReference(RatingError):
    def __init__(self, field: str):
        super().__init__(f"{field} must be a non-empty identifier")
        self.field = field


class SubjectNotFound(RatingError):
    def __init__(self, subject_id: str):
        super().__init__(f"Subject {subject_id} not found")
        self.subject_id = subject_id


class StoreUnavailable(RatingError):
    """A read or write against the rating or profile store failed."""


class UnsupportedQuery(RatingError):
    """The store cannot serve the requested query shape (e.g. a missing ordered index)."""
