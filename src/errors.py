"""
Error Taxonomy

Every failure the visibility pipeline can surface to a caller carries the HTTP
status it maps to, so the API layer never has to guess.

Recovered locally (never surfaced):
- EngineAdapterError: one retry, then a degraded observation

Surfaced:
- ValidationError (400), UnauthorizedError (401), ForbiddenError (403),
  NotFoundError (404), AlreadyRunningError (409), PersistenceError (500)
"""


class VisibilityError(Exception):
    """Base class for pipeline errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(VisibilityError):
    """Malformed input (e.g. missing keywordId). Not retried."""

    status_code = 400


class UnauthorizedError(VisibilityError):
    """No authenticated caller."""

    status_code = 401


class ForbiddenError(VisibilityError):
    """Caller does not own the requested resource."""

    status_code = 403


class NotFoundError(VisibilityError):
    """Referenced keyword or project does not exist."""

    status_code = 404


class AlreadyRunningError(VisibilityError):
    """A run for this keyword already holds the lease."""

    status_code = 409

    def __init__(self, keyword_id):
        super().__init__(f"A check is already running for keyword {keyword_id}")
        self.keyword_id = keyword_id


class PersistenceError(VisibilityError):
    """The observation store rejected or failed a write. Nothing was committed."""

    status_code = 500


class ObservationIntegrityError(PersistenceError):
    """A batch violated an observation invariant and was rejected."""


class EngineAdapterError(Exception):
    """An engine adapter failed to produce a result."""

    def __init__(self, engine: str, message: str, status_code: int = None):
        super().__init__(f"{engine}: {message}")
        self.engine = engine
        self.status_code = status_code
