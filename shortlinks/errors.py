class ShortLinkError(Exception):
    """Base for every failure the link service reports to its callers."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ShortLinkError):
    status_code = 400


class DuplicateCodeError(ShortLinkError):
    status_code = 409


class NotFoundError(ShortLinkError):
    status_code = 404


class ConflictError(ShortLinkError):
    """Unique constraint on short_code rejected a write."""

    status_code = 409


class StoreUnavailableError(ShortLinkError):
    """Timeout or connection failure talking to the database. Safe to retry."""

    status_code = 503


class AllocationExhaustedError(ShortLinkError):
    status_code = 503
