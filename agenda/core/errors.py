"""Domain errors raised by calendar operations.

Routes do not catch these; ``agenda.main`` registers exception handlers that
turn them into JSON error responses.
"""


class AgendaError(Exception):
    """Base class for errors reported to API callers."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(AgendaError):
    """A request was rejected before anything was persisted."""

    status_code = 400


class NotFoundError(AgendaError):
    """The referenced event, calendar or reminder does not exist."""

    status_code = 404
