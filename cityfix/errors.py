"""Error taxonomy shared by the store, the service layer and the routes."""


class CityFixError(Exception):
    """Base class for errors the API knows how to report."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BadInput(CityFixError):
    """Malformed identifier or request value."""

    status_code = 400


class NotFound(CityFixError):
    """No issue exists with the requested id."""

    status_code = 404


class StoreUnavailable(CityFixError):
    """The database connection is not initialized or has been lost."""

    status_code = 500


class InternalError(CityFixError):
    """Unexpected failure inside the service, e.g. a lost write."""

    status_code = 500


class SchedulerUnavailable(CityFixError):
    """The workflow could not be handed to the background scheduler."""

    status_code = 503
