class DashboardError(Exception):
    """Base error carrying the HTTP status it is reported with."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StoreConnectionError(DashboardError):
    """Connection string is malformed or the server is unreachable."""

    status_code = 400


class NotConnectedError(DashboardError):
    status_code = 400

    def __init__(self, message: str = "Not connected"):
        super().__init__(message)


class NotFoundError(DashboardError):
    status_code = 404

    def __init__(self, message: str = "Document not found"):
        super().__init__(message)


class ValueDecodeError(DashboardError):
    """Malformed tagged value, filter or cursor."""

    status_code = 400


class StoreError(DashboardError):
    status_code = 500
