# rollcall/backend/services/errors.py


class ServiceError(Exception):
    """General exception class for the service layer."""
    kind = "ServiceError"
    status_code = 500

    def __init__(self, detail: str = "A server error occurred."):
        super().__init__(detail)
        self.detail = detail


class InputValidationError(ServiceError):
    """The request is well-formed but its values do not make sense together."""
    kind = "ValidationError"
    status_code = 422


class SessionMismatchError(ServiceError):
    """The scanned code belongs to a different session than the one selected."""
    kind = "SessionMismatch"
    status_code = 400


class WindowClosedError(ServiceError):
    """The session is not live at the moment of the scan."""
    kind = "WindowClosed"
    status_code = 400


class AlreadyMarkedError(ServiceError):
    """A record already exists for this user and occurrence."""
    kind = "AlreadyMarked"
    status_code = 409


class DeviceMismatchError(ServiceError):
    """The scan came from a device other than the one bound to the user."""
    kind = "DeviceMismatch"
    status_code = 403


class NotAuthorizedError(ServiceError):
    kind = "NotAuthorized"
    status_code = 403


class NotFoundError(ServiceError):
    kind = "NotFound"
    status_code = 404
