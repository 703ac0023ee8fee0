class ServiceError(Exception):
    """Base class for failures raised by the service layer."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = 404


class InvalidRequestError(ServiceError):
    status_code = 400


class PermissionDeniedError(ServiceError):
    status_code = 403


class AuthenticationError(ServiceError):
    status_code = 401
