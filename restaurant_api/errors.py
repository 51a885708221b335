# Errors raised by the services; main renders them as {"detail": message}.


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource was modified by another request, please retry"


class InternalError(AppError):
    status_code = 500
