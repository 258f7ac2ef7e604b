class TodoError(Exception):
    """Base error; the HTTP layer turns it into ``{"error": message}``."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TodoError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(TodoError):
    status_code = 400
    default_message = "User already exists"


class InvalidCredentials(TodoError):
    status_code = 400
    default_message = "Invalid credentials"


class Unauthenticated(TodoError):
    status_code = 401
    default_message = "Access token required"


class InvalidToken(TodoError):
    status_code = 403
    default_message = "Invalid token"


class NotFound(TodoError):
    status_code = 404
    default_message = "Todo not found"


class InternalError(TodoError):
    pass
