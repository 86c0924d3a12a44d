"""
Error taxonomy for the data-access core.

Repository operations raise only these exceptions.  Each carries the HTTP
status code and a client-safe message the HTTP layer can render directly;
store details stay on ``__cause__`` and in the logs.
"""


class ConduitError(Exception):
    status_code: int = 500
    message: str = "internal error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotFoundError(ConduitError):
    """A lookup found zero rows where one was expected."""

    status_code = 404
    message = "resource not found"


class DuplicateError(ConduitError):
    """A unique user field is already taken by another account."""

    status_code = 409
    field: str = ""

    def __init__(self) -> None:
        super().__init__(f"this {self.field} is already in use")


class DuplicateEmailError(DuplicateError):
    field = "email"


class DuplicateUsernameError(DuplicateError):
    field = "username"


class UnauthorizedError(ConduitError):
    # Raised for both unknown emails and wrong passwords.
    status_code = 401
    message = "invalid credentials"


class InternalError(ConduitError):
    """Unexpected store or transport failure."""

    status_code = 500
    message = "the server encountered a problem and could not process your request"

    def __init__(self, operation: str = "") -> None:
        self.operation = operation
        super().__init__()
