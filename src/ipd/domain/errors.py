class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    def __init__(self, message: str, code: str = "invalid"):
        super().__init__(message)
        self.code = code


class NotFoundError(AppError):
    pass


class CommitError(AppError):
    """The atomic batch was not applied; nothing from it is persisted."""


class ReconciliationError(AppError):
    pass
