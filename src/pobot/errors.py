from __future__ import annotations


class PobotError(RuntimeError):
    pass


class ParseError(PobotError):
    pass


class WriteError(PobotError):
    pass


class BatchFailure(PobotError):
    def __init__(self, message: str, language: str, batch_number: int) -> None:
        super().__init__(message)
        self.language = language
        self.batch_number = batch_number


class EngineError(PobotError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthFailure(EngineError):
    pass


class MergeWarning(UserWarning):
    """Existing translations could not be read; the run continues unmerged."""
