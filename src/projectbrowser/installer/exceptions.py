from typing import List, Optional


class StageException(Exception):
    """Base class for failures raised by the staged install."""

    def __init__(self, message: str, stage_id: Optional[str] = None):
        super().__init__(message)
        self.stage_id = stage_id


class StageOwnershipException(StageException):
    pass


class StageFailureMarkerException(StageException):
    """A previous apply was interrupted; the site may be inconsistent."""


class StageValidationException(StageException):
    def __init__(self, message: str, messages: Optional[List[str]] = None):
        super().__init__(message)
        self.messages = messages or []
