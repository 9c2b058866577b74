from typing import Any, Dict, Optional

from pydantic import BaseModel

# Value of "status" in every successful phase response.
STAGE_STATUS_OK = 0

FAILURE_STATUS_CODE = 500
LOCKED_STATUS_CODE = 418


class PhaseSuccess(BaseModel):
    phase: str
    status: int = STAGE_STATUS_OK
    stage_id: Optional[str] = None

    def body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PhaseFailure(BaseModel):
    message: str
    phase: Optional[str] = None

    def body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class StageLocked(BaseModel):
    message: str
    unlock_url: str = ""

    def body(self) -> Dict[str, Any]:
        return self.model_dump()


class ActivationResult(BaseModel):
    response: Dict[str, Any]

    def body(self) -> Dict[str, Any]:
        return self.response


class UnlockResult(BaseModel):
    destination: str
    message: str = "Operation complete, you can add a new project again."
