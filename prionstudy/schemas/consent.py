import re
from pydantic import BaseModel, field_validator
from typing import Literal, Optional

PARTICIPANT_ID_RE = re.compile(r"^[A-Za-z0-9_\-:.]{3,128}$")


class ConsentSubmission(BaseModel):
    response: Literal["accept", "more_info", "decline"]
    id: str
    token: Optional[str] = None

    @field_validator("id")
    @classmethod
    def check_participant_id(cls, value: str) -> str:
        if not PARTICIPANT_ID_RE.match(value):
            raise ValueError("must be 3-128 characters of letters, digits, _ - : .")
        return value


class ConsentReceipt(BaseModel):
    ok: bool = True
    message: str = "Response recorded"
    ts: str

