from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

Role = Literal["admin", "doctor", "nurse", "theater_technician"]


class ActorContext(BaseModel):
    """Already-authenticated caller, as supplied by the request layer."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    login: str = ""
    role: Role
