from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CompletedTaskOut(BaseModel):
    task_index: int
    proof: Optional[str] = None
    awarded_points: int
    completed_at: datetime

    model_config = {"from_attributes": True}


class ProgressOut(BaseModel):
    quest_id: int
    user_id: str
    wallet_address: Optional[str] = None
    tasks_completed: List[CompletedTaskOut] = []
    points_collected: int = 0
    status: str = "pending"


class SubmitTaskRequest(BaseModel):
    task_index: int
    wallet_address: Optional[str] = None  # overrides the profile wallet for this quest


class SubmitTaskOut(BaseModel):
    verified: bool
    message: str
    already_completed: bool = False
    malformed_task: bool = False
    progress: Optional[ProgressOut] = None


class VisitLinkRequest(BaseModel):
    task_index: int


class VisitLinkOut(BaseModel):
    verified: bool
    message: str
