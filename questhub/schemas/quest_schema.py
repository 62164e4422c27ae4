from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class TaskTypeEnum(str, Enum):
    FollowTwitter = "FollowTwitter"
    RetweetTweet = "RetweetTweet"
    LikeTweet = "LikeTweet"
    JoinDiscord = "JoinDiscord"
    VisitWebsite = "VisitWebsite"
    OwnNFT = "OwnNFT"
    AttendEvent = "AttendEvent"


# TASK SCHEMA
class TaskCreate(BaseModel):
    task_type: TaskTypeEnum
    link: str = Field(..., examples=["cardanohubid", "https://x.com/cardanohubid/status/1790000000000000000"])
    points: int = Field(..., gt=0)

    @field_validator("link")
    @classmethod
    def _link_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("link cannot be empty")
        return v.strip()


class TaskOut(BaseModel):
    position: int
    task_type: TaskTypeEnum
    link: str
    points: int

    model_config = {"from_attributes": True}


# QUEST CREATE + RESPONSE SCHEMA
class QuestCreate(BaseModel):
    name: str
    description: str = ""
    reward: int = Field(..., gt=0)
    token_policy_id: str = Field(..., min_length=56, max_length=56)
    token_name: str
    deadline: datetime
    admin_wallet_address: str
    tasks: List[TaskCreate] = Field(..., min_length=1)


class QuestOut(BaseModel):
    id: int
    name: str
    description: str
    reward: int
    token_policy_id: str
    token_name: str
    deadline: datetime
    status: str
    creator_uid: str
    admin_wallet_address: str
    script_address: Optional[str] = None
    tasks: List[TaskOut]

    model_config = {"from_attributes": True}


class InitializePoolOut(BaseModel):
    quest_id: int
    script_address: str
    tx_hash: str
