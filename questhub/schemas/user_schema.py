# schemas/user_schema.py
from pydantic import BaseModel
from typing import Optional


class UserUpdate(BaseModel):
    display_name: Optional[str] = None
    twitter_username: Optional[str] = None
    discord_user_id: Optional[str] = None
    discord_access_token: Optional[str] = None
    wallet_address: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    uid: str
    display_name: Optional[str] = None
    twitter_username: Optional[str] = None
    discord_user_id: Optional[str] = None
    wallet_address: Optional[str] = None

    model_config = {"from_attributes": True}
