# routers/user_routes.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from questhub.auth.token import get_current_user, get_token_uid
from questhub.database import get_db
from questhub.models.user import User
from questhub.schemas.user_schema import UserResponse, UserUpdate

router = APIRouter(prefix="/api/users", tags=["User"])


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)):
    return user


@router.put("/me", response_model=UserResponse)
def upsert_me(body: UserUpdate, uid: str = Depends(get_token_uid), db: Session = Depends(get_db)):
    """Create the profile on first login, then keep linked accounts up to date."""
    user = db.query(User).filter(User.uid == uid).first()
    if not user:
        user = User(uid=uid)
        db.add(user)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    return user
