# routers/quest_routes.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from questhub.auth.token import get_current_user
from questhub.core.errors import QuestError
from questhub.database import get_db
from questhub.models.quests import Quest
from questhub.models.user import User
from questhub.routers.deps import get_orchestrator, http_error
from questhub.schemas.quest_schema import InitializePoolOut, QuestCreate, QuestOut
from questhub.schemas.reward_schema import FinalizeOut, SubmitAllocationsOut, WithdrawOut
from questhub.services.orchestrator import QuestOrchestrator

router = APIRouter(prefix="/api/quests", tags=["Quests"])


@router.post("/", response_model=QuestOut)
def create_quest(
    quest: QuestCreate,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    if not quest.name.strip() or quest.name.strip().lower() == "string":
        raise HTTPException(status_code=400, detail="You cannot leave the quest name empty")
    try:
        return orchestrator.create_quest(quest, user.uid)
    except QuestError as e:
        raise http_error(e)


@router.get("/", response_model=List[QuestOut])
def get_all_quests(db: Session = Depends(get_db)):
    return db.query(Quest).order_by(Quest.id.desc()).all()


@router.get("/{quest_id}", response_model=QuestOut)
def get_quest(quest_id: int, db: Session = Depends(get_db)):
    quest = db.query(Quest).filter(Quest.id == quest_id).first()
    if not quest:
        raise HTTPException(status_code=404, detail="Quest not found")
    return quest


@router.post("/{quest_id}/pool", response_model=InitializePoolOut)
def initialize_pool(
    quest_id: int,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.initialize_pool(quest_id, user.uid)
    except QuestError as e:
        raise http_error(e)


@router.post("/{quest_id}/finalize", response_model=FinalizeOut)
def finalize_quest(
    quest_id: int,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.finalize_quest(quest_id, user.uid)
    except QuestError as e:
        raise http_error(e)


@router.post("/{quest_id}/allocations/submit", response_model=SubmitAllocationsOut)
def submit_allocations(
    quest_id: int,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.submit_allocations(quest_id, user.uid)
    except QuestError as e:
        raise http_error(e)


@router.post("/{quest_id}/withdraw", response_model=WithdrawOut)
def withdraw_remainder(
    quest_id: int,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.withdraw_remainder(quest_id, user.uid)
    except QuestError as e:
        raise http_error(e)
