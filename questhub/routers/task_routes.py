# routers/task_routes.py
from fastapi import APIRouter, Depends

from questhub.auth.token import get_current_user
from questhub.core.errors import QuestError
from questhub.models.user import User
from questhub.routers.deps import get_orchestrator, http_error
from questhub.schemas.progress_schema import (
    ProgressOut,
    SubmitTaskOut,
    SubmitTaskRequest,
    VisitLinkOut,
    VisitLinkRequest,
)
from questhub.services.orchestrator import QuestOrchestrator

router = APIRouter(prefix="/api/quests", tags=["Tasks"])


@router.post("/{quest_id}/tasks", response_model=SubmitTaskOut)
def submit_task(
    quest_id: int,
    body: SubmitTaskRequest,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.submit_task(quest_id, user, body.task_index, body.wallet_address)
    except QuestError as e:
        raise http_error(e)


@router.post("/{quest_id}/visit", response_model=VisitLinkOut)
def visit_link(
    quest_id: int,
    body: VisitLinkRequest,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.visit_link(quest_id, user, body.task_index)
    except QuestError as e:
        raise http_error(e)


@router.get("/{quest_id}/progress", response_model=ProgressOut)
def get_quest_progress(
    quest_id: int,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.get_quest_progress(quest_id, user.uid)
    except QuestError as e:
        raise http_error(e)
