# routers/reward_routes.py
from fastapi import APIRouter, Depends

from questhub.auth.token import get_current_user
from questhub.core.errors import QuestError
from questhub.models.user import User
from questhub.routers.deps import get_orchestrator, http_error
from questhub.schemas.reward_schema import ClaimOut, ClaimRequest, EligibleRewardOut
from questhub.services.orchestrator import QuestOrchestrator

router = APIRouter(prefix="/api/quests", tags=["Rewards"])


@router.get("/{quest_id}/reward", response_model=EligibleRewardOut)
def get_eligible_reward(
    quest_id: int,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.get_eligible_reward(quest_id, user.uid)
    except QuestError as e:
        raise http_error(e)


@router.post("/{quest_id}/claim", response_model=ClaimOut)
def claim_reward(
    quest_id: int,
    body: ClaimRequest,
    user: User = Depends(get_current_user),
    orchestrator: QuestOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.claim_reward(quest_id, user, body.wallet_address)
    except QuestError as e:
        raise http_error(e)
