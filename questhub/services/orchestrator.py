"""
Quest and claim orchestration.

One ``QuestOrchestrator`` per request: it binds the request's database session
to the shared external clients in the ``ServiceContainer`` and exposes the
operations the routers call.
"""
from typing import Optional

from sqlalchemy.orm import Session

from questhub.chain.pool import TokenIdentity
from questhub.container.service_container import ServiceContainer
from questhub.core.clock import as_utc, to_posix_ms
from questhub.core.errors import (
    AllocationsPendingError,
    AlreadyRewardedError,
    AuthorizationError,
    ClaimAddressMismatchError,
    NoEligibleParticipantsError,
    NoParticipationError,
    NotEligibleError,
    NotFinalizedError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
    PreconditionError,
    ProgressNotFoundError,
    TaskExpiredError,
)
from questhub.core.logging import get_logger
from questhub.models.progress import ProgressStatus
from questhub.models.quests import Quest, QuestStatus, QuestTask
from questhub.models.user import User
from questhub.schemas.progress_schema import ProgressOut, SubmitTaskOut, VisitLinkOut
from questhub.schemas.quest_schema import InitializePoolOut, QuestCreate
from questhub.schemas.reward_schema import ClaimOut, EligibleRewardOut, FinalizeOut, SubmitAllocationsOut, WithdrawOut
from questhub.services.allocation import compute_allocations
from questhub.services.finalization import FinalizationEngine
from questhub.services.progress_ledger import ProgressLedger, is_expired
from questhub.services.reward_pool import pool_key_for
from questhub.services.task_kinds import MalformedTaskError, VisitWebsite, parse_task
from questhub.services.task_verifier import LinkVisitRegister, ParticipantCredentials, TaskVerifier

logger = get_logger("questhub.services.orchestrator")


def credentials_for(user: User, wallet_address: Optional[str] = None) -> ParticipantCredentials:
    return ParticipantCredentials(
        user_id=user.uid,
        twitter_username=user.twitter_username,
        discord_user_id=user.discord_user_id,
        discord_access_token=user.discord_access_token,
        wallet_address=wallet_address or user.wallet_address,
    )


class QuestOrchestrator:
    def __init__(self, db: Session, services: ServiceContainer):
        self.db = db
        self.services = services
        self.clock = services.clock
        self.progress = ProgressLedger(db, services.clock)
        self.verifier = TaskVerifier(
            services.twitter, services.discord, services.ledger, LinkVisitRegister(db)
        )
        self.finalization = FinalizationEngine(db, services.pool, services.clock)

    # ---- Quests -------------------------------------------------------------

    def create_quest(self, payload: QuestCreate, creator_uid: str) -> Quest:
        if as_utc(payload.deadline) <= self.clock():
            raise PreconditionError("Quest deadline must be in the future")
        for index, task in enumerate(payload.tasks):
            try:
                parse_task(task.task_type.value, task.link)
            except MalformedTaskError as e:
                raise PreconditionError(f"Task {index} is malformed: {e}")

        quest = Quest(
            name=payload.name,
            description=payload.description,
            reward=payload.reward,
            token_policy_id=payload.token_policy_id.lower(),
            token_name=payload.token_name,
            deadline=as_utc(payload.deadline),
            status=QuestStatus.ACTIVE,
            creator_uid=creator_uid,
            admin_wallet_address=payload.admin_wallet_address,
            allocation_cursor=0,
        )
        quest.tasks = [
            QuestTask(position=i, task_type=t.task_type.value, link=t.link, points=t.points)
            for i, t in enumerate(payload.tasks)
        ]
        self.db.add(quest)
        self.db.commit()
        self.db.refresh(quest)
        logger.info("[create_quest] created", extra={"quest_id": quest.id, "creator": creator_uid})
        return quest

    def initialize_pool(self, quest_id: int, requester_id: str) -> InitializePoolOut:
        quest = self.progress.get_quest(quest_id)
        if quest.creator_uid != requester_id:
            raise AuthorizationError("Only the quest creator can initialize the reward pool")
        if quest.script_address:
            raise PoolAlreadyInitializedError()
        if is_expired(quest, self.clock()):
            raise TaskExpiredError("Quest has ended; the reward pool can no longer be initialized")

        tx_hash, pool = self.services.pool.initialize(
            self.services.ledger.owner_pub_key_hash(),
            TokenIdentity(quest.token_policy_id, quest.token_name),
            quest.reward,
            to_posix_ms(quest.deadline),
        )
        quest.script_address = pool.script_address
        quest.pool_tx_hash = tx_hash
        self.db.commit()

        self.services.pool.await_confirmation(tx_hash)
        logger.info("[initialize_pool] pool live", extra={"quest_id": quest_id, "tx_hash": tx_hash})
        return InitializePoolOut(quest_id=quest_id, script_address=pool.script_address, tx_hash=tx_hash)

    # ---- Tasks --------------------------------------------------------------

    def submit_task(self, quest_id: int, user: User, task_index: int,
                    wallet_address: Optional[str] = None) -> SubmitTaskOut:
        quest = self.progress.get_quest(quest_id)
        if is_expired(quest, self.clock()):
            raise TaskExpiredError()
        task = self.progress.get_task(quest, task_index)

        if self.progress.is_completed(quest_id, user.uid, task_index):
            return SubmitTaskOut(
                verified=True,
                message="Task already completed.",
                already_completed=True,
                progress=self.progress.progress_out(quest_id, user.uid),
            )

        credentials = credentials_for(user, wallet_address)
        result = self.verifier.verify(task.task_type, task.link, credentials)
        if not result.verified:
            return SubmitTaskOut(
                verified=False,
                message=result.message,
                malformed_task=result.malformed,
                progress=self.progress.progress_out(quest_id, user.uid),
            )

        outcome = self.progress.record_completion(
            quest_id, user.uid, task_index, proof=result.proof, wallet_address=credentials.wallet_address
        )
        return SubmitTaskOut(
            verified=True,
            message=outcome.message,
            already_completed=not outcome.created,
            progress=outcome.progress,
        )

    def visit_link(self, quest_id: int, user: User, task_index: int) -> VisitLinkOut:
        quest = self.progress.get_quest(quest_id)
        task = self.progress.get_task(quest, task_index)
        try:
            kind = parse_task(task.task_type, task.link)
        except MalformedTaskError as e:
            return VisitLinkOut(verified=False, message=str(e))
        if not isinstance(kind, VisitWebsite):
            return VisitLinkOut(verified=False, message="Task is not a website visit")

        result = self.verifier.visit_link(user.uid, kind.url)
        return VisitLinkOut(verified=result.verified, message=result.message)

    def get_quest_progress(self, quest_id: int, user_id: str) -> ProgressOut:
        self.progress.get_quest(quest_id)
        return self.progress.progress_out(quest_id, user_id)

    # ---- Finalization -------------------------------------------------------

    def finalize_quest(self, quest_id: int, requester_id: str) -> FinalizeOut:
        return self.finalization.finalize(quest_id, requester_id)

    def submit_allocations(self, quest_id: int, requester_id: str) -> SubmitAllocationsOut:
        return self.finalization.submit_allocations(quest_id, requester_id)

    # ---- Rewards ------------------------------------------------------------

    def get_eligible_reward(self, quest_id: int, user_id: str) -> EligibleRewardOut:
        quest = self.progress.get_quest(quest_id)
        if quest.status != QuestStatus.ENDED:
            return EligibleRewardOut(eligible=False, amount=0, message="Quest has not ended yet.")

        entry = self.progress.get_entry(quest_id, user_id)
        if not entry or entry.points_collected <= 0:
            return EligibleRewardOut(eligible=False, amount=0, message="No points collected in this quest.")
        if entry.status == ProgressStatus.REWARDED:
            return EligibleRewardOut(eligible=False, amount=0, message="Reward already claimed.")
        if not entry.wallet_address:
            return EligibleRewardOut(eligible=False, amount=0, message="No wallet linked to this quest's progress.")
        if entry.claim_tx_hash:
            return EligibleRewardOut(
                eligible=False, amount=entry.claim_amount or 0, message="Claim submitted; awaiting confirmation."
            )

        # the persisted allocation already merges participants sharing a wallet
        allocation = self.finalization.allocation_for(quest_id, entry.wallet_address)
        if allocation is None:
            return EligibleRewardOut(eligible=False, amount=0, message="Share rounds down to zero tokens.")
        return EligibleRewardOut(eligible=True, amount=allocation.amount, message="Reward available to claim.")

    def claim_reward(self, quest_id: int, user: User, wallet_address: str) -> ClaimOut:
        quest = self.progress.get_quest(quest_id)
        if quest.status != QuestStatus.ENDED:
            raise NotFinalizedError("Quest has not ended yet")

        entry = self.progress.get_entry(quest_id, user.uid)
        if not entry or entry.points_collected <= 0:
            raise ProgressNotFoundError("No points collected in this quest")
        if entry.status == ProgressStatus.REWARDED:
            raise AlreadyRewardedError()
        if entry.wallet_address != wallet_address:
            raise ClaimAddressMismatchError()

        if entry.claim_tx_hash:
            # an earlier attempt broadcast the claim; only its confirmation is outstanding
            tx_hash, amount = entry.claim_tx_hash, entry.claim_amount
            self.services.pool.await_confirmation(tx_hash)
            return self._settle_claim(quest_id, user, wallet_address, tx_hash, amount)

        pool = pool_key_for(quest)
        if pool is None:
            raise PoolNotInitializedError()
        if self.services.pool.eligible_amount(pool, wallet_address) <= 0:
            raise NotEligibleError()

        tx_hash, amount = self.services.pool.claim(pool, wallet_address)
        self.progress.mark_claim_submitted(quest_id, wallet_address, tx_hash, amount)
        self.services.pool.await_confirmation(tx_hash)
        return self._settle_claim(quest_id, user, wallet_address, tx_hash, amount)

    def _settle_claim(self, quest_id: int, user: User, wallet_address: str, tx_hash: str, amount: int) -> ClaimOut:
        # participants sharing a wallet were paid by the same allocation
        for shared in self.progress.list_entries(quest_id):
            if shared.wallet_address == wallet_address:
                self.progress.mark_rewarded(quest_id, shared.user_id, tx_hash)

        logger.info("[claim_reward] claimed", extra={"quest_id": quest_id, "user_id": user.uid, "tx_hash": tx_hash})
        return ClaimOut(tx_hash=tx_hash, amount=amount, message="Reward claimed.")

    def withdraw_remainder(self, quest_id: int, requester_id: str) -> WithdrawOut:
        quest = self.progress.get_quest(quest_id)
        if quest.creator_uid != requester_id:
            raise AuthorizationError("Only the quest creator can withdraw the remainder")
        if self.clock() < as_utc(quest.deadline):
            raise PreconditionError("Quest has not reached its deadline")
        if quest.status != QuestStatus.ENDED and self._owes_rewards(quest):
            raise NotFinalizedError("Finalize the quest before withdrawing the remainder")
        if quest.status == QuestStatus.ENDED and self.finalization.pending_steps(quest):
            raise AllocationsPendingError()
        pool = pool_key_for(quest)
        if pool is None:
            raise PoolNotInitializedError()

        owner_address = self.services.ledger.get_used_addresses()[0]
        tx_hash, amount, closed = self.services.pool.withdraw(
            pool, self.services.ledger.owner_pub_key_hash(), owner_address
        )
        self.services.pool.await_confirmation(tx_hash)

        message = "Pool closed." if closed else "Uncommitted rewards withdrawn."
        logger.info("[withdraw_remainder] done", extra={"quest_id": quest_id, "tx_hash": tx_hash, "amount": amount})
        return WithdrawOut(tx_hash=tx_hash, amount=amount, pool_closed=closed, message=message)

    def _owes_rewards(self, quest: Quest) -> bool:
        """Whether finalizing ``quest`` would allocate anything."""
        try:
            compute_allocations(self.progress.list_entries(quest.id), quest.reward)
        except (NoParticipationError, NoEligibleParticipantsError):
            return False
        return True
