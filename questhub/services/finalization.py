"""
Quest finalization.

``finalize`` turns the progress ledger into floor-rounded allocations, records
them as ordered saga steps and returns the chained unsigned AddEligible
transactions for inspection. ``submit_allocations`` then walks those steps from
the quest's ``allocation_cursor``, one confirmed transaction at a time, so an
interrupted run resumes where it stopped.
"""
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from questhub.core.clock import Clock, as_utc, utcnow
from questhub.core.errors import (
    AlreadyFinalizedError,
    AuthorizationError,
    NotFinalizedError,
    PoolNotInitializedError,
    PrematureFinalizationError,
)
from questhub.core.logging import get_logger
from questhub.models.allocation import Allocation, AllocationStatus
from questhub.models.quests import Quest, QuestStatus
from questhub.schemas.reward_schema import AllocationOut, FinalizeOut, SubmitAllocationsOut, UnsignedTxOut
from questhub.services.allocation import compute_allocations
from questhub.services.progress_ledger import ProgressLedger
from questhub.services.reward_pool import RewardPoolClient, pool_key_for

logger = get_logger("questhub.services.finalization")


class FinalizationEngine:
    def __init__(self, db: Session, pool: RewardPoolClient, clock: Clock = utcnow):
        self.db = db
        self.pool = pool
        self.clock = clock
        self.progress = ProgressLedger(db, clock)

    def _require_creator(self, quest: Quest, requester_id: str, action: str) -> None:
        if quest.creator_uid != requester_id:
            raise AuthorizationError(f"Only the quest creator can {action} this quest")

    def finalize(self, quest_id: int, requester_id: str) -> FinalizeOut:
        quest = self.progress.get_quest(quest_id)

        # order matters: the first failing check is the one reported
        self._require_creator(quest, requester_id, "finalize")
        if self.clock() < as_utc(quest.deadline):
            raise PrematureFinalizationError()
        if quest.status == QuestStatus.ENDED:
            raise AlreadyFinalizedError()

        pool = pool_key_for(quest)
        if pool is None:
            raise PoolNotInitializedError()

        entries = self.progress.list_entries(quest_id)
        planned = compute_allocations(entries, quest.reward)
        unsigned = self.pool.build_allocation_chain(pool, [(p.address, p.amount) for p in planned])

        allocated = {p.address for p in planned}
        for position, plan in enumerate(planned):
            self.db.add(Allocation(
                quest_id=quest_id,
                position=position,
                user_id=plan.user_id,
                address=plan.address,
                amount=plan.amount,
                status=AllocationStatus.PENDING,
            ))
        self.progress.mark_verified(
            quest_id, [e.user_id for e in entries if e.points_collected > 0 and e.wallet_address in allocated]
        )
        ended = self.db.execute(
            update(Quest)
            .where(Quest.id == quest_id, Quest.status == QuestStatus.ACTIVE)
            .values(status=QuestStatus.ENDED, allocation_cursor=0)
        )
        if ended.rowcount != 1:
            self.db.rollback()
            raise AlreadyFinalizedError()
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent finalize wrote the allocation rows first
            self.db.rollback()
            raise AlreadyFinalizedError()
        self.db.expire_all()

        total_allocated = sum(p.amount for p in planned)
        logger.info("[finalize] quest ended", extra={
            "quest_id": quest_id, "allocations": len(planned), "allocated": total_allocated,
        })
        return FinalizeOut(
            quest_id=quest_id,
            allocations=[AllocationOut(address=p.address, amount=p.amount) for p in planned],
            unsigned_transactions=[
                UnsignedTxOut(tx_id=tx.tx_id, cbor_hex=tx.cbor_hex, address=p.address, amount=p.amount)
                for tx, p in zip(unsigned, planned)
            ],
            unallocated=quest.reward - total_allocated,
        )

    def pending_steps(self, quest: Quest) -> List[Allocation]:
        return (
            self.db.query(Allocation)
            .filter(Allocation.quest_id == quest.id, Allocation.position >= quest.allocation_cursor)
            .order_by(Allocation.position)
            .all()
        )

    def allocation_for(self, quest_id: int, address: str) -> Optional[Allocation]:
        return self.db.query(Allocation).filter_by(quest_id=quest_id, address=address).first()

    def submit_allocations(self, quest_id: int, requester_id: str) -> SubmitAllocationsOut:
        quest = self.progress.get_quest(quest_id)
        self._require_creator(quest, requester_id, "submit allocations for")
        if quest.status != QuestStatus.ENDED:
            raise NotFinalizedError()
        pool = pool_key_for(quest)
        if pool is None:
            raise PoolNotInitializedError()

        tx_hashes = []
        for step in self.pending_steps(quest):
            datum = self.pool.current(pool).datum
            if step.address in datum.eligible:
                logger.info("[submit_allocations] step already applied on-chain", extra={
                    "quest_id": quest_id, "position": step.position,
                })
            elif self.progress.wallet_claimed(quest_id, step.address):
                # claimed allocations leave the datum; a claim proves the step landed
                logger.info("[submit_allocations] step already claimed", extra={
                    "quest_id": quest_id, "position": step.position,
                })
            elif step.status == AllocationStatus.SUBMITTED and step.tx_hash:
                self.pool.await_confirmation(step.tx_hash)
            else:
                step.tx_hash = self.pool.add_eligible(pool, step.address, step.amount)
                step.status = AllocationStatus.SUBMITTED
                self.db.commit()
                tx_hashes.append(step.tx_hash)
                self.pool.await_confirmation(step.tx_hash)

            step.status = AllocationStatus.CONFIRMED
            quest.allocation_cursor = step.position + 1
            self.db.commit()

        remaining = len(self.pending_steps(quest))
        logger.info("[submit_allocations] done", extra={
            "quest_id": quest_id, "submitted": len(tx_hashes), "remaining": remaining,
        })
        return SubmitAllocationsOut(quest_id=quest_id, tx_hashes=tx_hashes, remaining=remaining)
