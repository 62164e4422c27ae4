# services/progress_ledger.py
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from questhub.core.clock import Clock, as_utc, utcnow
from questhub.core.errors import QuestNotFoundError, TaskExpiredError, TaskNotFoundError
from questhub.core.logging import get_logger
from questhub.models.progress import CompletedTask, ProgressEntry, ProgressStatus
from questhub.models.quests import Quest, QuestStatus, QuestTask
from questhub.schemas.progress_schema import CompletedTaskOut, ProgressOut

logger = get_logger("questhub.services.progress_ledger")


@dataclass
class RecordOutcome:
    progress: ProgressOut
    created: bool
    message: str


def is_expired(quest: Quest, now: datetime) -> bool:
    return quest.status == QuestStatus.ENDED or now >= as_utc(quest.deadline)


class ProgressLedger:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    # ---- Reads --------------------------------------------------------------

    def get_quest(self, quest_id: int) -> Quest:
        quest = self.db.query(Quest).filter(Quest.id == quest_id).first()
        if not quest:
            raise QuestNotFoundError()
        return quest

    def get_task(self, quest: Quest, task_index: int) -> QuestTask:
        task = self.db.query(QuestTask).filter_by(quest_id=quest.id, position=task_index).first()
        if not task:
            raise TaskNotFoundError(f"Task {task_index} not found in quest {quest.id}")
        return task

    def get_entry(self, quest_id: int, user_id: str) -> Optional[ProgressEntry]:
        return self.db.query(ProgressEntry).filter_by(quest_id=quest_id, user_id=user_id).first()

    def list_entries(self, quest_id: int) -> List[ProgressEntry]:
        return (
            self.db.query(ProgressEntry)
            .filter(ProgressEntry.quest_id == quest_id)
            .order_by(ProgressEntry.id)
            .all()
        )

    def completed_tasks(self, quest_id: int, user_id: str) -> List[CompletedTask]:
        return (
            self.db.query(CompletedTask)
            .filter_by(quest_id=quest_id, user_id=user_id)
            .order_by(CompletedTask.task_index)
            .all()
        )

    def is_completed(self, quest_id: int, user_id: str, task_index: int) -> bool:
        return self.db.query(CompletedTask).filter_by(
            quest_id=quest_id, user_id=user_id, task_index=task_index
        ).first() is not None

    def total_points(self, quest_id: int) -> int:
        # always computed from the rows, never cached
        return self.db.query(func.coalesce(func.sum(ProgressEntry.points_collected), 0)).filter(
            ProgressEntry.quest_id == quest_id
        ).scalar()

    def progress_out(self, quest_id: int, user_id: str) -> ProgressOut:
        entry = self.get_entry(quest_id, user_id)
        if not entry:
            return ProgressOut(quest_id=quest_id, user_id=user_id)
        return ProgressOut(
            quest_id=quest_id,
            user_id=user_id,
            wallet_address=entry.wallet_address,
            tasks_completed=[CompletedTaskOut.model_validate(t) for t in self.completed_tasks(quest_id, user_id)],
            points_collected=entry.points_collected,
            status=entry.status,
        )

    # ---- Writes -------------------------------------------------------------

    def _ensure_entry(self, quest_id: int, user_id: str, wallet_address: Optional[str]) -> None:
        if self.get_entry(quest_id, user_id):
            return
        self.db.add(ProgressEntry(
            quest_id=quest_id,
            user_id=user_id,
            wallet_address=wallet_address,
            points_collected=0,
            status=ProgressStatus.PENDING,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            # created by a concurrent submission for the same participant
            self.db.rollback()

    def record_completion(
        self,
        quest_id: int,
        user_id: str,
        task_index: int,
        proof: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> RecordOutcome:
        quest = self.get_quest(quest_id)
        if is_expired(quest, self.clock()):
            raise TaskExpiredError()
        task = self.get_task(quest, task_index)

        self._ensure_entry(quest_id, user_id, wallet_address)

        self.db.add(CompletedTask(
            quest_id=quest_id,
            user_id=user_id,
            task_index=task_index,
            proof=proof,
            awarded_points=task.points,
            completed_at=self.clock().replace(tzinfo=None),
        ))
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"[record_completion] task {task_index} already credited", extra={
                "quest_id": quest_id, "user_id": user_id,
            })
            return RecordOutcome(
                progress=self.progress_out(quest_id, user_id),
                created=False,
                message="Task already completed.",
            )

        values = {"points_collected": ProgressEntry.points_collected + task.points}
        if wallet_address:
            values["wallet_address"] = wallet_address
        self.db.execute(
            update(ProgressEntry)
            .where(ProgressEntry.quest_id == quest_id, ProgressEntry.user_id == user_id)
            .values(**values)
        )
        self.db.commit()
        self.db.expire_all()

        logger.info(f"[record_completion] +{task.points} points", extra={
            "quest_id": quest_id, "user_id": user_id, "task_index": task_index,
        })
        return RecordOutcome(
            progress=self.progress_out(quest_id, user_id),
            created=True,
            message=f"Task verified. {task.points} points awarded.",
        )

    def mark_verified(self, quest_id: int, user_ids: List[str]) -> None:
        if not user_ids:
            return
        self.db.execute(
            update(ProgressEntry)
            .where(
                ProgressEntry.quest_id == quest_id,
                ProgressEntry.user_id.in_(user_ids),
                ProgressEntry.status == ProgressStatus.PENDING,
            )
            .values(status=ProgressStatus.VERIFIED)
        )

    def mark_rewarded(self, quest_id: int, user_id: str, tx_hash: str) -> bool:
        """Conditional transition to ``rewarded``; False if it was already rewarded."""
        result = self.db.execute(
            update(ProgressEntry)
            .where(
                ProgressEntry.quest_id == quest_id,
                ProgressEntry.user_id == user_id,
                ProgressEntry.status != ProgressStatus.REWARDED,
            )
            .values(
                status=ProgressStatus.REWARDED,
                reward_tx_hash=tx_hash,
                rewarded_at=self.clock().replace(tzinfo=None),
            )
        )
        self.db.commit()
        self.db.expire_all()
        return result.rowcount == 1

    def mark_claim_submitted(self, quest_id: int, wallet_address: str, tx_hash: str, amount: int) -> None:
        """Record a broadcast claim on every unrewarded entry paid through ``wallet_address``."""
        self.db.execute(
            update(ProgressEntry)
            .where(
                ProgressEntry.quest_id == quest_id,
                ProgressEntry.wallet_address == wallet_address,
                ProgressEntry.status != ProgressStatus.REWARDED,
            )
            .values(claim_tx_hash=tx_hash, claim_amount=amount)
        )
        self.db.commit()
        self.db.expire_all()

    def wallet_claimed(self, quest_id: int, wallet_address: str) -> bool:
        """True once a claim for ``wallet_address`` was confirmed or broadcast."""
        return self.db.query(ProgressEntry).filter(
            ProgressEntry.quest_id == quest_id,
            ProgressEntry.wallet_address == wallet_address,
            or_(ProgressEntry.status == ProgressStatus.REWARDED, ProgressEntry.claim_tx_hash.isnot(None)),
        ).first() is not None
