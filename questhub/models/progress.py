from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from questhub.database import Base


class ProgressStatus:
    PENDING = "pending"
    VERIFIED = "verified"
    REWARDED = "rewarded"


class ProgressEntry(Base):
    __tablename__ = "progress_entries"

    id = Column(Integer, primary_key=True, index=True)
    quest_id = Column(Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    wallet_address = Column(String, nullable=True)
    points_collected = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default=ProgressStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)
    rewarded_at = Column(DateTime, nullable=True)
    reward_tx_hash = Column(String(64), nullable=True)
    # claim broadcast but not yet confirmed; re-polled on the next claim attempt
    claim_tx_hash = Column(String(64), nullable=True)
    claim_amount = Column(BigInteger, nullable=True)

    __table_args__ = (UniqueConstraint("quest_id", "user_id", name="_progress_quest_user_uc"),)


class CompletedTask(Base):
    __tablename__ = "completed_tasks"

    id = Column(Integer, primary_key=True, index=True)
    quest_id = Column(Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, nullable=False)
    task_index = Column(Integer, nullable=False)
    proof = Column(Text, nullable=True)
    awarded_points = Column(Integer, nullable=False)
    completed_at = Column(DateTime, default=datetime.utcnow)

    # one credit per task per participant
    __table_args__ = (UniqueConstraint("quest_id", "user_id", "task_index", name="_completed_task_uc"),)
