from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from questhub.database import Base


class QuestStatus:
    ACTIVE = "active"
    ENDED = "ended"


class Quest(Base):
    __tablename__ = "quests"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    reward = Column(BigInteger, nullable=False)                 # total token amount locked in the pool
    token_policy_id = Column(String(56), nullable=False)        # hex
    token_name = Column(String, nullable=False)                 # utf-8 asset name
    deadline = Column(DateTime(timezone=True), nullable=False)  # quest end date
    status = Column(String(16), nullable=False, default=QuestStatus.ACTIVE)
    creator_uid = Column(String, nullable=False, index=True)
    admin_wallet_address = Column(String, nullable=False)
    script_address = Column(String, nullable=True)              # set once the reward pool is initialized
    pool_tx_hash = Column(String(64), nullable=True)
    allocation_cursor = Column(Integer, nullable=False, default=0)  # next allocation to submit on-chain
    created_at = Column(DateTime, default=datetime.utcnow)

    tasks = relationship(
        "QuestTask", back_populates="quest", cascade="all, delete-orphan", order_by="QuestTask.position"
    )


class QuestTask(Base):
    __tablename__ = "quest_tasks"

    id = Column(Integer, primary_key=True, index=True)
    quest_id = Column(Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)     # taskIndex as seen by participants
    task_type = Column(String, nullable=False)     # e.g. "FollowTwitter", "JoinDiscord"
    link = Column(String, nullable=False)          # username(s), tweet URL, guild:role, URL or asset unit
    points = Column(Integer, nullable=False)

    quest = relationship("Quest", back_populates="tasks")

    __table_args__ = (UniqueConstraint("quest_id", "position", name="_quest_task_position_uc"),)
