from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from questhub.database import Base


class AllocationStatus:
    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"


class Allocation(Base):
    __tablename__ = "allocations"

    id = Column(Integer, primary_key=True, index=True)
    quest_id = Column(Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)   # submission order, compared against Quest.allocation_cursor
    user_id = Column(String, nullable=False)
    address = Column(String, nullable=False)
    amount = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default=AllocationStatus.PENDING)
    tx_hash = Column(String(64), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("quest_id", "position", name="_allocation_position_uc"),
        UniqueConstraint("quest_id", "address", name="_allocation_address_uc"),
    )
