from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, func
from questhub.database import Base


class LinkVisit(Base):
    __tablename__ = "link_visits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    link = Column(String, nullable=False)
    visited_at = Column(DateTime, server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "link", name="_user_link_uc"),)
