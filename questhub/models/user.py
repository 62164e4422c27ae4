# models/user.py
from sqlalchemy import Column, Integer, String, Text
from questhub.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String, unique=True, index=True, nullable=False)   # identity provider uid
    display_name = Column(String, nullable=True)
    twitter_username = Column(String, nullable=True)                 # from X
    discord_user_id = Column(String, nullable=True)                  # from Discord OAuth
    discord_access_token = Column(Text, nullable=True)               # OAuth bearer, enables @me lookups
    wallet_address = Column(String, nullable=True)                   # Cardano bech32 address
