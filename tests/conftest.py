# tests/conftest.py
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from questhub.chain.pool import PoolKey, PoolUtxo, TxRef, UnsignedTx, WalletUtxo
from questhub.container.service_container import ServiceContainer
from questhub.core.config import Settings
from questhub.core.errors import UtxoConflictError
from questhub.database import Base
from questhub.models import allocation, link_visit, progress, quests, user  # noqa: F401
from questhub.models.quests import Quest, QuestStatus, QuestTask
from questhub.models.user import User
from questhub.services.orchestrator import QuestOrchestrator
from questhub.services.reward_pool import RewardPoolClient

POLICY_ID = "a0" * 28
SCRIPT_ADDRESS = "addr_test1wrewardpoolscript"
SIGNER_ADDRESS = "addr_test1vpoolowner"
OWNER_PKH = "ab" * 28
ALICE_WALLET = "addr_test1qalice"
BOB_WALLET = "addr_test1qbob"


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeLedger:
    """In-memory ledger: a set of pool UTxOs plus wallet UTxOs, with scriptable conflicts."""

    def __init__(self):
        self.pool_utxos: List[PoolUtxo] = []
        self.wallets: Dict[str, List[WalletUtxo]] = {}
        self.built: List[UnsignedTx] = []
        self.submitted: List[UnsignedTx] = []
        self.confirmed = set()
        self.conflicts = 0
        self.hold_confirmations = False
        self._counter = 0

    def script_address(self) -> str:
        return SCRIPT_ADDRESS

    def owner_pub_key_hash(self) -> str:
        return OWNER_PKH

    def get_utxos_at(self, address: str) -> List[WalletUtxo]:
        return list(self.wallets.get(address, []))

    def get_pool_utxo(self, pool: PoolKey) -> Optional[PoolUtxo]:
        for utxo in self.pool_utxos:
            if pool.matches(utxo.datum):
                return utxo
        return None

    def build_pool_tx(self, utxo, transition, change_address) -> UnsignedTx:
        self._counter += 1
        tx_id = f"{self._counter:064x}"
        tx = UnsignedTx(tx_id=tx_id, cbor_hex="84a4" + tx_id, transition=transition,
                        spends=utxo.ref if utxo else None)
        self.built.append(tx)
        return tx

    def sign_and_submit(self, tx: UnsignedTx) -> str:
        if self.conflicts > 0:
            self.conflicts -= 1
            raise UtxoConflictError()
        if tx.spends is not None:
            spent = [u for u in self.pool_utxos if u.ref == tx.spends]
            if not spent:
                raise UtxoConflictError()
            self.pool_utxos.remove(spent[0])
        created = tx.predicted_pool_utxo()
        if created is not None:
            self.pool_utxos.append(created)
        self.submitted.append(tx)
        if not self.hold_confirmations:
            self.confirmed.add(tx.tx_id)
        return tx.tx_id

    def is_confirmed(self, tx_hash: str) -> bool:
        return tx_hash in self.confirmed

    def get_balance(self, address: str) -> Dict[str, int]:
        balance: Dict[str, int] = {}
        for utxo in self.get_utxos_at(address):
            for unit, qty in utxo.assets.items():
                balance[unit] = balance.get(unit, 0) + qty
        return balance

    def get_used_addresses(self) -> List[str]:
        return [SIGNER_ADDRESS]

    # helpers

    def give(self, address: str, unit: str, quantity: int = 1) -> None:
        self._counter += 1
        self.wallets.setdefault(address, []).append(
            WalletUtxo(TxRef(f"{self._counter:064x}", 0), address, {"lovelace": 5_000_000, unit: quantity})
        )

    def spend_pool_externally(self, pool: PoolKey) -> None:
        """Re-create the pool UTxO under a new ref, as if someone else spent it."""
        utxo = self.get_pool_utxo(pool)
        self._counter += 1
        self.pool_utxos.remove(utxo)
        self.pool_utxos.append(PoolUtxo(TxRef(f"{self._counter:064x}", 0), utxo.datum, utxo.lovelace,
                                        utxo.token_quantity))


class FakeTwitter:
    def __init__(self, followers=None, retweeters=None, likers=None, configured=True):
        self.followers = followers or {}
        self.retweeters = retweeters or {}
        self.likers = likers or {}
        self.configured = configured
        self.calls = []

    def is_follower(self, target_username: str, username: str) -> bool:
        self.calls.append(("followers", target_username, username))
        return username.lower() in {h.lower() for h in self.followers.get(target_username, ())}

    def has_retweeted(self, tweet_id: str, username: str) -> bool:
        self.calls.append(("retweeters", tweet_id, username))
        return username.lower() in self.retweeters.get(tweet_id, ())

    def has_liked(self, tweet_id: str, username: str) -> bool:
        self.calls.append(("likers", tweet_id, username))
        return username.lower() in self.likers.get(tweet_id, ())


class FakeDiscord:
    def __init__(self, members=None, own=None):
        self.members = members or {}
        self.own = own or {}
        self.calls = []

    def get_guild_member(self, guild_id: str, user_id: str):
        self.calls.append(("bot", guild_id, user_id))
        return self.members.get((guild_id, user_id))

    def get_own_membership(self, guild_id: str, access_token: str):
        self.calls.append(("oauth", guild_id, access_token))
        return self.own.get((guild_id, access_token))


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return MutableClock(datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def twitter():
    return FakeTwitter()


@pytest.fixture
def discord():
    return FakeDiscord()


@pytest.fixture
def pool_client(ledger):
    return RewardPoolClient(
        ledger,
        max_attempts=3,
        backoff_seconds=0,
        confirmation_timeout=0,
        poll_interval=0,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def services(ledger, twitter, discord, pool_client, clock):
    return ServiceContainer(
        settings=Settings(),
        ledger=ledger,
        twitter=twitter,
        discord=discord,
        pool=pool_client,
        clock=clock,
    )


@pytest.fixture
def orchestrator(db, services):
    return QuestOrchestrator(db, services)


@pytest.fixture
def make_user(db):
    def _make(uid: str, **fields) -> User:
        u = User(uid=uid, **fields)
        db.add(u)
        db.commit()
        db.refresh(u)
        return u
    return _make


@pytest.fixture
def make_quest(db, clock):
    def _make(reward: int = 1000, tasks=None, creator_uid: str = "creator", days: int = 7) -> Quest:
        quest = Quest(
            name="Cardano Hub launch",
            description="",
            reward=reward,
            token_policy_id=POLICY_ID,
            token_name="HUB",
            deadline=clock() + timedelta(days=days),
            status=QuestStatus.ACTIVE,
            creator_uid=creator_uid,
            admin_wallet_address=SIGNER_ADDRESS,
            allocation_cursor=0,
        )
        quest.tasks = [
            QuestTask(position=i, task_type=task_type, link=link, points=points)
            for i, (task_type, link, points) in enumerate(tasks or [("VisitWebsite", "https://cardanohub.id", 10)])
        ]
        db.add(quest)
        db.commit()
        db.refresh(quest)
        return quest
    return _make
