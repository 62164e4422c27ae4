"""
Reward pool state machine.

The module-level functions are the pure transitions of the pool datum
(Initialize, AddEligible, Claim, Withdraw). They validate the same rules the
on-chain validator enforces and return a ``PoolTransition`` describing the
continuing pool output and any payouts.

``RewardPoolClient`` drives those transitions against a ``LedgerService``:
it always re-reads the current pool UTxO right before building, retries
submission with exponential backoff when the UTxO was spent underneath it,
and polls for confirmation without treating a slow confirmation as failure.
"""
import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from questhub.chain.ledger import LedgerService
from questhub.chain.pool import (
    Payout,
    PoolDatum,
    PoolKey,
    PoolRedeemer,
    PoolTransition,
    PoolUtxo,
    TokenIdentity,
    UnsignedTx,
)
from questhub.core.clock import to_posix_ms
from questhub.core.config import Settings
from questhub.core.errors import (
    AuthorizationError,
    ConfirmationPendingError,
    DuplicateAllocationError,
    InsufficientPoolFundsError,
    NotEligibleError,
    PoolConflictError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
    UtxoConflictError,
)
from questhub.core.logging import get_logger

logger = get_logger("questhub.services.reward_pool")


# ---- Transitions ------------------------------------------------------------

def initialize(owner_pub_key_hash: str, token: TokenIdentity, total_rewards: int, deadline_ms: int,
               min_lovelace: int) -> PoolTransition:
    if total_rewards <= 0:
        raise InsufficientPoolFundsError("Reward pool must lock a positive token amount")
    datum = PoolDatum(
        owner_pub_key_hash=owner_pub_key_hash,
        token=token,
        total_rewards=total_rewards,
        deadline=deadline_ms,
        eligible={},
    )
    return PoolTransition(
        redeemer=PoolRedeemer("Initialize"),
        datum=datum,
        pool_lovelace=min_lovelace,
        pool_tokens=total_rewards,
    )


def add_eligible(utxo: PoolUtxo, address: str, amount: int) -> PoolTransition:
    datum = utxo.datum
    if amount <= 0:
        raise InsufficientPoolFundsError("Allocation amount must be positive")
    if address in datum.eligible:
        raise DuplicateAllocationError(f"Address {address} already has an allocation")
    if amount > datum.uncommitted:
        raise InsufficientPoolFundsError(
            f"Allocation of {amount} exceeds uncommitted pool balance {datum.uncommitted}"
        )
    eligible = dict(datum.eligible)
    eligible[address] = amount
    return PoolTransition(
        redeemer=PoolRedeemer("AddEligible", address=address, amount=amount),
        datum=replace(datum, eligible=eligible),
        pool_lovelace=utxo.lovelace,
        pool_tokens=utxo.token_quantity,
    )


def claim(utxo: PoolUtxo, address: str) -> PoolTransition:
    datum = utxo.datum
    amount = datum.allocation_for(address)
    if amount <= 0:
        raise NotEligibleError()
    eligible = {addr: amt for addr, amt in datum.eligible.items() if addr != address}
    return PoolTransition(
        redeemer=PoolRedeemer("Claim", address=address, amount=amount),
        datum=replace(datum, eligible=eligible, total_rewards=datum.total_rewards - amount),
        pool_lovelace=utxo.lovelace,
        pool_tokens=utxo.token_quantity - amount,
        payouts=(Payout(address=address, tokens=amount),),
    )


def withdraw(utxo: PoolUtxo, owner_pub_key_hash: str, owner_address: str, min_lovelace: int) -> PoolTransition:
    datum = utxo.datum
    if owner_pub_key_hash != datum.owner_pub_key_hash:
        raise AuthorizationError("Only the pool owner can withdraw")

    redeemer = PoolRedeemer("Withdraw", address=owner_address, amount=datum.uncommitted)
    if not datum.eligible:
        # nothing left to honour: close the pool and return everything
        return PoolTransition(
            redeemer=redeemer,
            datum=None,
            pool_lovelace=0,
            pool_tokens=0,
            payouts=(Payout(owner_address, lovelace=utxo.lovelace, tokens=utxo.token_quantity),),
            required_signer=owner_pub_key_hash,
        )

    amount = datum.uncommitted
    excess_lovelace = max(utxo.lovelace - min_lovelace, 0)
    if amount == 0 and excess_lovelace == 0:
        raise InsufficientPoolFundsError("Nothing left to withdraw; all rewards are committed")
    return PoolTransition(
        redeemer=redeemer,
        datum=replace(datum, total_rewards=datum.committed),
        pool_lovelace=utxo.lovelace - excess_lovelace,
        pool_tokens=utxo.token_quantity - amount,
        payouts=(Payout(owner_address, lovelace=excess_lovelace, tokens=amount),),
        required_signer=owner_pub_key_hash,
    )


# ---- Chain driver -----------------------------------------------------------

def pool_key_for(quest) -> Optional[PoolKey]:
    """PoolKey of a quest row, or None before its pool was initialized."""
    if not quest.script_address:
        return None
    return PoolKey(
        script_address=quest.script_address,
        token=TokenIdentity(quest.token_policy_id, quest.token_name),
        deadline=to_posix_ms(quest.deadline),
    )


class RewardPoolClient:
    def __init__(
        self,
        ledger: LedgerService,
        max_attempts: int = 5,
        backoff_seconds: float = 2.0,
        confirmation_timeout: float = 60.0,
        poll_interval: float = 5.0,
        min_lovelace: int = 2_000_000,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.ledger = ledger
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self.min_lovelace = min_lovelace
        self.sleep = sleep
        self.monotonic = monotonic

    @classmethod
    def from_settings(cls, ledger: LedgerService, settings: Settings, **kwargs) -> "RewardPoolClient":
        return cls(
            ledger,
            max_attempts=settings.POOL_SUBMIT_MAX_ATTEMPTS,
            backoff_seconds=settings.POOL_RETRY_BACKOFF_SECONDS,
            confirmation_timeout=settings.CONFIRMATION_TIMEOUT_SECONDS,
            poll_interval=settings.CONFIRMATION_POLL_SECONDS,
            min_lovelace=settings.MIN_POOL_LOVELACE,
            **kwargs,
        )

    # ---- Reads --------------------------------------------------------------

    def current(self, pool: Optional[PoolKey]) -> PoolUtxo:
        if pool is None:
            raise PoolNotInitializedError()
        utxo = self.ledger.get_pool_utxo(pool)
        if utxo is None:
            raise PoolNotInitializedError(f"No reward pool UTxO found at {pool.script_address}")
        return utxo

    def eligible_amount(self, pool: Optional[PoolKey], address: str) -> int:
        return self.current(pool).datum.allocation_for(address)

    # ---- Submission ---------------------------------------------------------

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=30),
            retry=retry_if_exception_type(UtxoConflictError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )

    def _spend(self, pool: PoolKey, make_transition: Callable[[PoolUtxo], PoolTransition],
               change_address: Optional[str] = None) -> Tuple[str, PoolTransition]:
        """Fetch, build, sign, submit; rebuilt from a fresh UTxO on every conflict."""
        change_address = change_address or self._signer_change_address()
        try:
            for attempt in self._retrying():
                with attempt:
                    utxo = self.current(pool)
                    transition = make_transition(utxo)
                    tx = self.ledger.build_pool_tx(utxo, transition, change_address)
                    tx_hash = self.ledger.sign_and_submit(tx)
        except UtxoConflictError:
            logger.error("[pool] giving up after repeated UTxO conflicts", extra={
                "script_address": pool.script_address, "attempts": self.max_attempts,
            })
            raise PoolConflictError()

        logger.info(f"[pool] submitted {transition.redeemer.action}", extra={
            "script_address": pool.script_address, "tx_hash": tx_hash,
        })
        return tx_hash, transition

    def _signer_change_address(self) -> str:
        return self.ledger.get_used_addresses()[0]

    def await_confirmation(self, tx_hash: str) -> None:
        deadline = self.monotonic() + self.confirmation_timeout
        while True:
            if self.ledger.is_confirmed(tx_hash):
                return
            if self.monotonic() >= deadline:
                logger.warning("[pool] confirmation still pending", extra={"tx_hash": tx_hash})
                raise ConfirmationPendingError(tx_hash)
            self.sleep(self.poll_interval)

    # ---- Operations ---------------------------------------------------------
    # Each submits and returns the tx hash; callers persist it, then await_confirmation().

    def initialize(self, owner_pub_key_hash: str, token: TokenIdentity, total_rewards: int, deadline_ms: int,
                   change_address: Optional[str] = None) -> Tuple[str, PoolKey]:
        transition = initialize(owner_pub_key_hash, token, total_rewards, deadline_ms, self.min_lovelace)
        pool = PoolKey(self.ledger.script_address(), token, deadline_ms)
        if self.ledger.get_pool_utxo(pool) is not None:
            raise PoolAlreadyInitializedError()
        tx = self.ledger.build_pool_tx(None, transition, change_address or self._signer_change_address())
        tx_hash = self.ledger.sign_and_submit(tx)
        logger.info("[pool] submitted Initialize", extra={"script_address": pool.script_address, "tx_hash": tx_hash})
        return tx_hash, pool

    def add_eligible(self, pool: PoolKey, address: str, amount: int, change_address: Optional[str] = None) -> str:
        tx_hash, _ = self._spend(pool, lambda utxo: add_eligible(utxo, address, amount), change_address)
        return tx_hash

    def claim(self, pool: PoolKey, address: str, change_address: Optional[str] = None) -> Tuple[str, int]:
        tx_hash, transition = self._spend(pool, lambda utxo: claim(utxo, address), change_address)
        return tx_hash, transition.redeemer.amount

    def withdraw(self, pool: PoolKey, owner_pub_key_hash: str, owner_address: str) -> Tuple[str, int, bool]:
        tx_hash, transition = self._spend(
            pool,
            lambda utxo: withdraw(utxo, owner_pub_key_hash, owner_address, self.min_lovelace),
        )
        return tx_hash, transition.redeemer.amount, transition.datum is None

    def build_allocation_chain(self, pool: PoolKey, allocations: Sequence[Tuple[str, int]],
                               change_address: Optional[str] = None) -> List[UnsignedTx]:
        """Unsigned AddEligible transactions, each spending the output of the previous one."""
        change_address = change_address or self._signer_change_address()
        utxo = self.current(pool)
        txs: List[UnsignedTx] = []
        for address, amount in allocations:
            tx = self.ledger.build_pool_tx(utxo, add_eligible(utxo, address, amount), change_address)
            txs.append(tx)
            utxo = tx.predicted_pool_utxo()
        return txs
