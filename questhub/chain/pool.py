"""
Ledger-neutral value types for the reward pool.

Nothing here knows about a particular chain SDK: the pool state machine and
the finalization saga work on these, and ``LedgerService`` implementations
translate them to and from the SDK object model.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

LOVELACE = "lovelace"


@dataclass(frozen=True)
class TokenIdentity:
    policy_id: str   # hex
    token_name: str  # utf-8

    @property
    def asset_name_hex(self) -> str:
        return self.token_name.encode("utf-8").hex()

    @property
    def unit(self) -> str:
        return f"{self.policy_id}{self.asset_name_hex}"


@dataclass(frozen=True)
class PoolDatum:
    owner_pub_key_hash: str
    token: TokenIdentity
    total_rewards: int
    deadline: int  # POSIX milliseconds
    eligible: Dict[str, int] = field(default_factory=dict)

    @property
    def committed(self) -> int:
        return sum(self.eligible.values())

    @property
    def uncommitted(self) -> int:
        return self.total_rewards - self.committed

    @property
    def is_ended(self) -> bool:
        return self.total_rewards == 0

    def allocation_for(self, address: str) -> int:
        return self.eligible.get(address, 0)


@dataclass(frozen=True)
class PoolKey:
    """Locates one quest's pool among the UTxOs sitting at the shared script address."""
    script_address: str
    token: TokenIdentity
    deadline: int  # POSIX milliseconds

    def matches(self, datum: PoolDatum) -> bool:
        return datum.token == self.token and datum.deadline == self.deadline


@dataclass(frozen=True)
class TxRef:
    tx_hash: str
    index: int

    def __str__(self) -> str:
        return f"{self.tx_hash}#{self.index}"


@dataclass(frozen=True)
class PoolUtxo:
    ref: TxRef
    datum: PoolDatum
    lovelace: int
    token_quantity: int


@dataclass(frozen=True)
class WalletUtxo:
    ref: TxRef
    address: str
    assets: Dict[str, int]  # unit -> quantity, "lovelace" included

    def quantity_of(self, unit: str) -> int:
        return self.assets.get(unit, 0)


@dataclass(frozen=True)
class PoolRedeemer:
    action: str                     # Initialize | AddEligible | Claim | Withdraw
    address: Optional[str] = None
    amount: int = 0


@dataclass(frozen=True)
class Payout:
    address: str
    lovelace: int = 0
    tokens: int = 0


@dataclass(frozen=True)
class PoolTransition:
    redeemer: PoolRedeemer
    datum: Optional[PoolDatum]      # None: the pool UTxO is consumed without a continuing output
    pool_lovelace: int
    pool_tokens: int
    payouts: Tuple[Payout, ...] = ()
    required_signer: Optional[str] = None


@dataclass(frozen=True)
class UnsignedTx:
    tx_id: str
    cbor_hex: str
    transition: PoolTransition
    spends: Optional[TxRef] = None

    def predicted_pool_utxo(self) -> Optional[PoolUtxo]:
        """Pool output this transaction creates, always at output index 0."""
        if self.transition.datum is None:
            return None
        return PoolUtxo(
            ref=TxRef(self.tx_id, 0),
            datum=self.transition.datum,
            lovelace=self.transition.pool_lovelace,
            token_quantity=self.transition.pool_tokens,
        )
