"""PlutusData encoding of the reward pool datum and redeemers."""
from dataclasses import dataclass
from typing import Dict

from pycardano import Address, PlutusData, RawPlutusData

from questhub.chain.pool import PoolDatum, PoolRedeemer, TokenIdentity


@dataclass
class TokenIdentityData(PlutusData):
    CONSTR_ID = 0
    policy_id: bytes
    token_name: bytes


@dataclass
class RewardPoolDatumData(PlutusData):
    CONSTR_ID = 0
    owner: bytes
    token: TokenIdentityData
    total_rewards: int
    deadline: int
    eligible: Dict[bytes, int]


@dataclass
class AddEligible(PlutusData):
    CONSTR_ID = 0
    address: bytes
    amount: int


@dataclass
class Claim(PlutusData):
    CONSTR_ID = 1
    address: bytes


@dataclass
class Withdraw(PlutusData):
    CONSTR_ID = 2


def _address_bytes(address: str) -> bytes:
    return Address.from_primitive(address).to_primitive()


def _address_text(raw: bytes) -> str:
    return Address.from_primitive(raw).encode()


def datum_to_plutus(datum: PoolDatum) -> RewardPoolDatumData:
    return RewardPoolDatumData(
        owner=bytes.fromhex(datum.owner_pub_key_hash),
        token=TokenIdentityData(
            policy_id=bytes.fromhex(datum.token.policy_id),
            token_name=datum.token.token_name.encode("utf-8"),
        ),
        total_rewards=datum.total_rewards,
        deadline=datum.deadline,
        eligible={_address_bytes(addr): amount for addr, amount in datum.eligible.items()},
    )


def datum_from_plutus(raw) -> PoolDatum:
    if isinstance(raw, RawPlutusData):
        raw = RewardPoolDatumData.from_cbor(raw.to_cbor())
    elif not isinstance(raw, RewardPoolDatumData):
        raw = RewardPoolDatumData.from_cbor(raw)
    return PoolDatum(
        owner_pub_key_hash=raw.owner.hex(),
        token=TokenIdentity(
            policy_id=raw.token.policy_id.hex(),
            token_name=raw.token.token_name.decode("utf-8"),
        ),
        total_rewards=raw.total_rewards,
        deadline=raw.deadline,
        eligible={_address_text(addr): amount for addr, amount in raw.eligible.items()},
    )


def redeemer_to_plutus(redeemer: PoolRedeemer) -> PlutusData:
    if redeemer.action == "AddEligible":
        return AddEligible(address=_address_bytes(redeemer.address), amount=redeemer.amount)
    if redeemer.action == "Claim":
        return Claim(address=_address_bytes(redeemer.address))
    if redeemer.action == "Withdraw":
        return Withdraw()
    raise ValueError(f"Redeemer not applicable to action {redeemer.action}")
