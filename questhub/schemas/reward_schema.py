from typing import List, Optional

from pydantic import BaseModel


class AllocationOut(BaseModel):
    address: str
    amount: int


class UnsignedTxOut(BaseModel):
    tx_id: str
    cbor_hex: str
    address: str
    amount: int


class FinalizeOut(BaseModel):
    quest_id: int
    allocations: List[AllocationOut]
    unsigned_transactions: List[UnsignedTxOut]
    unallocated: int


class SubmitAllocationsOut(BaseModel):
    quest_id: int
    tx_hashes: List[str]
    remaining: int


class EligibleRewardOut(BaseModel):
    eligible: bool
    amount: int
    message: str


class ClaimRequest(BaseModel):
    wallet_address: str


class ClaimOut(BaseModel):
    tx_hash: str
    amount: int
    message: str


class WithdrawOut(BaseModel):
    tx_hash: str
    amount: int
    pool_closed: bool
    message: Optional[str] = None
