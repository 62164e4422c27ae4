from typing import Dict, List, Optional, Protocol

from questhub.chain.pool import PoolKey, PoolTransition, PoolUtxo, UnsignedTx, WalletUtxo


class LedgerService(Protocol):
    """Minimal build/sign/submit/query contract the reward core depends on"""

    def script_address(self) -> str:
        """Address of the reward pool validator"""
        ...

    def owner_pub_key_hash(self) -> str:
        """Payment key hash of the signing wallet that owns new pools"""
        ...

    def get_utxos_at(self, address: str) -> List[WalletUtxo]:
        ...

    def get_pool_utxo(self, pool: PoolKey) -> Optional[PoolUtxo]:
        """Current UTxO carrying the datum of ``pool``, or None if there is none"""
        ...

    def build_pool_tx(
        self,
        utxo: Optional[PoolUtxo],
        transition: PoolTransition,
        change_address: str,
    ) -> UnsignedTx:
        """Build an unsigned transaction spending ``utxo`` (None for Initialize).

        Must place the continuing pool output, if any, at output index 0.
        """
        ...

    def sign_and_submit(self, tx: UnsignedTx) -> str:
        """Sign and broadcast; raises UtxoConflictError when an input is already spent"""
        ...

    def is_confirmed(self, tx_hash: str) -> bool:
        ...

    def get_balance(self, address: str) -> Dict[str, int]:
        ...

    def get_used_addresses(self) -> List[str]:
        ...
