# questhub/chain/cardano.py
from __future__ import annotations

from typing import Dict, List, Optional

from blockfrost import ApiError
from pycardano import (
    Address,
    Asset,
    AssetName,
    BlockFrostChainContext,
    ExecutionUnits,
    MultiAsset,
    Network,
    PaymentSigningKey,
    PaymentVerificationKey,
    PlutusV2Script,
    Redeemer,
    ScriptHash,
    Transaction,
    TransactionBuilder,
    TransactionId,
    TransactionInput,
    TransactionOutput,
    UTxO,
    Value,
    VerificationKeyHash,
    VerificationKeyWitness,
    min_lovelace_post_alonzo,
    plutus_script_hash,
)
from pycardano.exception import DeserializeException, TransactionFailedException

from questhub.chain.plutus import datum_from_plutus, datum_to_plutus, redeemer_to_plutus
from questhub.chain.pool import (
    LOVELACE,
    PoolKey,
    PoolTransition,
    PoolUtxo,
    TokenIdentity,
    TxRef,
    UnsignedTx,
    WalletUtxo,
)
from questhub.core.config import Settings
from questhub.core.errors import ExternalServiceError, UtxoConflictError
from questhub.core.logging import get_logger

logger = get_logger("questhub.chain.cardano")

# Fixed budget so chained (not yet on-chain) pool inputs can be built without evaluation
DEFAULT_EX_UNITS = ExecutionUnits(mem=2_000_000, steps=800_000_000)

_CONFLICT_MARKERS = ("BadInputsUTxO", "ValueNotConservedUTxO", "already been included", "All inputs are spent")


class CardanoLedgerService:
    """LedgerService backed by pycardano and Blockfrost, signing with the pool owner key."""

    def __init__(self, settings: Settings):
        if not settings.BLOCKFROST_PROJECT_ID:
            raise ExternalServiceError("BLOCKFROST_PROJECT_ID is not configured")
        self.network = Network.MAINNET if settings.CARDANO_NETWORK.lower() == "mainnet" else Network.TESTNET
        self.context = BlockFrostChainContext(
            settings.BLOCKFROST_PROJECT_ID,
            network=self.network,
            base_url=settings.blockfrost_base_url(),
        )
        self.script = PlutusV2Script(bytes.fromhex(settings.REWARD_POOL_SCRIPT_CBOR))
        self._script_address = Address(plutus_script_hash(self.script), network=self.network)
        self.signing_key = PaymentSigningKey.load(settings.POOL_SIGNING_KEY_PATH)
        self.verification_key = PaymentVerificationKey.from_signing_key(self.signing_key)
        self.signer_address = Address(self.verification_key.hash(), network=self.network)

    # ---- Queries -----------------------------------------------------------

    def script_address(self) -> str:
        return self._script_address.encode()

    def owner_pub_key_hash(self) -> str:
        return self.verification_key.hash().payload.hex()

    def get_utxos_at(self, address: str) -> List[WalletUtxo]:
        try:
            utxos = self.context.utxos(address)
        except ApiError as e:
            if e.status_code == 404:
                return []
            logger.error("[get_utxos_at] Blockfrost error", extra={"address": address, "status": e.status_code})
            raise ExternalServiceError(f"Ledger query failed: {e}")
        return [
            WalletUtxo(
                ref=TxRef(str(u.input.transaction_id), u.input.index),
                address=address,
                assets=self._assets_of(u.output.amount),
            )
            for u in utxos
        ]

    def get_pool_utxo(self, pool: PoolKey) -> Optional[PoolUtxo]:
        try:
            utxos = self.context.utxos(pool.script_address)
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise ExternalServiceError(f"Ledger query failed: {e}")

        for u in utxos:
            if u.output.datum is None:
                continue
            try:
                datum = datum_from_plutus(u.output.datum)
            except DeserializeException:
                logger.debug("[get_pool_utxo] skipping foreign datum", extra={"utxo": str(u.input)})
                continue
            if not pool.matches(datum):
                continue
            assets = self._assets_of(u.output.amount)
            return PoolUtxo(
                ref=TxRef(str(u.input.transaction_id), u.input.index),
                datum=datum,
                lovelace=assets.get(LOVELACE, 0),
                token_quantity=assets.get(datum.token.unit, 0),
            )
        return None

    def is_confirmed(self, tx_hash: str) -> bool:
        try:
            self.context.api.transaction(tx_hash)
            return True
        except ApiError as e:
            if e.status_code == 404:
                return False
            raise ExternalServiceError(f"Ledger query failed: {e}")

    def get_balance(self, address: str) -> Dict[str, int]:
        balance: Dict[str, int] = {}
        for u in self.get_utxos_at(address):
            for unit, qty in u.assets.items():
                balance[unit] = balance.get(unit, 0) + qty
        return balance

    def get_used_addresses(self) -> List[str]:
        return [self.signer_address.encode()]

    # ---- Build / sign / submit ---------------------------------------------

    def build_pool_tx(
        self,
        utxo: Optional[PoolUtxo],
        transition: PoolTransition,
        change_address: str,
    ) -> UnsignedTx:
        token = transition.datum.token if transition.datum else (utxo.datum.token if utxo else None)
        builder = TransactionBuilder(self.context)

        if utxo is not None:
            builder.add_script_input(
                self._to_chain_utxo(utxo),
                script=self.script,
                redeemer=Redeemer(redeemer_to_plutus(transition.redeemer), DEFAULT_EX_UNITS),
            )
        builder.add_input_address(self.signer_address)

        # pool output first: chained builds rely on it being index 0
        if transition.datum is not None:
            builder.add_output(
                TransactionOutput(
                    self._script_address,
                    self._value(transition.pool_lovelace, transition.pool_tokens, token),
                    datum=datum_to_plutus(transition.datum),
                )
            )
        for payout in transition.payouts:
            output = TransactionOutput(
                Address.from_primitive(payout.address),
                self._value(payout.lovelace, payout.tokens, token),
            )
            # token-only payouts carry the ledger minimum, funded by the signer wallet
            if output.amount.coin == 0:
                output.amount.coin = min_lovelace_post_alonzo(output, self.context)
            builder.add_output(output)
        if transition.required_signer:
            builder.required_signers = [VerificationKeyHash(bytes.fromhex(transition.required_signer))]

        body = builder.build(change_address=Address.from_primitive(change_address))
        tx = Transaction(body, builder.build_witness_set())
        return UnsignedTx(
            tx_id=str(body.id),
            cbor_hex=tx.to_cbor_hex(),
            transition=transition,
            spends=utxo.ref if utxo else None,
        )

    def sign_and_submit(self, tx: UnsignedTx) -> str:
        signed = Transaction.from_cbor(tx.cbor_hex)
        signature = self.signing_key.sign(signed.transaction_body.hash())
        witness = VerificationKeyWitness(self.verification_key, signature)
        witnesses = signed.transaction_witness_set
        witnesses.vkey_witnesses = list(witnesses.vkey_witnesses or []) + [witness]

        try:
            self.context.submit_tx(signed)
        except TransactionFailedException as e:
            if any(marker in str(e) for marker in _CONFLICT_MARKERS):
                raise UtxoConflictError(f"Pool input {tx.spends} already spent")
            logger.error("[sign_and_submit] submission rejected", extra={"tx_id": tx.tx_id, "error": str(e)})
            raise ExternalServiceError(f"Transaction rejected: {e}")
        return tx.tx_id

    # ---- Helpers -----------------------------------------------------------

    def _to_chain_utxo(self, utxo: PoolUtxo) -> UTxO:
        return UTxO(
            TransactionInput(TransactionId(bytes.fromhex(utxo.ref.tx_hash)), utxo.ref.index),
            TransactionOutput(
                self._script_address,
                self._value(utxo.lovelace, utxo.token_quantity, utxo.datum.token),
                datum=datum_to_plutus(utxo.datum),
            ),
        )

    @staticmethod
    def _value(lovelace: int, tokens: int, token: Optional[TokenIdentity]) -> Value:
        if not tokens or token is None:
            return Value(lovelace)
        multi_asset = MultiAsset(
            {
                ScriptHash(bytes.fromhex(token.policy_id)): Asset(
                    {AssetName(token.token_name.encode("utf-8")): tokens}
                )
            }
        )
        return Value(lovelace, multi_asset)

    @staticmethod
    def _assets_of(amount) -> Dict[str, int]:
        if isinstance(amount, int):
            return {LOVELACE: amount}
        assets = {LOVELACE: amount.coin}
        for policy, names in (amount.multi_asset or {}).items():
            for name, qty in names.items():
                assets[policy.payload.hex() + name.payload.hex()] = qty
        return assets
