from __future__ import annotations
import asyncio
import os
from typing import Any

from bitcoinx import Address, BitcoinTestnet, hash160, Ops, P2PKH_Address, P2SH_Address, \
    pack_byte, PrivateKey, PublicKey, push_item

from vhcwallet.chainparams import ChainParams, TESTNET_PARAMS
from vhcwallet.constants import GapPolicy
from vhcwallet.exceptions import ErrorKind, InvalidPassword, WalletError
from vhcwallet.interfaces import TicketRecord
from vhcwallet.script import parse_multisig_script, to_multisig_script_bytes
from vhcwallet.transaction import Transaction, TxInput, TxOutput
from vhcwallet.types import Balances, DecodedWIF, OutPoint, P2SHOutputInfo, SignatureError, \
    TicketPurchaseRequest


REDEEM_FEE = 1000
FAKE_TIP_HASH = bytes(range(32))


def random_hash() -> bytes:
    return os.urandom(32)


class FakeCodec:
    """Encodes addresses the way the Bitcoin test network does."""
    network = BitcoinTestnet

    def decode_address(self, text: str) -> Address:
        try:
            return Address.from_string(text, self.network)
        except Exception as exc:
            raise ValueError(str(exc))

    def encode_address(self, address: Address) -> str:
        return address.to_string()

    def decode_wif(self, text: str) -> DecodedWIF:
        network_name, _, key_hex = text.partition(":")
        if not key_hex:
            raise ValueError("malformed private key")
        return DecodedWIF(PrivateKey.from_hex(key_hex), network_name)

    def script_hash_address(self, script: bytes) -> Address:
        return P2SH_Address(hash160(script), self.network)

    def public_key_address(self, public_key: PublicKey) -> Address:
        return P2PKH_Address(public_key.hash160(), self.network)


def encode_wif(private_key: PrivateKey, network_name: str=TESTNET_PARAMS.name) -> str:
    return f"{network_name}:{private_key.to_hex()}"


def signature_message(transaction: Transaction, input_index: int) -> bytes:
    return transaction.prefix_to_bytes() + input_index.to_bytes(4, "little")


class FakeWallet:
    """
    A wallet that really signs with the keys and redeem scripts it holds, so that tests can check
    what was signed. The signature scripts are standard shaped but the signatures commit only to
    the transaction prefix and the input index.
    """

    def __init__(self, chain_params: ChainParams=TESTNET_PARAMS) -> None:
        self.chain_params = chain_params
        self.codec = FakeCodec()
        self.keys: dict[str, PrivateKey] = {}
        self.own_redeem_scripts: list[bytes] = []
        self.p2sh_outputs: dict[OutPoint, P2SHOutputInfo] = {}
        self.events: list[str] = []
        self.sign_call_count = 0
        self.tip_height = 1000
        self.passphrase = b"passphrase"
        self.is_locked = True
        self.spendable = 0
        self.ticket_fee = 10_000
        self.relay_fee_value = 10_000
        self.purchase_requests: list[TicketPurchaseRequest] = []
        self.purchase_error: Exception | None = None
        self.tickets: list[TicketRecord] = []
        self.revoked_hashes: list[bytes] = []

    # Test setup helpers.

    def add_key(self) -> tuple[PrivateKey, Address]:
        private_key = PrivateKey.from_random()
        address = self.codec.public_key_address(private_key.public_key)
        self.keys[self.codec.encode_address(address)] = private_key
        return private_key, address

    def add_multisig_output(self, redeem_script: bytes, value: int=100_000,
            address: Address | None=None) -> P2SHOutputInfo:
        multisig_script = parse_multisig_script(redeem_script)
        assert multisig_script is not None
        if address is None:
            address = self.codec.script_hash_address(redeem_script)
        if redeem_script not in self.own_redeem_scripts:
            self.own_redeem_scripts.append(redeem_script)
        p2sh_output = P2SHOutputInfo(redeem_script=redeem_script,
            threshold=multisig_script.threshold, key_count=multisig_script.key_count,
            address=address, outpoint=OutPoint(random_hash(), 0), output_amount=value)
        self.p2sh_outputs[p2sh_output.outpoint] = p2sh_output
        return p2sh_output

    # Collaborator methods.

    def main_chain_tip(self) -> tuple[bytes, int]:
        return FAKE_TIP_HASH, self.tip_height

    def locked(self) -> bool:
        return self.is_locked

    def lock(self) -> None:
        self.is_locked = True

    async def unlock(self, passphrase: bytes, timeout: float | None) -> None:
        if passphrase != self.passphrase:
            raise InvalidPassword()
        self.is_locked = False

    def relay_fee(self) -> int:
        return self.relay_fee_value

    def ticket_fee_increment(self) -> int:
        return self.ticket_fee

    async def account_balance(self, account: int, min_conf: int) -> Balances:
        return Balances(account=account, spendable=self.spendable, total=self.spendable)

    async def new_internal_address(self, account: int, gap_policy: GapPolicy) -> Address:
        _private_key, address = self.add_key()
        return address

    async def redeem_scripts(self) -> list[bytes]:
        return list(self.own_redeem_scripts)

    async def fetch_p2sh_multisig_output(self, outpoint: OutPoint) -> P2SHOutputInfo:
        p2sh_output = self.p2sh_outputs.get(outpoint)
        if p2sh_output is None:
            raise WalletError(ErrorKind.NOT_EXIST, f"no multisig output {outpoint}")
        return p2sh_output

    async def unspent_multisig_credits_for_address(self, address: Address) \
            -> list[P2SHOutputInfo]:
        return [ p2sh_output for p2sh_output in self.p2sh_outputs.values()
            if p2sh_output.address.to_script_bytes() == address.to_script_bytes()
                and not p2sh_output.is_spent ]

    async def prepare_redeem_multisig_output(self, transaction: Transaction,
            p2sh_output: P2SHOutputInfo, destination: Address) -> None:
        transaction.outputs.append(TxOutput(value=p2sh_output.output_amount - REDEEM_FEE,
            script=destination.to_script_bytes()))

    async def sign_transaction(self, transaction: Transaction, hash_type: int,
            previous_scripts: dict[OutPoint, bytes], keys_by_address: dict[str, PrivateKey],
            redeem_scripts_by_address: dict[str, bytes]) -> list[SignatureError]:
        self.sign_call_count += 1
        self.events.append("sign")

        keys = list(self.keys.values()) + list(keys_by_address.values())
        redeem_scripts = list(self.own_redeem_scripts) + list(redeem_scripts_by_address.values())
        errors: list[SignatureError] = []
        for input_index, transaction_input in enumerate(transaction.inputs):
            script = previous_scripts.get(transaction_input.outpoint)
            if script is None:
                errors.append(SignatureError(input_index,
                    WalletError(ErrorKind.NOT_EXIST, "unknown previous output script")))
                continue
            message = signature_message(transaction, input_index)
            signature_script, complete = self._sign_input(script, message, hash_type, keys,
                redeem_scripts)
            if signature_script is not None:
                transaction_input.signature_script = signature_script
            if not complete:
                errors.append(SignatureError(input_index,
                    WalletError(ErrorKind.NOT_EXIST, "missing key for previous output script")))
        return errors

    def _sign_input(self, script: bytes, message: bytes, hash_type: int,
            keys: list[PrivateKey], redeem_scripts: list[bytes]) -> tuple[bytes | None, bool]:
        for private_key in keys:
            address = self.codec.public_key_address(private_key.public_key)
            if address.to_script_bytes() == script:
                return (push_item(private_key.sign(message) + pack_byte(hash_type)) +
                    push_item(private_key.public_key.to_bytes()), True)

        for redeem_script in redeem_scripts:
            if self.codec.script_hash_address(redeem_script).to_script_bytes() != script:
                continue
            multisig_script = parse_multisig_script(redeem_script)
            assert multisig_script is not None
            signatures: list[bytes] = []
            for public_key_bytes in multisig_script.public_keys:
                for private_key in keys:
                    if private_key.public_key.to_bytes() == public_key_bytes:
                        signatures.append(private_key.sign(message) + pack_byte(hash_type))
                        break
                if len(signatures) == multisig_script.threshold:
                    break
            signature_script = pack_byte(Ops.OP_0) + \
                b"".join(push_item(signature) for signature in signatures) + \
                push_item(redeem_script)
            return signature_script, len(signatures) == multisig_script.threshold
        return None, False

    async def purchase_tickets(self, request: TicketPurchaseRequest) -> list[bytes]:
        self.purchase_requests.append(request)
        if self.purchase_error is not None:
            raise self.purchase_error
        return [ random_hash() for _i in range(request.ticket_count) ]

    async def unspent_tickets(self) -> list[TicketRecord]:
        return list(self.tickets)

    async def revoke_ticket_hashes(self, ticket_hashes: list[bytes],
            network: Any) -> list[bytes]:
        self.revoked_hashes.extend(ticket_hashes)
        return [ random_hash() for _ticket_hash in ticket_hashes ]


class InstrumentedRPCClient:
    """
    A consensus node client that answers output lookups from a table. Every lookup waits until
    `expected_lookups` are in flight, so lookups that are made one after another never complete.
    """

    def __init__(self, outputs: dict[OutPoint, bytes], events: list[str],
            expected_lookups: int=0) -> None:
        self.outputs = outputs
        self.events = events
        self.expected_lookups = expected_lookups
        self.lookups: list[OutPoint] = []
        self.missed_flags: list[bool] = []
        self.help_text = ""
        self._all_started = asyncio.Event()

    async def get_tx_out(self, tx_hash: bytes, index: int, tree: int,
            include_mempool: bool=True) -> dict[str, Any] | None:
        outpoint = OutPoint(tx_hash, index, tree)
        self.lookups.append(outpoint)
        self.events.append("lookup-start")
        if len(self.lookups) >= self.expected_lookups:
            self._all_started.set()
        await self._all_started.wait()
        self.events.append("lookup-end")
        script = self.outputs.get(outpoint)
        if script is None:
            return None
        return { "value": 1.0, "scriptPubKey": { "hex": script.hex() } }

    async def raw_request(self, method: str, params: list[Any] | dict[str, Any]) -> Any:
        self.events.append(method)
        return { "method": method, "params": params }

    async def exists_missed_tickets(self, ticket_hashes: list[bytes]) -> list[bool]:
        return self.missed_flags[:len(ticket_hashes)]

    async def help(self, command: str | None=None) -> str:
        return self.help_text


def make_transaction(outpoints: list[OutPoint], value: int=50_000) -> Transaction:
    transaction = Transaction()
    for outpoint in outpoints:
        transaction.inputs.append(TxInput.from_outpoint(outpoint, value_in=value))
    destination = P2PKH_Address(PrivateKey.from_random().public_key.hash160(), BitcoinTestnet)
    transaction.outputs.append(TxOutput(value=value * len(outpoints) - 1000,
        script=destination.to_script_bytes()))
    return transaction


def make_multisig_script(threshold: int, key_count: int) -> tuple[bytes, list[PrivateKey]]:
    private_keys = [ PrivateKey.from_random() for _i in range(key_count) ]
    script = to_multisig_script_bytes([ private_key.public_key.to_bytes()
        for private_key in private_keys ], threshold)
    return script, private_keys
