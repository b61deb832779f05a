"""
Resolving the previous outputs spent by a partially specified transaction and signing it.

The scripts for the spent outputs are gathered from three places, each only filling in outputs
that an earlier source did not provide:

1. The inputs explicitly given by the caller.
2. The wallet, which the signing primitive consults for any outputs it has recorded itself.
3. The consensus node, which is asked about every remaining output concurrently.
"""

from __future__ import annotations
import asyncio
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from bitcoinx import hash_to_hex_str, PrivateKey, SigHash

from .chain_rpc import rpc_client_from_backend
from .exceptions import ServerConnectionError, WalletError
from .interfaces import ChainRPCClient, NetworkBackend, Wallet
from .logs import logs
from .rpc_error import ERR_NO_NETWORK, RPCError, rpc_errorf, RPCErrorCode
from .transaction import Transaction, TransactionDecodeError
from .types import OutPoint, RawTxInput, SignRawTransactionErrorDict, \
    SignRawTransactionResultDict, SignedTransactionDict, SigningResult
from .util import decode_hex_str, hash_from_str


logger = logs.get_logger("signing")

STAKE_VOTE_FLAG = "ssgen"
STAKE_REVOCATION_FLAG = "ssrtx"

SIGHASH_FLAGS: Mapping[str, int] = MappingProxyType({
    "ALL": SigHash.ALL,
    "NONE": SigHash.NONE,
    "SINGLE": SigHash.SINGLE,
    "ALL|ANYONECANPAY": SigHash.ALL | SigHash.ANYONE_CAN_PAY,
    "NONE|ANYONECANPAY": SigHash.NONE | SigHash.ANYONE_CAN_PAY,
    "SINGLE|ANYONECANPAY": SigHash.SINGLE | SigHash.ANYONE_CAN_PAY,
    STAKE_VOTE_FLAG: SigHash.ALL,
    STAKE_REVOCATION_FLAG: SigHash.ALL,
})


def parse_hash_type(flags: str) -> int:
    """
    Raises `RPCError` (INVALID_PARAMETER) for anything but the known signature hash flags.
    """
    try:
        return int(SIGHASH_FLAGS[flags])
    except KeyError:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "invalid sighash flag")


def decode_transaction(raw_tx: str) -> Transaction:
    """
    Raises `RPCError` (DESERIALIZATION_ERROR) if the text is not a serialized transaction.
    """
    transaction_bytes = decode_hex_str(raw_tx)
    try:
        return Transaction.from_bytes(transaction_bytes)
    except (TransactionDecodeError, ValueError) as exc:
        raise RPCError(RPCErrorCode.DESERIALIZATION_ERROR, str(exc))
    except Exception as exc:
        # The packing helpers raise `struct.error` on truncated data.
        raise RPCError(RPCErrorCode.DESERIALIZATION_ERROR, f"malformed transaction: {exc}")


def _explicit_scripts(wallet: Wallet, inputs: Sequence[RawTxInput], collect_redeem_scripts: bool,
        previous_scripts: dict[OutPoint, bytes],
        redeem_scripts_by_address: dict[str, bytes]) -> None:
    for raw_input in inputs:
        try:
            tx_hash = hash_from_str(raw_input.txid)
        except RPCError as exc:
            raise RPCError(RPCErrorCode.INVALID_PARAMETER, exc.message)
        script = decode_hex_str(raw_input.script_pub_key)

        # A given redeem script is only used with given keys. Otherwise the wallet signs with
        # the redeem scripts it already knows.
        if collect_redeem_scripts:
            redeem_script = decode_hex_str(raw_input.redeem_script)
            address = wallet.codec.script_hash_address(redeem_script)
            redeem_scripts_by_address[wallet.codec.encode_address(address)] = redeem_script

        previous_scripts[OutPoint(tx_hash, raw_input.vout, raw_input.tree)] = script


def _request_previous_outputs(client: ChainRPCClient, transaction: Transaction, flags: str,
        previous_scripts: dict[OutPoint, bytes]) \
            -> dict[OutPoint, asyncio.Task[dict[str, Any] | None]]:
    tasks: dict[OutPoint, asyncio.Task[dict[str, Any] | None]] = {}
    for input_index, transaction_input in enumerate(transaction.inputs):
        # The first input of a vote is the stakebase, which spends nothing.
        if input_index == 0 and flags == STAKE_VOTE_FLAG:
            continue
        outpoint = transaction_input.outpoint
        if outpoint in previous_scripts or outpoint in tasks:
            continue
        tasks[outpoint] = asyncio.create_task(client.get_tx_out(outpoint.tx_hash,
            outpoint.index, outpoint.tree))
    return tasks


def _collect_previous_outputs(tasks: dict[OutPoint, asyncio.Task[dict[str, Any] | None]],
        previous_scripts: dict[OutPoint, bytes]) -> None:
    for outpoint, task in tasks.items():
        result = task.result()
        # The node gives no result for outputs that are spent or that it does not know about.
        if result is None:
            continue
        try:
            script_hex = result["scriptPubKey"]["hex"]
        except (KeyError, TypeError):
            raise rpc_errorf(RPCErrorCode.DESERIALIZATION_ERROR,
                "gettxout result for %s has no output script", outpoint)
        previous_scripts[outpoint] = decode_hex_str(script_hex)


def decode_private_keys(wallet: Wallet, priv_keys: Sequence[str]) -> dict[str, PrivateKey]:
    """
    Map each of the given keys by the encoded address of its public key.

    Raises `RPCError` (DESERIALIZATION_ERROR) for keys that cannot be decoded.
    Raises `RPCError` (INVALID_PARAMETER) for keys encoded for another network.
    """
    keys_by_address: dict[str, PrivateKey] = {}
    for text in priv_keys:
        try:
            decoded_wif = wallet.codec.decode_wif(text)
        except ValueError as exc:
            raise RPCError(RPCErrorCode.DESERIALIZATION_ERROR, str(exc))
        if decoded_wif.network_name != wallet.chain_params.name:
            raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "key intended for different network")
        address = wallet.codec.public_key_address(decoded_wif.private_key.public_key)
        keys_by_address[wallet.codec.encode_address(address)] = decoded_wif.private_key
    return keys_by_address


async def resolve_and_sign(wallet: Wallet, network: NetworkBackend | None, raw_tx: str,
        flags: str="ALL", inputs: Sequence[RawTxInput] | None=None,
        priv_keys: Sequence[str] | None=None) -> SigningResult:
    """
    Sign what can be signed of the given serialized transaction.

    Inputs that cannot be signed do not fail the call, they are reported in the result. The
    transaction is returned with every signature that could be made, so it can be passed on to
    other signers.

    Raises `RPCError` for malformed arguments, and any error the consensus node raised while
    looking up spent outputs.
    """
    transaction = decode_transaction(raw_tx)
    hash_type = parse_hash_type(flags)

    previous_scripts: dict[OutPoint, bytes] = {}
    redeem_scripts_by_address: dict[str, bytes] = {}
    _explicit_scripts(wallet, inputs or [], bool(priv_keys), previous_scripts,
        redeem_scripts_by_address)

    tasks: dict[OutPoint, asyncio.Task[dict[str, Any] | None]] = {}
    client: ChainRPCClient | None = None
    if network is not None:
        try:
            client = rpc_client_from_backend(network)
        except WalletError:
            logger.debug("network backend cannot look up previous outputs")
    if client is not None:
        tasks = _request_previous_outputs(client, transaction, flags, previous_scripts)
        logger.debug("requested %d previous outputs", len(tasks))

    try:
        keys_by_address: dict[str, PrivateKey] = {}
        if priv_keys is not None:
            keys_by_address = decode_private_keys(wallet, priv_keys)
        if tasks:
            await asyncio.gather(*tasks.values())
    except BaseException:
        for task in tasks.values():
            task.cancel()
        # Every lookup has to be awaited so that no failure goes unretrieved.
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        raise
    _collect_previous_outputs(tasks, previous_scripts)

    errors = await wallet.sign_transaction(transaction, hash_type, previous_scripts,
        keys_by_address, redeem_scripts_by_address)
    if errors:
        logger.debug("signed transaction with %d of %d inputs unsigned", len(errors),
            len(transaction.inputs))
    return SigningResult(transaction, errors)


def signing_result_to_dict(result: SigningResult) -> SignRawTransactionResultDict:
    error_entries: list[SignRawTransactionErrorDict] = []
    for signature_error in result.errors:
        transaction_input = result.transaction.inputs[signature_error.input_index]
        error_entries.append({
            "txid": hash_to_hex_str(transaction_input.prev_hash),
            "vout": transaction_input.prev_index,
            "scriptSig": transaction_input.signature_script.hex(),
            "sequence": transaction_input.sequence,
            "error": str(signature_error.error),
        })
    return {
        "hex": result.transaction.to_hex(),
        "complete": result.complete,
        "errors": error_entries,
    }


async def sign_transactions(wallet: Wallet, network: NetworkBackend | None,
        raw_txs: Sequence[str], send: bool) -> list[SignedTransactionDict]:
    """
    Sign each transaction in turn with the wallet's keys, and optionally publish those that were
    completely signed. A transaction the network refuses is reported as unsent.
    """
    results = [ await resolve_and_sign(wallet, network, raw_tx) for raw_tx in raw_txs ]

    if send and network is None:
        raise ERR_NO_NETWORK.exception()

    signed_transactions: list[SignedTransactionDict] = []
    for result in results:
        entry: SignedTransactionDict = {
            "signingresult": signing_result_to_dict(result),
            "sent": False,
        }
        if send and result.complete:
            assert network is not None
            try:
                tx_hash = await wallet.publish_transaction(result.transaction, network)
            except (RPCError, ServerConnectionError, WalletError) as exc:
                logger.error("failed to publish signed transaction: %s", exc)
                entry["txhash"] = ""
            else:
                entry["sent"] = True
                entry["txhash"] = hash_to_hex_str(tx_hash)
        signed_transactions.append(entry)
    return signed_transactions
