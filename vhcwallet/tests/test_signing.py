from __future__ import annotations
import asyncio
import gc
import unittest.mock

from bitcoinx import hash_to_hex_str, PrivateKey, PublicKey
import pytest

from vhcwallet.chain_rpc import RPCBackend
from vhcwallet.chainparams import TESTNET_PARAMS
from vhcwallet.exceptions import ServerConnectionError
from vhcwallet.rpc_error import RPCError, RPCErrorCode
from vhcwallet.script import script_ops
from vhcwallet.signing import parse_hash_type, resolve_and_sign, sign_transactions, \
    signing_result_to_dict, SIGHASH_FLAGS
from vhcwallet.transaction import Transaction
from vhcwallet.types import OutPoint, RawTxInput, SigningResult

from .util import encode_wif, FakeWallet, InstrumentedRPCClient, make_transaction, \
    random_hash, signature_message


def _raw_input(outpoint: OutPoint, script: bytes) -> RawTxInput:
    return RawTxInput(txid=hash_to_hex_str(outpoint.tx_hash), vout=outpoint.index,
        tree=outpoint.tree, script_pub_key=script.hex())


def _outside_key(wallet: FakeWallet) -> tuple[PrivateKey, bytes]:
    private_key = PrivateKey.from_random()
    script = wallet.codec.public_key_address(private_key.public_key).to_script_bytes()
    return private_key, script


def _count_valid_signatures(result: SigningResult) -> int:
    count = 0
    for input_index, transaction_input in enumerate(result.transaction.inputs):
        if not transaction_input.signature_script:
            continue
        pushes = [ data for _opcode, data, _offset in
            script_ops(transaction_input.signature_script) ]
        assert len(pushes) == 2
        signature, public_key_bytes = pushes
        assert signature is not None and public_key_bytes is not None
        public_key = PublicKey.from_bytes(public_key_bytes)
        if public_key.verify_der_signature(signature[:-1],
                signature_message(result.transaction, input_index)):
            count += 1
    return count


@pytest.mark.parametrize("flags", sorted(SIGHASH_FLAGS))
def test_parse_hash_type_valid(flags: str) -> None:
    assert parse_hash_type(flags) == SIGHASH_FLAGS[flags]


def test_parse_hash_type_stake_aliases_are_all() -> None:
    assert parse_hash_type("ssgen") == parse_hash_type("ALL")
    assert parse_hash_type("ssrtx") == parse_hash_type("ALL")


@pytest.mark.parametrize("flags", ("BOGUS", "all", "ALL|NONE", "", "ANYONECANPAY"))
async def test_resolve_and_sign_invalid_flags_async(wallet: FakeWallet, flags: str) -> None:
    transaction = make_transaction([ OutPoint(random_hash(), 0) ])
    with pytest.raises(RPCError) as exception_info:
        await resolve_and_sign(wallet, None, transaction.to_hex(), flags)
    assert exception_info.value.code == RPCErrorCode.INVALID_PARAMETER
    assert wallet.sign_call_count == 0


@pytest.mark.parametrize("raw_tx", ("zz", "00", "01000000ff"))
async def test_resolve_and_sign_malformed_transaction_async(wallet: FakeWallet,
        raw_tx: str) -> None:
    with pytest.raises(RPCError) as exception_info:
        await resolve_and_sign(wallet, None, raw_tx)
    assert exception_info.value.code == RPCErrorCode.DESERIALIZATION_ERROR
    assert wallet.sign_call_count == 0


@pytest.mark.parametrize("input_count", (1, 3, 6))
async def test_resolve_and_sign_explicit_inputs_and_keys_complete_async(wallet: FakeWallet,
        input_count: int) -> None:
    outpoints = [ OutPoint(random_hash(), i) for i in range(input_count) ]
    inputs: list[RawTxInput] = []
    wifs: list[str] = []
    for outpoint in outpoints:
        private_key, script = _outside_key(wallet)
        inputs.append(_raw_input(outpoint, script))
        wifs.append(encode_wif(private_key))
    transaction = make_transaction(outpoints)

    result = await resolve_and_sign(wallet, None, transaction.to_hex(), "ALL", inputs, wifs)

    assert result.complete
    assert result.errors == []
    assert _count_valid_signatures(result) == input_count
    result_dict = signing_result_to_dict(result)
    assert result_dict["complete"] is True
    assert result_dict["errors"] == []
    assert Transaction.from_hex(result_dict["hex"]).inputs[0].signature_script


async def test_resolve_and_sign_partial_failure_async(wallet: FakeWallet) -> None:
    outpoints = [ OutPoint(random_hash(), i) for i in range(5) ]
    inputs: list[RawTxInput] = []
    wifs: list[str] = []
    for i, outpoint in enumerate(outpoints):
        private_key, script = _outside_key(wallet)
        inputs.append(_raw_input(outpoint, script))
        # The keys of the second and fourth inputs are withheld.
        if i not in (1, 3):
            wifs.append(encode_wif(private_key))
    transaction = make_transaction(outpoints)

    result = await resolve_and_sign(wallet, None, transaction.to_hex(), "ALL", inputs, wifs)

    assert not result.complete
    assert [ signature_error.input_index for signature_error in result.errors ] == [ 1, 3 ]
    assert _count_valid_signatures(result) == 3
    result_dict = signing_result_to_dict(result)
    assert result_dict["complete"] is False
    assert len(result_dict["hex"]) > 0
    assert [ entry["txid"] for entry in result_dict["errors"] ] == \
        [ hash_to_hex_str(outpoints[1].tx_hash), hash_to_hex_str(outpoints[3].tx_hash) ]
    assert [ entry["vout"] for entry in result_dict["errors"] ] == [ 1, 3 ]


async def test_resolve_and_sign_wallet_keys_without_network_async(wallet: FakeWallet) -> None:
    # Spent outputs that were neither given nor can be looked up are left unsigned.
    _private_key, address = wallet.add_key()
    outpoints = [ OutPoint(random_hash(), 0), OutPoint(random_hash(), 1) ]
    inputs = [ _raw_input(outpoints[0], address.to_script_bytes()) ]
    transaction = make_transaction(outpoints)

    result = await resolve_and_sign(wallet, None, transaction.to_hex(), "ALL", inputs)

    assert [ signature_error.input_index for signature_error in result.errors ] == [ 1 ]
    assert _count_valid_signatures(result) == 1


async def test_resolve_and_sign_concurrent_lookups_before_signing_async(wallet: FakeWallet,
        events: list[str]) -> None:
    wallet.events = events
    outpoints = [ OutPoint(random_hash(), i) for i in range(5) ]
    outputs: dict[OutPoint, bytes] = {}
    for outpoint in outpoints:
        _private_key, address = wallet.add_key()
        outputs[outpoint] = address.to_script_bytes()
    client = InstrumentedRPCClient(outputs, events, expected_lookups=5)
    network = RPCBackend(client, TESTNET_PARAMS) # type: ignore[arg-type]
    transaction = make_transaction(outpoints)

    # Lookups made one at a time would never complete.
    result = await asyncio.wait_for(resolve_and_sign(wallet, network, transaction.to_hex()), 2)

    assert sorted(client.lookups) == sorted(outpoints)
    assert events == [ "lookup-start" ] * 5 + [ "lookup-end" ] * 5 + [ "sign" ]
    assert result.complete
    assert _count_valid_signatures(result) == 5


async def test_resolve_and_sign_explicit_inputs_are_not_looked_up_async(wallet: FakeWallet,
        events: list[str]) -> None:
    outpoints = [ OutPoint(random_hash(), i) for i in range(3) ]
    outputs: dict[OutPoint, bytes] = {}
    for outpoint in outpoints:
        _private_key, address = wallet.add_key()
        outputs[outpoint] = address.to_script_bytes()
    client = InstrumentedRPCClient(outputs, events, expected_lookups=2)
    network = RPCBackend(client, TESTNET_PARAMS) # type: ignore[arg-type]
    transaction = make_transaction(outpoints)
    inputs = [ _raw_input(outpoints[0], outputs[outpoints[0]]) ]

    result = await asyncio.wait_for(resolve_and_sign(wallet, network, transaction.to_hex(),
        "ALL", inputs), 2)

    assert sorted(client.lookups) == sorted(outpoints[1:])
    assert result.complete


async def test_resolve_and_sign_unknown_output_is_not_fatal_async(wallet: FakeWallet,
        events: list[str]) -> None:
    outpoints = [ OutPoint(random_hash(), i) for i in range(3) ]
    outputs: dict[OutPoint, bytes] = {}
    for outpoint in outpoints[:2]:
        _private_key, address = wallet.add_key()
        outputs[outpoint] = address.to_script_bytes()
    client = InstrumentedRPCClient(outputs, events, expected_lookups=3)
    network = RPCBackend(client, TESTNET_PARAMS) # type: ignore[arg-type]
    transaction = make_transaction(outpoints)

    result = await asyncio.wait_for(resolve_and_sign(wallet, network, transaction.to_hex()), 2)

    assert not result.complete
    assert [ signature_error.input_index for signature_error in result.errors ] == [ 2 ]


async def test_resolve_and_sign_vote_skips_stakebase_lookup_async(wallet: FakeWallet,
        events: list[str]) -> None:
    outpoints = [ OutPoint(bytes(32), 0xffffffff), OutPoint(random_hash(), 0),
        OutPoint(random_hash(), 1) ]
    client = InstrumentedRPCClient({}, events, expected_lookups=2)
    network = RPCBackend(client, TESTNET_PARAMS) # type: ignore[arg-type]
    transaction = make_transaction(outpoints)

    await asyncio.wait_for(resolve_and_sign(wallet, network, transaction.to_hex(), "ssgen"), 2)

    assert sorted(client.lookups) == sorted(outpoints[1:])


async def test_resolve_and_sign_lookup_transport_failure_is_fatal_async(
        wallet: FakeWallet) -> None:
    client = unittest.mock.Mock()
    client.get_tx_out = unittest.mock.AsyncMock(
        side_effect=ServerConnectionError("connection reset"))
    network = RPCBackend(client, TESTNET_PARAMS)
    transaction = make_transaction([ OutPoint(random_hash(), 0), OutPoint(random_hash(), 1) ])

    with pytest.raises(ServerConnectionError):
        await resolve_and_sign(wallet, network, transaction.to_hex())
    assert wallet.sign_call_count == 0


class StalledRPCClient:
    """Output lookups that fail after `failure_delays` seconds, or never complete."""

    def __init__(self, failure_delays: list[float | None]) -> None:
        self.failure_delays = failure_delays
        self.started = 0
        self.cancelled = 0

    async def get_tx_out(self, tx_hash: bytes, index: int, tree: int,
            include_mempool: bool=True) -> dict[str, object] | None:
        delay = self.failure_delays[self.started]
        self.started += 1
        try:
            await asyncio.sleep(3600 if delay is None else delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        raise ServerConnectionError("connection reset")


async def test_resolve_and_sign_cancelled_during_lookups_async(wallet: FakeWallet) -> None:
    client = StalledRPCClient([ None, None, None ])
    network = RPCBackend(client, TESTNET_PARAMS) # type: ignore[arg-type]
    transaction = make_transaction([ OutPoint(random_hash(), i) for i in range(3) ])

    task = asyncio.create_task(resolve_and_sign(wallet, network, transaction.to_hex()))
    while client.started < 3:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert client.cancelled == 3
    assert wallet.sign_call_count == 0


async def test_resolve_and_sign_lookup_failure_retrieves_other_lookups_async(
        wallet: FakeWallet) -> None:
    unhandled_contexts: list[dict[str, object]] = []
    loop = asyncio.get_running_loop()
    loop.set_exception_handler(lambda _loop, context: unhandled_contexts.append(context))
    try:
        client = StalledRPCClient([ 0, None, 0.01 ])
        network = RPCBackend(client, TESTNET_PARAMS) # type: ignore[arg-type]
        transaction = make_transaction([ OutPoint(random_hash(), i) for i in range(3) ])

        with pytest.raises(ServerConnectionError):
            await resolve_and_sign(wallet, network, transaction.to_hex())
        # The remaining lookups have finished by the time the call fails.
        assert client.cancelled == 2

        await asyncio.sleep(0.05)
        gc.collect()
    finally:
        loop.set_exception_handler(None)

    assert unhandled_contexts == []
    assert wallet.sign_call_count == 0


async def test_resolve_and_sign_key_for_other_network_async(wallet: FakeWallet) -> None:
    outpoint = OutPoint(random_hash(), 0)
    private_key, script = _outside_key(wallet)
    transaction = make_transaction([ outpoint ])

    with pytest.raises(RPCError) as exception_info:
        await resolve_and_sign(wallet, None, transaction.to_hex(), "ALL",
            [ _raw_input(outpoint, script) ], [ encode_wif(private_key, "mainnet") ])
    assert exception_info.value.code == RPCErrorCode.INVALID_PARAMETER
    assert exception_info.value.message == "key intended for different network"
    assert wallet.sign_call_count == 0


async def test_resolve_and_sign_undecodable_key_async(wallet: FakeWallet) -> None:
    transaction = make_transaction([ OutPoint(random_hash(), 0) ])
    with pytest.raises(RPCError) as exception_info:
        await resolve_and_sign(wallet, None, transaction.to_hex(), "ALL", [], [ "garbage" ])
    assert exception_info.value.code == RPCErrorCode.DESERIALIZATION_ERROR


async def test_resolve_and_sign_invalid_input_txid_async(wallet: FakeWallet) -> None:
    transaction = make_transaction([ OutPoint(random_hash(), 0) ])
    inputs = [ RawTxInput(txid="xyz", vout=0, tree=0, script_pub_key="") ]
    with pytest.raises(RPCError) as exception_info:
        await resolve_and_sign(wallet, None, transaction.to_hex(), "ALL", inputs)
    assert exception_info.value.code == RPCErrorCode.INVALID_PARAMETER


async def test_sign_transactions_send_requires_network_async(wallet: FakeWallet) -> None:
    transaction = make_transaction([ OutPoint(random_hash(), 0) ])
    with pytest.raises(RPCError) as exception_info:
        await sign_transactions(wallet, None, [ transaction.to_hex() ], True)
    assert exception_info.value.code == RPCErrorCode.CLIENT_NOT_CONNECTED


async def test_sign_transactions_publishes_complete_transactions_async(wallet: FakeWallet,
        rpc_backend: RPCBackend, rpc_client: InstrumentedRPCClient) -> None:
    _private_key, address = wallet.add_key()
    signable_outpoint = OutPoint(random_hash(), 0)
    unsignable_outpoint = OutPoint(random_hash(), 0)
    rpc_client.outputs[signable_outpoint] = address.to_script_bytes()
    published_hash = random_hash()
    publish_transaction = unittest.mock.AsyncMock(return_value=published_hash)
    wallet.publish_transaction = publish_transaction # type: ignore[attr-defined]

    raw_txs = [ make_transaction([ signable_outpoint ]).to_hex(),
        make_transaction([ unsignable_outpoint ]).to_hex() ]
    results = await asyncio.wait_for(sign_transactions(wallet, rpc_backend, raw_txs, True), 2)

    assert len(results) == 2
    assert results[0]["sent"] is True
    assert results[0]["txhash"] == hash_to_hex_str(published_hash)
    assert results[0]["signingresult"]["complete"] is True
    assert results[1]["sent"] is False
    assert "txhash" not in results[1]
    assert results[1]["signingresult"]["complete"] is False
    assert publish_transaction.call_count == 1


async def test_sign_transactions_publish_failure_is_reported_async(wallet: FakeWallet,
        rpc_backend: RPCBackend, rpc_client: InstrumentedRPCClient) -> None:
    _private_key, address = wallet.add_key()
    outpoint = OutPoint(random_hash(), 0)
    rpc_client.outputs[outpoint] = address.to_script_bytes()
    wallet.publish_transaction = unittest.mock.AsyncMock( # type: ignore[attr-defined]
        side_effect=ServerConnectionError("gone"))

    results = await asyncio.wait_for(sign_transactions(wallet, rpc_backend,
        [ make_transaction([ outpoint ]).to_hex() ], True), 2)

    assert results[0]["sent"] is False
    assert results[0]["txhash"] == ""
    assert results[0]["signingresult"]["complete"] is True
