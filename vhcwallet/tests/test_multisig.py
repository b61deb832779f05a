from __future__ import annotations

from bitcoinx import PrivateKey
import pytest

from vhcwallet import multisig
from vhcwallet.exceptions import ErrorKind, WalletError
from vhcwallet.rpc_error import RPCError, RPCErrorCode
from vhcwallet.script import script_ops
from vhcwallet.types import OutPoint, P2SHOutputInfo

from .util import FakeWallet, make_multisig_script, random_hash, REDEEM_FEE


def _give_keys(wallet: FakeWallet, private_keys: list[PrivateKey]) -> None:
    for private_key in private_keys:
        address = wallet.codec.public_key_address(private_key.public_key)
        wallet.keys[wallet.codec.encode_address(address)] = private_key


def _signature_pushes(signature_script: bytes) -> list[bytes | None]:
    return [ data for _opcode, data, _offset in script_ops(signature_script) ]


async def test_redeem_complete_async(wallet: FakeWallet) -> None:
    redeem_script, private_keys = make_multisig_script(2, 3)
    _give_keys(wallet, private_keys[:2])
    p2sh_output = wallet.add_multisig_output(redeem_script, 100_000)
    _destination_key, destination = wallet.add_key()

    result = await multisig.redeem(wallet, None, p2sh_output.outpoint, destination)

    assert result.complete
    assert wallet.sign_call_count == 1
    transaction = result.transaction
    assert [ transaction_input.outpoint for transaction_input in transaction.inputs ] == \
        [ p2sh_output.outpoint ]
    assert len(transaction.outputs) == 1
    assert transaction.outputs[0].value == 100_000 - REDEEM_FEE
    assert transaction.outputs[0].script == destination.to_script_bytes()
    pushes = _signature_pushes(transaction.inputs[0].signature_script)
    # The leading OP_0, two signatures and the redeem script.
    assert len(pushes) == 4
    assert pushes[-1] == redeem_script


async def test_redeem_partial_async(wallet: FakeWallet) -> None:
    redeem_script, private_keys = make_multisig_script(2, 3)
    _give_keys(wallet, private_keys[2:])
    p2sh_output = wallet.add_multisig_output(redeem_script)

    result = await multisig.redeem(wallet, None, p2sh_output.outpoint)

    assert not result.complete
    assert [ signature_error.input_index for signature_error in result.errors ] == [ 0 ]
    pushes = _signature_pushes(result.transaction.inputs[0].signature_script)
    assert len(pushes) == 3


async def test_redeem_defaults_to_internal_address_async(wallet: FakeWallet) -> None:
    redeem_script, private_keys = make_multisig_script(1, 1)
    _give_keys(wallet, private_keys)
    p2sh_output = wallet.add_multisig_output(redeem_script)
    key_count = len(wallet.keys)

    result = await multisig.redeem(wallet, None, p2sh_output.outpoint)

    assert result.complete
    assert len(wallet.keys) == key_count + 1
    assert result.transaction.outputs[0].script in [
        wallet.codec.decode_address(text).to_script_bytes() for text in wallet.keys ]


async def test_redeem_unknown_output_async(wallet: FakeWallet) -> None:
    with pytest.raises(WalletError) as exception_info:
        await multisig.redeem(wallet, None, OutPoint(random_hash(), 0))
    assert exception_info.value.kind == ErrorKind.NOT_EXIST
    assert wallet.sign_call_count == 0


async def test_redeem_not_multisig_async(wallet: FakeWallet) -> None:
    _private_key, address = wallet.add_key()
    redeem_script = address.to_script_bytes()
    p2sh_output = P2SHOutputInfo(redeem_script=redeem_script, threshold=1, key_count=1,
        address=wallet.codec.script_hash_address(redeem_script),
        outpoint=OutPoint(random_hash(), 0), output_amount=50_000)
    wallet.p2sh_outputs[p2sh_output.outpoint] = p2sh_output

    with pytest.raises(WalletError) as exception_info:
        await multisig.redeem(wallet, None, p2sh_output.outpoint)
    assert exception_info.value.kind == ErrorKind.INVALID
    assert wallet.sign_call_count == 0


async def test_redeem_all_respects_maximum_count_async(wallet: FakeWallet) -> None:
    redeem_script, private_keys = make_multisig_script(1, 2)
    _give_keys(wallet, private_keys)
    p2sh_outputs = [ wallet.add_multisig_output(redeem_script, 10_000 * (i + 1))
        for i in range(3) ]
    address = p2sh_outputs[0].address

    results = await multisig.redeem_all(wallet, None, address, 2)

    assert len(results) == 2
    assert [ result.transaction.inputs[0].outpoint for result in results ] == \
        [ p2sh_output.outpoint for p2sh_output in p2sh_outputs[:2] ]
    assert [ result.transaction.outputs[0].value for result in results ] == \
        [ 10_000 - REDEEM_FEE, 20_000 - REDEEM_FEE ]
    assert wallet.sign_call_count == 2


async def test_redeem_all_without_maximum_async(wallet: FakeWallet) -> None:
    redeem_script, private_keys = make_multisig_script(1, 1)
    _give_keys(wallet, private_keys)
    p2sh_outputs = [ wallet.add_multisig_output(redeem_script) for _i in range(3) ]
    # Outputs paying to other addresses are not included.
    other_script, other_keys = make_multisig_script(1, 1)
    _give_keys(wallet, other_keys)
    wallet.add_multisig_output(other_script)

    results = await multisig.redeem_all(wallet, None, p2sh_outputs[0].address)

    assert len(results) == 3
    assert all(result.complete for result in results)


async def test_redeem_all_zero_maximum_async(wallet: FakeWallet) -> None:
    redeem_script, _private_keys = make_multisig_script(1, 1)
    p2sh_output = wallet.add_multisig_output(redeem_script)

    assert await multisig.redeem_all(wallet, None, p2sh_output.address, 0) == []
    assert wallet.sign_call_count == 0


async def test_redeem_all_negative_maximum_async(wallet: FakeWallet) -> None:
    redeem_script, _private_keys = make_multisig_script(1, 1)
    p2sh_output = wallet.add_multisig_output(redeem_script)

    with pytest.raises(RPCError) as exception_info:
        await multisig.redeem_all(wallet, None, p2sh_output.address, -1)
    assert exception_info.value.code == RPCErrorCode.INVALID_PARAMETER


async def test_redeem_all_requires_script_hash_address_async(wallet: FakeWallet) -> None:
    _private_key, address = wallet.add_key()

    with pytest.raises(RPCError) as exception_info:
        await multisig.redeem_all(wallet, None, address)
    assert exception_info.value.code == RPCErrorCode.INVALID_PARAMETER
    assert exception_info.value.message == "address is not P2SH"
