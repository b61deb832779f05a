from __future__ import annotations
import struct

import pytest

from vhcwallet.constants import TxSerializeType, TxTree
from vhcwallet.transaction import NULL_VALUE_IN, Transaction, TransactionDecodeError, TxInput, \
    TxOutput
from vhcwallet.types import OutPoint


PREV_HASH = bytes(range(32))

# A full serialization of a version 1 transaction with one input and one output.
FULL_TRANSACTION_HEX = (
    "01000000"                                                          # version, full
    "01"                                                                # input count
    "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"  # previous hash
    "02000000"                                                          # previous index
    "01"                                                                # tree
    "ffffffff"                                                          # sequence
    "01"                                                                # output count
    "a086010000000000"                                                  # value
    "0000"                                                              # script version
    "0251ac"                                                            # script
    "00000000"                                                          # lock time
    "10000000"                                                          # expiry
    "01"                                                                # witness count
    "40420f0000000000"                                                  # value in
    "64000000"                                                          # block height
    "03000000"                                                          # block index
    "020102"                                                            # signature script
)


def _transaction() -> Transaction:
    transaction_input = TxInput(prev_hash=PREV_HASH, prev_index=2, tree=TxTree.STAKE,
        value_in=1_000_000, block_height=100, block_index=3, signature_script=b"\x01\x02")
    return Transaction(inputs=[ transaction_input ],
        outputs=[ TxOutput(value=100_000, script=b"\x51\xac") ], expiry=16)


def test_full_serialization() -> None:
    assert _transaction().to_hex() == FULL_TRANSACTION_HEX


def test_full_deserialization() -> None:
    transaction = Transaction.from_hex(FULL_TRANSACTION_HEX)
    assert transaction == _transaction()
    assert transaction.inputs[0].outpoint == OutPoint(PREV_HASH, 2, TxTree.STAKE)
    assert transaction.expiry == 16


def test_prefix_excludes_witness() -> None:
    transaction = _transaction()
    prefix = transaction.prefix_to_bytes()
    transaction.inputs[0].signature_script = b"\x99" * 70
    transaction.inputs[0].value_in = 5
    assert transaction.prefix_to_bytes() == prefix


def test_no_witness_serialization() -> None:
    transaction = _transaction()
    transaction.serialize_type = TxSerializeType.NO_WITNESS
    data = transaction.to_bytes()
    assert data[:4] == struct.pack("<I", 1 | (1 << 16))
    assert data[4:] == transaction.prefix_to_bytes()

    parsed = Transaction.from_bytes(data)
    assert parsed.serialize_type == TxSerializeType.NO_WITNESS
    assert parsed.inputs[0].signature_script == b""
    assert parsed.inputs[0].value_in == NULL_VALUE_IN


def test_from_outpoint() -> None:
    outpoint = OutPoint(PREV_HASH, 7, TxTree.REGULAR)
    transaction_input = TxInput.from_outpoint(outpoint, value_in=55)
    assert transaction_input.outpoint == outpoint
    assert transaction_input.value_in == 55
    assert transaction_input.signature_script == b""


@pytest.mark.parametrize("hex_text", (
    # Trailing data.
    FULL_TRANSACTION_HEX + "00",
    # Witness only serialization.
    "01000200" + FULL_TRANSACTION_HEX[8:],
    # Unknown serialization type.
    "01000700" + FULL_TRANSACTION_HEX[8:],
    # Witness count differs from the input count.
    FULL_TRANSACTION_HEX.replace("1000000001", "1000000002"),
    # More inputs than the data could hold.
    "01000000fd1027" + FULL_TRANSACTION_HEX[10:],
))
def test_deserialization_errors(hex_text: str) -> None:
    with pytest.raises(TransactionDecodeError):
        Transaction.from_hex(hex_text)


@pytest.mark.parametrize("length", (0, 3, 40, len(FULL_TRANSACTION_HEX) // 2 - 1))
def test_truncated_transaction(length: int) -> None:
    data = bytes.fromhex(FULL_TRANSACTION_HEX)[:length]
    with pytest.raises((TransactionDecodeError, struct.error)):
        Transaction.from_bytes(data)
