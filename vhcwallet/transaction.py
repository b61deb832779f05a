# vhcwallet - stake-capable wallet daemon
# Copyright (C) 2019-2020 The ElectrumSV Developers
# Copyright (C) 2024 The vhcwallet developers
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""
Transaction serialization for the network's wire format.

Unlike the single serialization of the Bitcoin format, a transaction here is made up of a prefix
(the inputs' previous outputs and sequence numbers, the outputs, the lock time and expiry) and a
witness (the value, block location and signature script of each input). The serialization type
is carried in the upper 16 bits of the version field. Only the full serialization has both.
"""

from __future__ import annotations
from io import BytesIO
import struct
from typing import Callable

import attr
from bitcoinx import pack_byte, pack_le_int64, pack_le_uint16, pack_le_uint32, pack_list, \
    pack_varbytes, pack_varint, read_le_int64, read_le_uint16, read_le_uint32, read_varint

from .constants import DEFAULT_SCRIPT_VERSION, TxSerializeType, TxTree
from .types import OutPoint


ReadBytesFunc = Callable[[int], bytes]

CURRENT_TX_VERSION = 1
MAX_TX_IN_SEQUENCE_NUM = 0xffffffff
NULL_BLOCK_HEIGHT = 0
NULL_BLOCK_INDEX = 0xffffffff
NULL_VALUE_IN = -1

# The smallest possible serialized sizes, used to reject absurd element counts before any
# allocation is attempted.
MIN_TX_IN_PREFIX_SIZE = 32 + 4 + 1 + 4
MIN_TX_OUT_SIZE = 8 + 2 + 1


class TransactionDecodeError(ValueError):
    pass


def _read_exact(read: ReadBytesFunc, length: int) -> bytes:
    data = read(length)
    if len(data) != length:
        raise TransactionDecodeError(f"unexpected end of data, wanted {length} bytes "
            f"got {len(data)}")
    return data


def _read_varbytes(read: ReadBytesFunc) -> bytes:
    return _read_exact(read, read_varint(read))


def _read_count(read: ReadBytesFunc, minimum_size: int, remaining: int) -> int:
    count = read_varint(read)
    if count * minimum_size > remaining:
        raise TransactionDecodeError(f"element count {count} exceeds the data length")
    return count


@attr.s(slots=True)
class TxInput:
    prev_hash: bytes = attr.ib()
    prev_index: int = attr.ib()
    tree: int = attr.ib(default=TxTree.REGULAR)
    sequence: int = attr.ib(default=MAX_TX_IN_SEQUENCE_NUM)
    # Witness fields.
    value_in: int = attr.ib(default=NULL_VALUE_IN)
    block_height: int = attr.ib(default=NULL_BLOCK_HEIGHT)
    block_index: int = attr.ib(default=NULL_BLOCK_INDEX)
    signature_script: bytes = attr.ib(default=b"")

    @property
    def outpoint(self) -> OutPoint:
        return OutPoint(self.prev_hash, self.prev_index, self.tree)

    @classmethod
    def from_outpoint(cls, outpoint: OutPoint, value_in: int=NULL_VALUE_IN,
            signature_script: bytes=b"") -> TxInput:
        return cls(prev_hash=outpoint.tx_hash, prev_index=outpoint.index, tree=outpoint.tree,
            value_in=value_in, signature_script=signature_script)

    def prefix_to_bytes(self) -> bytes:
        return b''.join((
            self.prev_hash,
            pack_le_uint32(self.prev_index),
            pack_byte(self.tree & 0xff),
            pack_le_uint32(self.sequence),
        ))

    def witness_to_bytes(self) -> bytes:
        return b''.join((
            pack_le_int64(self.value_in),
            pack_le_uint32(self.block_height),
            pack_le_uint32(self.block_index),
            pack_varbytes(self.signature_script),
        ))

    @classmethod
    def read_prefix(cls, read: ReadBytesFunc) -> TxInput:
        prev_hash = _read_exact(read, 32)
        prev_index = read_le_uint32(read)
        tree = struct.unpack("<b", _read_exact(read, 1))[0]
        sequence = read_le_uint32(read)
        return cls(prev_hash=prev_hash, prev_index=prev_index, tree=tree, sequence=sequence)

    def read_witness(self, read: ReadBytesFunc) -> None:
        self.value_in = read_le_int64(read)
        self.block_height = read_le_uint32(read)
        self.block_index = read_le_uint32(read)
        self.signature_script = _read_varbytes(read)


@attr.s(slots=True)
class TxOutput:
    value: int = attr.ib()
    script: bytes = attr.ib()
    version: int = attr.ib(default=DEFAULT_SCRIPT_VERSION)

    def to_bytes(self) -> bytes:
        return b''.join((
            pack_le_int64(self.value),
            pack_le_uint16(self.version),
            pack_varbytes(self.script),
        ))

    @classmethod
    def read(cls, read: ReadBytesFunc) -> TxOutput:
        value = read_le_int64(read)
        version = read_le_uint16(read)
        script = _read_varbytes(read)
        return cls(value=value, script=script, version=version)


@attr.s(slots=True)
class Transaction:
    version: int = attr.ib(default=CURRENT_TX_VERSION)
    inputs: list[TxInput] = attr.ib(default=attr.Factory(list))
    outputs: list[TxOutput] = attr.ib(default=attr.Factory(list))
    locktime: int = attr.ib(default=0)
    expiry: int = attr.ib(default=0)
    serialize_type: TxSerializeType = attr.ib(default=TxSerializeType.FULL)

    @classmethod
    def read(cls, read: ReadBytesFunc, total_length: int) -> Transaction:
        """
        Raises `TransactionDecodeError` or `struct.error` if the data is not a valid
            transaction.
        """
        raw_version = read_le_uint32(read)
        version = raw_version & 0xffff
        try:
            serialize_type = TxSerializeType(raw_version >> 16)
        except ValueError:
            raise TransactionDecodeError(f"unknown serialization type {raw_version >> 16}")

        transaction = cls(version=version, serialize_type=serialize_type)
        if serialize_type == TxSerializeType.ONLY_WITNESS:
            raise TransactionDecodeError("witness only serialization is not a transaction")

        input_count = _read_count(read, MIN_TX_IN_PREFIX_SIZE, total_length)
        transaction.inputs = [ TxInput.read_prefix(read) for _i in range(input_count) ]
        output_count = _read_count(read, MIN_TX_OUT_SIZE, total_length)
        transaction.outputs = [ TxOutput.read(read) for _i in range(output_count) ]
        transaction.locktime = read_le_uint32(read)
        transaction.expiry = read_le_uint32(read)

        if serialize_type == TxSerializeType.FULL:
            witness_count = read_varint(read)
            if witness_count != input_count:
                raise TransactionDecodeError(f"mismatched witness count {witness_count} "
                    f"for {input_count} inputs")
            for transaction_input in transaction.inputs:
                transaction_input.read_witness(read)
        return transaction

    @classmethod
    def from_bytes(cls, raw: bytes) -> Transaction:
        stream = BytesIO(raw)
        transaction = cls.read(stream.read, len(raw))
        if stream.tell() != len(raw):
            raise TransactionDecodeError(f"{len(raw) - stream.tell()} unexpected trailing bytes")
        return transaction

    @classmethod
    def from_hex(cls, text: str) -> Transaction:
        return cls.from_bytes(bytes.fromhex(text))

    def prefix_to_bytes(self) -> bytes:
        return b''.join((
            pack_list(self.inputs, TxInput.prefix_to_bytes),
            pack_list(self.outputs, TxOutput.to_bytes),
            pack_le_uint32(self.locktime),
            pack_le_uint32(self.expiry),
        ))

    def to_bytes(self) -> bytes:
        parts = [ pack_le_uint32(self.version | (self.serialize_type << 16)) ]
        parts.append(self.prefix_to_bytes())
        if self.serialize_type == TxSerializeType.FULL:
            parts.append(pack_varint(len(self.inputs)))
            parts.extend(transaction_input.witness_to_bytes()
                for transaction_input in self.inputs)
        return b''.join(parts)

    def to_hex(self) -> str:
        return self.to_bytes().hex()

    def total_output_value(self) -> int:
        return sum(output.value for output in self.outputs)
