from __future__ import annotations
import dataclasses
import struct
from typing import Generator, Sequence

from bitcoinx import Ops, pack_byte, push_int, push_item


ScriptOp = tuple[int, bytes | None, int]

COMPRESSED_PUBLIC_KEY_SIZE = 33
UNCOMPRESSED_PUBLIC_KEY_SIZE = 65
# Standard multisig scripts encode the key counts as small integer opcodes.
MAX_MULTISIG_KEYS = 16


@dataclasses.dataclass(frozen=True)
class MultisigScript:
    threshold: int
    public_keys: list[bytes]

    @property
    def key_count(self) -> int:
        return len(self.public_keys)


def script_ops(script: bytes) -> Generator[ScriptOp, None, None]:
    """
    Yield `(opcode, pushed data, offset after the op)` for each op in the script.

    Raises `ValueError` if a push runs past the end of the script.
    """
    i = 0
    length = len(script)
    while i < length:
        data = None
        opcode = script[i]
        i += 1

        if opcode <= Ops.OP_PUSHDATA4:
            size = opcode
            if opcode == Ops.OP_PUSHDATA1:
                if i + 1 > length:
                    raise ValueError("truncated OP_PUSHDATA1")
                size = script[i]
                i += 1
            elif opcode == Ops.OP_PUSHDATA2:
                if i + 2 > length:
                    raise ValueError("truncated OP_PUSHDATA2")
                (size,) = struct.unpack_from('<H', script, i)
                i += 2
            elif opcode == Ops.OP_PUSHDATA4:
                if i + 4 > length:
                    raise ValueError("truncated OP_PUSHDATA4")
                (size,) = struct.unpack_from('<I', script, i)
                i += 4
            if i + size > length:
                raise ValueError("push data exceeds script length")
            data = script[i:i + size]
            i += size

        yield opcode, data, i


def match_decoded(decoded: Sequence[ScriptOp], to_match: Sequence[int | Ops]) -> bool:
    if len(decoded) != len(to_match):
        return False
    for i in range(len(decoded)):
        # Ops below OP_PUSHDATA4 all just push data
        if (to_match[i] == Ops.OP_PUSHDATA4 and
                decoded[i][0] <= Ops.OP_PUSHDATA4 and decoded[i][0] > 0):
            continue
        if to_match[i] != decoded[i][0]:
            return False
    return True


def _small_int(opcode: int) -> int | None:
    if Ops.OP_1 <= opcode <= Ops.OP_16:
        return opcode - Ops.OP_1 + 1
    return None


def parse_multisig_script(script: bytes) -> MultisigScript | None:
    """
    Recognise a standard `OP_M <pubkey>... OP_N OP_CHECKMULTISIG` script. Anything else, including
    malformed scripts, gives `None`.
    """
    try:
        decoded = list(script_ops(script))
    except ValueError:
        return None

    if len(decoded) < 4 or decoded[-1][0] != Ops.OP_CHECKMULTISIG:
        return None
    threshold = _small_int(decoded[0][0])
    key_count = _small_int(decoded[-2][0])
    if threshold is None or key_count is None:
        return None
    if threshold > key_count or len(decoded) != key_count + 3:
        return None

    pattern: list[int | Ops] = [ decoded[0][0], *[Ops.OP_PUSHDATA4] * key_count,
        decoded[-2][0], Ops.OP_CHECKMULTISIG ]
    if not match_decoded(decoded, pattern):
        return None

    public_keys: list[bytes] = []
    for _opcode, data, _offset in decoded[1:-2]:
        assert data is not None
        if len(data) not in (COMPRESSED_PUBLIC_KEY_SIZE, UNCOMPRESSED_PUBLIC_KEY_SIZE):
            return None
        public_keys.append(data)
    return MultisigScript(threshold, public_keys)


def is_multisig_script(script: bytes) -> bool:
    return parse_multisig_script(script) is not None


def to_multisig_script_bytes(public_key_bytes_list: Sequence[bytes], threshold: int) -> bytes:
    """
    Raises `ValueError` if the threshold or key count are outside the standard limits.
    """
    if not 1 <= threshold <= len(public_key_bytes_list) <= MAX_MULTISIG_KEYS:
        raise ValueError(f"invalid {threshold} of {len(public_key_bytes_list)} multisig")
    parts = [push_int(threshold)]
    parts.extend(push_item(public_key_bytes) for public_key_bytes in public_key_bytes_list)
    parts.append(push_int(len(public_key_bytes_list)))
    parts.append(pack_byte(Ops.OP_CHECKMULTISIG))
    return b''.join(parts)
