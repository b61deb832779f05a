from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import hmac
from typing import TYPE_CHECKING

from bitcoinx import Address, PublicKey

from .constants import ATOMS_PER_COIN, MAX_AMOUNT
from .rpc_error import rpc_errorf, RPCError, RPCErrorCode

if TYPE_CHECKING:
    from .interfaces import AddressCodec


def constant_time_compare(val1: str, val2: str) -> bool:
    """Return True if the two strings are equal, False otherwise."""
    return hmac.compare_digest(val1.encode('utf8'), val2.encode('utf8'))


def decode_hex_str(hex_str: str) -> bytes:
    """
    Odd length hexadecimal strings are accepted and left padded with a zero nibble.

    Raises `RPCError` (DECODE_HEX_STRING) if the text is not hexadecimal.
    """
    if len(hex_str) % 2 != 0:
        hex_str = "0" + hex_str
    try:
        return bytes.fromhex(hex_str)
    except ValueError as exc:
        raise RPCError(RPCErrorCode.DECODE_HEX_STRING, f"hex string decode failed: {exc}")


def hash_from_str(hash_str: str) -> bytes:
    """
    Parse a displayed (byte reversed) 32 byte hash. Shorter values are treated as having leading
    zeroes, as the node does.

    Raises `RPCError` (DECODE_HEX_STRING) if this is not a valid hash string.
    """
    if len(hash_str) > 64:
        raise rpc_errorf(RPCErrorCode.DECODE_HEX_STRING,
            "max hash string length is 64 bytes")
    hash_bytes = decode_hex_str(hash_str)
    return hash_bytes[::-1].ljust(32, b"\0")


def coins_to_atoms(value: float | int | str) -> int:
    """
    Convert a coin amount given in a request into integer atoms, rounding half away from zero.

    Raises `RPCError` (INVALID_PARAMETER) for values that are not finite numbers.
    """
    try:
        amount_coins = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except InvalidOperation:
        raise RPCError(RPCErrorCode.INVALID_PARAMETER, "invalid coin amount")
    if not amount_coins.is_finite():
        raise RPCError(RPCErrorCode.INVALID_PARAMETER, "invalid coin amount")
    amount_atoms = (amount_coins * ATOMS_PER_COIN).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    if abs(amount_atoms) > MAX_AMOUNT:
        raise RPCError(RPCErrorCode.INVALID_PARAMETER, "amount out of range")
    return int(amount_atoms)


def atoms_to_coins(value: int) -> float:
    return value / ATOMS_PER_COIN


def decode_address(codec: AddressCodec, text: str) -> Address:
    """
    Accepts an encoded address, or a hex encoded public key which is taken as its pay to public
    key address.

    Raises `RPCError` (INVALID_ADDRESS_OR_KEY) if the text is neither.
    """
    if len(text) in (66, 130):
        try:
            public_key = PublicKey.from_hex(text)
        except ValueError as exc:
            raise rpc_errorf(RPCErrorCode.INVALID_ADDRESS_OR_KEY,
                "invalid public key %r: %s", text, exc)
        return codec.public_key_address(public_key)

    try:
        return codec.decode_address(text)
    except ValueError as exc:
        raise rpc_errorf(RPCErrorCode.INVALID_ADDRESS_OR_KEY,
            "invalid address %r: decode failed: %s", text, exc)
