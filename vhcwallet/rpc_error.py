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
The error vocabulary of the JSON-RPC interface.

Handlers raise `RPCError` directly where the failure is a protocol level problem (bad
parameters, missing wallet and so on). Failures raised by the wallet and network collaborators
are translated by `convert_error` at the point the dispatcher produces the response, so that a
handler never needs to know which wire code a collaborator failure maps to.
"""

from __future__ import annotations
import asyncio
from enum import IntEnum
from typing import Any, NamedTuple
from typing_extensions import TypedDict

from .exceptions import ErrorKind, ServerConnectionError, WalletError


class ErrorDict(TypedDict):
    code: int
    message: str


class RPCErrorCode(IntEnum):
    INVALID_REQUEST                 = -32600
    METHOD_NOT_FOUND                = -32601
    INVALID_PARAMS                  = -32602
    INTERNAL                        = -32603
    PARSE_ERROR                     = -32700

    MISC_ERROR                      = -1
    TYPE_ERROR                      = -3
    WALLET_ERROR                    = -4
    INVALID_ADDRESS_OR_KEY          = -5
    WALLET_INSUFFICIENT_FUNDS       = -6
    INVALID_PARAMETER               = -8
    CLIENT_NOT_CONNECTED            = -9
    WALLET_INVALID_ACCOUNT_NAME     = -11
    WALLET_UNLOCK_NEEDED            = -13
    WALLET_PASSPHRASE_INCORRECT     = -14
    DESERIALIZATION_ERROR           = -22

    # Aliases. These share codes with the entries above.
    NO_TX_INFO                      = -5
    DECODE_HEX_STRING               = -22
    UNIMPLEMENTED                   = -1


class RPCError(Exception):
    """
    A terminal JSON-RPC error. Passed through to the caller as the `error` member of the
    response, never retried.
    """
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, RPCError):
            return NotImplemented
        return self.code == other.code and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.code, self.message))

    def __repr__(self) -> str:
        return f"RPCError(code={self.code}, message={self.message!r})"

    def to_dict(self) -> ErrorDict:
        return ErrorDict(code=int(self.code), message=self.message)


class PredefinedError(NamedTuple):
    code: RPCErrorCode
    message: str

    def exception(self) -> RPCError:
        return RPCError(self.code, self.message)


ERR_UNLOADED_WALLET = PredefinedError(RPCErrorCode.WALLET_ERROR,
    "request requires a wallet but wallet has not loaded yet")
ERR_NO_NETWORK = PredefinedError(RPCErrorCode.CLIENT_NOT_CONNECTED,
    "disconnected from network")
ERR_CLIENT_NOT_CONNECTED = PredefinedError(RPCErrorCode.CLIENT_NOT_CONNECTED,
    "disconnected from consensus RPC")
ERR_PASSTHROUGH_REQUIRES_RPC = PredefinedError(RPCErrorCode.CLIENT_NOT_CONNECTED,
    "RPC passthrough requires vhcd RPC synchronization")
ERR_ACCOUNT_NOT_FOUND = PredefinedError(RPCErrorCode.WALLET_INVALID_ACCOUNT_NAME,
    "account not found")
ERR_ADDRESS_NOT_IN_WALLET = PredefinedError(RPCErrorCode.WALLET_ERROR,
    "address not found in wallet")
ERR_NOT_IMPORTED_ACCOUNT = PredefinedError(RPCErrorCode.WALLET_ERROR,
    "imported addresses must belong to the imported account")
ERR_NEED_POSITIVE_AMOUNT = PredefinedError(RPCErrorCode.INVALID_PARAMETER,
    "amount must be positive")
ERR_WALLET_UNLOCK_NEEDED = PredefinedError(RPCErrorCode.WALLET_UNLOCK_NEEDED,
    "enter the wallet passphrase with walletpassphrase first")
ERR_RESERVED_ACCOUNT_NAME = PredefinedError(RPCErrorCode.INVALID_PARAMETER,
    "account name is reserved by RPC server")
ERR_UNIMPLEMENTED = PredefinedError(RPCErrorCode.UNIMPLEMENTED, "Method unimplemented")
ERR_UNSUPPORTED = PredefinedError(RPCErrorCode.UNIMPLEMENTED,
    "Request unsupported by vhcwallet")


def rpc_errorf(code: int, message: str, *args: Any) -> RPCError:
    if args:
        message = message % args
    return RPCError(code, message)


_KIND_CODES: dict[ErrorKind, RPCErrorCode] = {
    ErrorKind.BUG:                  RPCErrorCode.INTERNAL,
    ErrorKind.ENCODING:             RPCErrorCode.INVALID_PARAMETER,
    ErrorKind.LOCKED:               RPCErrorCode.WALLET_UNLOCK_NEEDED,
    ErrorKind.PASSPHRASE:           RPCErrorCode.WALLET_PASSPHRASE_INCORRECT,
    ErrorKind.NO_PEERS:             RPCErrorCode.CLIENT_NOT_CONNECTED,
    ErrorKind.INSUFFICIENT_BALANCE: RPCErrorCode.WALLET_INSUFFICIENT_FUNDS,
    ErrorKind.NOT_EXIST:            RPCErrorCode.INVALID_ADDRESS_OR_KEY,
    ErrorKind.INVALID:              RPCErrorCode.INVALID_PARAMETER,
}


def convert_error(exception: BaseException) -> RPCError:
    """
    Map any failure raised while serving a request onto the error returned to the caller.

    An `RPCError` is returned unchanged. This is what lets errors from the consensus node reach
    the caller verbatim for passthrough requests.
    """
    if isinstance(exception, RPCError):
        return exception
    if isinstance(exception, WalletError):
        code = _KIND_CODES.get(exception.kind, RPCErrorCode.WALLET_ERROR)
        return RPCError(code, str(exception))
    if isinstance(exception, ServerConnectionError):
        return RPCError(RPCErrorCode.CLIENT_NOT_CONNECTED, str(exception) or
            ERR_CLIENT_NOT_CONNECTED.message)
    if isinstance(exception, asyncio.TimeoutError):
        return RPCError(RPCErrorCode.CLIENT_NOT_CONNECTED, "request deadline exceeded")
    return RPCError(RPCErrorCode.WALLET_ERROR, str(exception))
