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

from __future__ import annotations
from enum import IntEnum


class ErrorKind(IntEnum):
    """
    The classes of failure a wallet or network collaborator can report. The JSON-RPC layer maps
    these onto wire error codes in `rpc_error.convert_error`.
    """
    OTHER                   = 0
    BUG                     = 1
    ENCODING                = 2
    LOCKED                  = 3
    PASSPHRASE              = 4
    NO_PEERS                = 5
    INSUFFICIENT_BALANCE    = 6
    NOT_EXIST               = 7
    EXIST                   = 8
    INVALID                 = 9


class WalletError(Exception):
    def __init__(self, kind: ErrorKind, message: str, operation: str | None=None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation is not None:
            return f"{self.operation}: {self.message}"
        return self.message


class NotEnoughFunds(WalletError):
    def __init__(self, message: str="insufficient balance") -> None:
        super().__init__(ErrorKind.INSUFFICIENT_BALANCE, message)


class InvalidPassword(WalletError):
    def __init__(self, message: str="incorrect passphrase") -> None:
        super().__init__(ErrorKind.PASSPHRASE, message)


class WalletLockedError(WalletError):
    def __init__(self, message: str="wallet is locked") -> None:
        super().__init__(ErrorKind.LOCKED, message)


class ServerConnectionError(Exception):
    """
    The consensus node could not be reached, or the connection failed mid-request. Callers may
    retry, nothing in this package retries on their behalf.
    """
    pass


class BadServerError(ServerConnectionError):
    """
    The consensus node sent a response that is not valid JSON-RPC. This is not to be confused
    with a valid error response, which is relayed as an `RPCError`.
    """
    pass
