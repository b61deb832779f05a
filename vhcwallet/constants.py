from __future__ import annotations
from enum import Enum, IntEnum


ATOMS_PER_COIN = 100_000_000
MAX_AMOUNT = 21_000_000 * ATOMS_PER_COIN

DEFAULT_ACCOUNT_NAME = "default"
DEFAULT_ACCOUNT_NUMBER = 0
IMPORTED_ACCOUNT_NAME = "imported"
IMPORTED_ACCOUNT_NUMBER = 2**31 - 1
# Account names that have a special meaning to the JSON-RPC interface and which can therefore
# never be given to a real account.
RESERVED_ACCOUNT_NAMES = frozenset({ "*" })

# The default number of confirmations for spending related calls.
DEFAULT_MINCONF = 1
DEFAULT_LOCALE = "en_US"

# The locking script version of all standard output scripts.
DEFAULT_SCRIPT_VERSION = 0


class TxTree(IntEnum):
    INVALID = -1
    REGULAR = 0
    STAKE   = 1


class TxSerializeType(IntEnum):
    FULL            = 0
    NO_WITNESS      = 1
    ONLY_WITNESS    = 2


class GapPolicy(Enum):
    ERROR   = "error"
    IGNORE  = "ignore"
    WRAP    = "wrap"


class AutomationRunState(IntEnum):
    STOPPED = 0
    RUNNING = 1


class AddressBranch(IntEnum):
    EXTERNAL = 0
    INTERNAL = 1
