from __future__ import annotations
import dataclasses
from typing import Any, NamedTuple, TYPE_CHECKING
from typing_extensions import NotRequired, TypedDict

from bitcoinx import Address, hash_to_hex_str, PrivateKey

from .constants import TxTree

if TYPE_CHECKING:
    from .transaction import Transaction


class OutPoint(NamedTuple):
    tx_hash: bytes
    index: int
    tree: int = TxTree.REGULAR

    def __str__(self) -> str:
        return f"{hash_to_hex_str(self.tx_hash)}:{self.index}"


class DecodedWIF(NamedTuple):
    private_key: PrivateKey
    # The name of the network the key was encoded for, compared against `ChainParams.name`.
    network_name: str
    compressed: bool = True


@dataclasses.dataclass
class P2SHOutputInfo:
    redeem_script: bytes
    threshold: int
    key_count: int
    address: Address
    outpoint: OutPoint
    output_amount: int
    # The transaction hash and input index that redeemed this output, if it is spent.
    spent_by: OutPoint | None = None
    block_hash: bytes | None = None
    block_height: int = -1

    @property
    def is_spent(self) -> bool:
        return self.spent_by is not None


class SignatureError(NamedTuple):
    input_index: int
    error: Exception


@dataclasses.dataclass
class SigningResult:
    """
    The outcome of signing a transaction. The transaction is returned whether or not every input
    was signed, so that it can be passed on to any other signers.
    """
    transaction: Transaction
    errors: list[SignatureError]

    @property
    def complete(self) -> bool:
        return len(self.errors) == 0


@dataclasses.dataclass(frozen=True)
class RawTxInput:
    txid: str
    vout: int
    tree: int
    script_pub_key: str
    redeem_script: str = ""


@dataclasses.dataclass
class Balances:
    account: int
    immature_coinbase_rewards: int = 0
    immature_stake_generation: int = 0
    locked_by_tickets: int = 0
    spendable: int = 0
    total: int = 0
    unconfirmed: int = 0
    voting_authority: int = 0


@dataclasses.dataclass
class StakeInfo:
    block_height: int
    stake_difficulty: int
    total_subsidy: int = 0
    own_mempool_tickets: int = 0
    immature: int = 0
    unspent: int = 0
    voted: int = 0
    revoked: int = 0
    unspent_expired: int = 0
    pool_size: int = 0
    all_mempool_tickets: int = 0
    live: int = 0
    missed: int = 0
    expired: int = 0


class AgendaChoice(NamedTuple):
    agenda_id: str
    choice_id: str


@dataclasses.dataclass
class TicketPurchaseRequest:
    """
    Everything needed to construct and broadcast ticket purchases. This is shared by the manual
    purchase call and the automated ticket buyer so that both construct tickets the same way.
    """
    account: int
    spend_limit: int
    min_conf: int
    ticket_count: int
    ticket_fee: int
    relay_fee: int
    expiry: int = 0
    ticket_address: Address | None = None
    pool_address: Address | None = None
    pool_fees: float = 0.0


@dataclasses.dataclass
class StakePoolTicket:
    ticket_hash: bytes
    status: str
    height: int
    spent_by: bytes | None = None
    spent_by_height: int = 0


@dataclasses.dataclass
class StakePoolUserInfo:
    tickets: list[StakePoolTicket]
    invalid_tickets: list[bytes]


class AddressIndexes(NamedTuple):
    external: int
    internal: int


# JSON result shapes.


class SignRawTransactionErrorDict(TypedDict):
    txid: str
    vout: int
    scriptSig: str
    sequence: int
    error: str


class SignRawTransactionResultDict(TypedDict):
    hex: str
    complete: bool
    errors: NotRequired[list[SignRawTransactionErrorDict]]


class SignedTransactionDict(TypedDict):
    signingresult: SignRawTransactionResultDict
    sent: bool
    txhash: NotRequired[str]


class RedeemMultiSigOutsResultDict(TypedDict):
    results: list[SignRawTransactionResultDict]


class AccountBalanceDict(TypedDict):
    accountname: str
    immaturecoinbaserewards: float
    immaturestakegeneration: float
    lockedbytickets: float
    spendable: float
    total: float
    unconfirmed: float
    votingauthority: float


class GetBalanceResultDict(TypedDict):
    balances: list[AccountBalanceDict]
    blockhash: str
    totalimmaturecoinbaserewards: NotRequired[float]
    totalimmaturestakegeneration: NotRequired[float]
    totallockedbytickets: NotRequired[float]
    totalspendable: NotRequired[float]
    cumulativetotal: NotRequired[float]
    totalunconfirmed: NotRequired[float]
    totalvotingauthority: NotRequired[float]


class GetMultisigOutInfoResultDict(TypedDict):
    address: str
    redeemscript: str
    m: int
    n: int
    pubkeys: list[str]
    txhash: str
    blockhash: str
    blockheight: int
    spent: bool
    spentby: str
    spentbyindex: int
    amount: float


class VersionResultDict(TypedDict):
    versionstring: str
    major: int
    minor: int
    patch: int
    prerelease: str
    buildmetadata: str


class ValidateAddressResultDict(TypedDict):
    isvalid: bool
    address: NotRequired[str]
    ismine: NotRequired[bool]
    account: NotRequired[str]
    isscript: NotRequired[bool]
    pubkeyaddr: NotRequired[str]
    script: NotRequired[str]
    hex: NotRequired[str]
    addresses: NotRequired[list[str]]
    sigsrequired: NotRequired[int]


JSONResult = Any
