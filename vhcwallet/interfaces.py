"""
The collaborators that the command engine borrows but does not implement.

The hosting process owns the wallet and the network backend and hands them to the engine through
`loader.WalletLoader`. Both are optional, and either may come and go between requests. Any
method here may raise `exceptions.WalletError`, which the JSON-RPC layer maps to an error code by
its kind. Network facing methods may also raise `exceptions.ServerConnectionError`.
"""

from __future__ import annotations
from typing import Any, NamedTuple, Protocol, TYPE_CHECKING

from bitcoinx import Address, PrivateKey, PublicKey

if TYPE_CHECKING:
    from .chainparams import ChainParams
    from .constants import GapPolicy
    from .transaction import Transaction, TxOutput
    from .types import AddressIndexes, AgendaChoice, Balances, DecodedWIF, OutPoint, \
        P2SHOutputInfo, SignatureError, StakeInfo, StakePoolUserInfo, TicketPurchaseRequest


class TicketRecord(NamedTuple):
    ticket_hash: bytes
    # The height of the block the ticket was mined in, or -1 if it is unmined.
    block_height: int


class AddressCodec(Protocol):
    """The network's address and private key string encodings."""

    def decode_address(self, text: str) -> Address:
        """Raises `ValueError` if the text is not an address for this network."""
        ...

    def encode_address(self, address: Address) -> str:
        ...

    def decode_wif(self, text: str) -> DecodedWIF:
        """Raises `ValueError` if the text is not a valid encoded private key."""
        ...

    def script_hash_address(self, script: bytes) -> Address:
        ...

    def public_key_address(self, public_key: PublicKey) -> Address:
        ...


class ChainRPCClient(Protocol):
    """A JSON-RPC connection to a trusted consensus node."""

    async def raw_request(self, method: str, params: list[Any] | dict[str, Any]) -> Any:
        ...

    async def get_tx_out(self, tx_hash: bytes, index: int, tree: int,
            include_mempool: bool=True) -> dict[str, Any] | None:
        ...

    async def get_info(self) -> dict[str, Any]:
        ...

    async def version(self) -> dict[str, Any]:
        ...

    async def ping(self) -> None:
        ...

    async def help(self, command: str | None=None) -> str:
        ...

    async def get_stake_difficulty(self) -> dict[str, Any]:
        ...

    async def send_raw_transaction(self, transaction_bytes: bytes) -> bytes:
        ...

    async def exists_missed_tickets(self, ticket_hashes: list[bytes]) -> list[bool]:
        ...


class NetworkBackend(Protocol):
    async def publish_transactions(self, *transactions: Transaction) -> None:
        ...

    async def load_tx_filter(self, reload: bool, addresses: list[str],
            outpoints: list[OutPoint]) -> None:
        ...

    async def stake_difficulty(self) -> int:
        ...

    async def average_stake_difficulty(self) -> int:
        ...


class Wallet(Protocol):
    chain_params: ChainParams
    codec: AddressCodec

    def main_chain_tip(self) -> tuple[bytes, int]:
        ...

    def locked(self) -> bool:
        ...

    def lock(self) -> None:
        ...

    async def unlock(self, passphrase: bytes, timeout: float | None) -> None:
        """Raises `WalletError` of kind PASSPHRASE if the passphrase is incorrect."""
        ...

    async def change_private_passphrase(self, old_passphrase: bytes,
            new_passphrase: bytes) -> None:
        ...

    def relay_fee(self) -> int:
        ...

    def set_relay_fee(self, fee: int) -> None:
        ...

    def ticket_fee_increment(self) -> int:
        ...

    def set_ticket_fee_increment(self, fee: int) -> None:
        ...

    def vote_bits(self) -> tuple[int, bytes]:
        ...

    def voting_enabled(self) -> bool:
        ...

    # Accounts and addresses.

    async def account_number(self, name: str) -> int:
        ...

    async def account_name(self, account: int) -> str:
        ...

    async def account_of_address(self, address: Address) -> int:
        ...

    async def have_address(self, address: Address) -> bool:
        ...

    async def account_addresses(self, account: int) -> list[Address]:
        ...

    async def account_address_indexes(self, account: int) -> AddressIndexes:
        ...

    async def sync_last_returned_address(self, account: int, branch: int, index: int) -> None:
        ...

    async def current_address(self, account: int) -> Address:
        ...

    async def new_external_address(self, account: int, gap_policy: GapPolicy) -> Address:
        ...

    async def new_internal_address(self, account: int, gap_policy: GapPolicy) -> Address:
        ...

    async def master_pubkey(self, account: int) -> str:
        ...

    async def next_account(self, name: str) -> int:
        ...

    async def rename_account(self, account: int, new_name: str) -> None:
        ...

    async def account_balance(self, account: int, min_conf: int) -> Balances:
        ...

    async def account_balances(self, min_conf: int) -> list[Balances]:
        ...

    # Keys and scripts.

    async def dump_wif(self, address: Address) -> str:
        ...

    async def import_private_key(self, wif: DecodedWIF) -> Address:
        ...

    async def import_script(self, script: bytes) -> None:
        ...

    async def redeem_scripts(self) -> list[bytes]:
        ...

    async def sign_message(self, message: str, address: Address) -> bytes:
        ...

    async def verify_message(self, message: str, address: Address, signature: bytes) -> bool:
        ...

    # Outputs and transactions.

    async def fetch_p2sh_multisig_output(self, outpoint: OutPoint) -> P2SHOutputInfo:
        ...

    async def unspent_multisig_credits_for_address(self, address: Address) \
            -> list[P2SHOutputInfo]:
        ...

    async def prepare_redeem_multisig_output(self, transaction: Transaction,
            p2sh_output: P2SHOutputInfo, destination: Address) -> None:
        """Append the redeeming output paying the input value less the fee."""
        ...

    async def sign_transaction(self, transaction: Transaction, hash_type: int,
            previous_scripts: dict[OutPoint, bytes], keys_by_address: dict[str, PrivateKey],
            redeem_scripts_by_address: dict[str, bytes]) -> list[SignatureError]:
        """
        Sign every input that can be signed with the given and wallet held keys and scripts.
        The transaction is updated in place. Inputs that cannot be signed are reported and the
        remaining inputs are still signed.
        """
        ...

    async def publish_transaction(self, transaction: Transaction,
            network: NetworkBackend) -> bytes:
        ...

    async def send_outputs(self, outputs: list[TxOutput], account: int, min_conf: int) -> bytes:
        ...

    async def list_unspent(self, min_conf: int, max_conf: int,
            addresses: set[Address] | None) -> list[dict[str, Any]]:
        ...

    async def locked_outpoints(self) -> list[OutPoint]:
        ...

    def lock_outpoint(self, outpoint: OutPoint) -> None:
        ...

    def unlock_outpoint(self, outpoint: OutPoint) -> None:
        ...

    def reset_locked_outpoints(self) -> None:
        ...

    async def rescan_from_height(self, network: NetworkBackend, start_height: int) -> None:
        ...

    # Stake.

    async def stake_info(self) -> StakeInfo:
        ...

    async def stake_info_precise(self, client: ChainRPCClient) -> StakeInfo:
        ...

    async def live_ticket_hashes(self, client: ChainRPCClient,
            include_immature: bool) -> list[bytes]:
        ...

    async def unspent_tickets(self) -> list[TicketRecord]:
        ...

    async def revoke_ticket_hashes(self, ticket_hashes: list[bytes],
            network: NetworkBackend | None) -> list[bytes]:
        ...

    async def purchase_tickets(self, request: TicketPurchaseRequest) -> list[bytes]:
        ...

    async def agenda_choices(self) -> tuple[int, list[AgendaChoice]]:
        ...

    async def set_agenda_choices(self, choices: list[AgendaChoice]) -> None:
        ...

    async def stake_pool_user_info(self, address: Address) -> StakePoolUserInfo:
        ...
