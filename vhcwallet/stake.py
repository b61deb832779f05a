"""
Ticket purchase and revocation. Both the JSON-RPC handlers and the automated ticket buyer go
through these functions, so tickets are constructed the same way however the purchase was
initiated.
"""

from __future__ import annotations

from bitcoinx import hash_to_hex_str

from .chain_rpc import rpc_client_from_backend
from .chainparams import ChainParams
from .exceptions import WalletError
from .interfaces import ChainRPCClient, NetworkBackend, TicketRecord, Wallet
from .logs import logs
from .rpc_error import rpc_errorf, RPCErrorCode
from .txrules import valid_pool_fee_rate
from .types import TicketPurchaseRequest


logger = logs.get_logger("stake")


def validate_purchase_request(request: TicketPurchaseRequest) -> None:
    """
    Raises `RPCError` (INVALID_PARAMETER) if the request could never be satisfied.
    """
    if request.spend_limit < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative spend limit")
    if request.min_conf < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative minconf")
    if request.ticket_count < 1:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "ticket count must be positive")
    if request.ticket_fee < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative ticket fee")
    if request.pool_address is not None and not valid_pool_fee_rate(request.pool_fees):
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "pool fee percentage %s",
            request.pool_fees)


async def purchase_tickets(wallet: Wallet, request: TicketPurchaseRequest) -> list[bytes]:
    """
    Construct, sign and broadcast the requested tickets. The returned ticket hashes are in the
    order the tickets were created.
    """
    validate_purchase_request(request)
    ticket_hashes = await wallet.purchase_tickets(request)
    for ticket_hash in ticket_hashes:
        logger.info("Purchased ticket %s (spend limit %d, fee %d)",
            hash_to_hex_str(ticket_hash), request.spend_limit, request.ticket_fee)
    return ticket_hashes


def is_ticket_expired(ticket: TicketRecord, tip_height: int, params: ChainParams) -> bool:
    if ticket.block_height < 0:
        return False
    return tip_height >= ticket.block_height + params.ticket_maturity + params.ticket_expiry


async def find_missed_tickets(client: ChainRPCClient, tickets: list[TicketRecord]) \
        -> list[bytes]:
    mined_hashes = [ ticket.ticket_hash for ticket in tickets if ticket.block_height >= 0 ]
    missed_flags = await client.exists_missed_tickets(mined_hashes)
    return [ ticket_hash for ticket_hash, missed in zip(mined_hashes, missed_flags) if missed ]


async def revoke_tickets(wallet: Wallet, network: NetworkBackend | None) -> list[bytes]:
    """
    Revoke the wallet's missed tickets.

    Only a trusted consensus node can say which tickets were missed. Without one, the tickets
    that are revoked are those old enough to have expired, and tickets that were missed but have
    not yet expired are left for a later call.
    """
    client: ChainRPCClient | None
    try:
        client = rpc_client_from_backend(network)
    except WalletError:
        client = None

    tickets = await wallet.unspent_tickets()
    if client is not None:
        revocable_hashes = await find_missed_tickets(client, tickets)
    else:
        _tip_hash, tip_height = wallet.main_chain_tip()
        revocable_hashes = [ ticket.ticket_hash for ticket in tickets
            if is_ticket_expired(ticket, tip_height, wallet.chain_params) ]
        logger.debug("No consensus RPC, revoking %d expired tickets only",
            len(revocable_hashes))

    if not revocable_hashes:
        return []
    revocation_hashes = await wallet.revoke_ticket_hashes(revocable_hashes, network)
    logger.info("Revoked %d tickets", len(revocation_hashes))
    return revocation_hashes
