"""
Spending pay to script hash multisig outputs back into the wallet, or to a given address.

The transaction built here only carries the signatures this wallet can make. If the threshold
needs other signers the partially signed transaction is passed to them to complete.
"""

from __future__ import annotations

from bitcoinx import Address, hash_to_hex_str, P2SH_Address

from .constants import DEFAULT_ACCOUNT_NUMBER, GapPolicy
from .exceptions import ErrorKind, WalletError
from .interfaces import NetworkBackend, Wallet
from .logs import logs
from .rpc_error import rpc_errorf, RPCErrorCode
from .script import is_multisig_script
from .signing import resolve_and_sign
from .transaction import Transaction, TxInput
from .types import OutPoint, P2SHOutputInfo, RawTxInput, SigningResult


logger = logs.get_logger("multisig")


async def _destination_address(wallet: Wallet, destination: Address | None) -> Address:
    if destination is not None:
        return destination
    return await wallet.new_internal_address(DEFAULT_ACCOUNT_NUMBER, GapPolicy.WRAP)


async def redeem_output(wallet: Wallet, network: NetworkBackend | None,
        p2sh_output: P2SHOutputInfo, destination: Address) -> SigningResult:
    if not is_multisig_script(p2sh_output.redeem_script):
        raise WalletError(ErrorKind.INVALID, "P2SH redeem script is not multisig")

    outpoint = p2sh_output.outpoint
    transaction = Transaction()
    transaction.inputs.append(TxInput.from_outpoint(outpoint,
        value_in=p2sh_output.output_amount))
    await wallet.prepare_redeem_multisig_output(transaction, p2sh_output, destination)

    # No keys are given so that the wallet signs with its own keys and redeem scripts.
    spent_output = RawTxInput(txid=hash_to_hex_str(outpoint.tx_hash), vout=outpoint.index,
        tree=outpoint.tree, script_pub_key=p2sh_output.address.to_script_bytes().hex())
    result = await resolve_and_sign(wallet, network, transaction.to_hex(), "ALL",
        [ spent_output ], [])
    logger.debug("redeemed multisig output %s, complete: %s", outpoint, result.complete)
    return result


async def redeem(wallet: Wallet, network: NetworkBackend | None, outpoint: OutPoint,
        destination: Address | None=None) -> SigningResult:
    """
    Spend the entire value of a multisig output to the destination, or to a new internal address
    of the default account.

    Raises `WalletError` if the output is unknown or is not a multisig output.
    """
    destination = await _destination_address(wallet, destination)
    p2sh_output = await wallet.fetch_p2sh_multisig_output(outpoint)
    return await redeem_output(wallet, network, p2sh_output, destination)


async def redeem_all(wallet: Wallet, network: NetworkBackend | None, address: Address,
        maximum_count: int | None=None, destination: Address | None=None) \
            -> list[SigningResult]:
    """
    Redeem the unspent multisig outputs paying to a script hash address in the order the wallet
    lists them, up to `maximum_count` of them. The first failure is raised and no results are
    returned.
    """
    if not isinstance(address, P2SH_Address):
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "address is not P2SH")
    if maximum_count is not None and maximum_count < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "number must be non-negative")

    p2sh_outputs = await wallet.unspent_multisig_credits_for_address(address)
    if maximum_count is not None:
        p2sh_outputs = p2sh_outputs[:maximum_count]

    results: list[SigningResult] = []
    for p2sh_output in p2sh_outputs:
        results.append(await redeem(wallet, network, p2sh_output.outpoint, destination))
    return results
