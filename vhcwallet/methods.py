"""
The JSON-RPC methods served by the wallet, and the dispatch of requests to them.

Every locally known method has an entry in `HANDLERS`, including those that are deliberately
not implemented. A request for any other method is passed through to the consensus node when
the network backend is one, so that the wallet's interface extends the node's.
"""

from __future__ import annotations
import asyncio
import base64
import binascii
import dataclasses
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Type

from bitcoinx import Address, hash_to_hex_str, P2SH_Address, PublicKey

from .chain_rpc import rpc_client_from_backend
from .commands import AccountAddressIndexCmd, AccountCmd, AccountSyncAddressIndexCmd, \
    AddressCmd, CommandParseError, CreateNewAccountCmd, GetBalanceCmd, GetMultisigOutInfoCmd, \
    GetNewAddressCmd, GetTicketsCmd, HelpCmd, ImportPrivKeyCmd, ImportScriptCmd, \
    KeyPoolRefillCmd, ListAccountsCmd, ListUnspentCmd, LockUnspentCmd, NoParamsCmd, \
    OptionalAccountCmd, parse_command, PurchaseTicketCmd, RedeemMultiSigOutCmd, \
    RedeemMultiSigOutsCmd, RenameAccountCmd, RescanWalletCmd, SendFromCmd, SendManyCmd, \
    SendToAddressCmd, SetTicketFeeCmd, SetTxFeeCmd, SetVoteChoiceCmd, SignMessageCmd, \
    SignRawTransactionCmd, SignRawTransactionsCmd, StakePoolUserInfoCmd, StartAutoBuyerCmd, \
    VerifyMessageCmd, WalletPassphraseChangeCmd, WalletPassphraseCmd
from .constants import DEFAULT_ACCOUNT_NAME, DEFAULT_ACCOUNT_NUMBER, DEFAULT_MINCONF, \
    GapPolicy, IMPORTED_ACCOUNT_NAME, RESERVED_ACCOUNT_NAMES, TxTree
from .exceptions import ErrorKind, ServerConnectionError, WalletError
from .help import HelpCache
from .interfaces import ChainRPCClient, NetworkBackend, Wallet
from .loader import WalletLoader
from .logs import logs
from . import multisig
from .rpc_error import convert_error, ERR_ACCOUNT_NOT_FOUND, ERR_ADDRESS_NOT_IN_WALLET, \
    ERR_CLIENT_NOT_CONNECTED, ERR_NEED_POSITIVE_AMOUNT, ERR_NO_NETWORK, \
    ERR_NOT_IMPORTED_ACCOUNT, ERR_PASSTHROUGH_REQUIRES_RPC, ERR_RESERVED_ACCOUNT_NAME, \
    ERR_UNIMPLEMENTED, ERR_UNLOADED_WALLET, ERR_UNSUPPORTED, ERR_WALLET_UNLOCK_NEEDED, \
    rpc_errorf, RPCError, RPCErrorCode
from .script import parse_multisig_script
from .signing import resolve_and_sign, sign_transactions, signing_result_to_dict
from . import stake
from .transaction import TxOutput
from .types import AccountBalanceDict, AgendaChoice, Balances, GetBalanceResultDict, \
    GetMultisigOutInfoResultDict, OutPoint, RedeemMultiSigOutsResultDict, \
    SignRawTransactionResultDict, TicketPurchaseRequest, ValidateAddressResultDict, \
    VersionResultDict
from .util import atoms_to_coins, coins_to_atoms, decode_address, decode_hex_str, \
    hash_from_str
from .version import JSONRPC_API_MAJOR, JSONRPC_API_MINOR, JSONRPC_API_PATCH, PACKAGE_VERSION


logger = logs.get_logger("rpc-server")

HandlerFunc = Callable[[WalletLoader, Any], Awaitable[Any]]
LazyHandler = Callable[[], Awaitable[tuple[Any, RPCError | None]]]

# Child indexes at and above this are hardened and are never used for account addresses.
HARDENED_KEY_START = 2**31

WALLET_VERSION = 1
PROTOCOL_VERSION = 6

# Rescans started as a side effect of an import. These are not awaited by anything, the
# references are only held until they finish.
_background_tasks: set[asyncio.Task[None]] = set()


@dataclasses.dataclass(frozen=True)
class HandlerDescriptor:
    fn: HandlerFunc
    # `None` for methods whose parameters are never looked at.
    command_type: Type[Any] | None
    no_help: bool = False


def _require_wallet(loader: WalletLoader) -> Wallet:
    wallet = loader.loaded_wallet()
    if wallet is None:
        raise ERR_UNLOADED_WALLET.exception()
    return wallet


def _rpc_client(loader: WalletLoader) -> ChainRPCClient | None:
    network = loader.network_backend()
    if network is None:
        return None
    try:
        return rpc_client_from_backend(network)
    except WalletError:
        return None


async def _account_number(wallet: Wallet, name: str) -> int:
    try:
        return await wallet.account_number(name)
    except WalletError as exc:
        if exc.kind == ErrorKind.NOT_EXIST:
            raise ERR_ACCOUNT_NOT_FOUND.exception()
        raise


async def _account_name(wallet: Wallet, account: int) -> str:
    try:
        return await wallet.account_name(account)
    except WalletError as exc:
        # Every account the wallet reports has a name.
        if exc.kind == ErrorKind.NOT_EXIST:
            raise RPCError(RPCErrorCode.INTERNAL, str(exc))
        raise


def _wallet_access_error(exc: WalletError) -> Exception:
    if exc.kind == ErrorKind.NOT_EXIST:
        return ERR_ADDRESS_NOT_IN_WALLET.exception()
    if exc.kind == ErrorKind.LOCKED:
        return ERR_WALLET_UNLOCK_NEEDED.exception()
    return exc


def _parse_gap_policy(text: str | None) -> GapPolicy:
    if text is None or text == "":
        return GapPolicy.ERROR
    try:
        return GapPolicy(text)
    except ValueError:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, 'unknown gap policy "%s"', text)


def _start_rescan(wallet: Wallet, network: NetworkBackend, start_height: int) -> None:
    task = asyncio.create_task(wallet.rescan_from_height(network, start_height))
    _background_tasks.add(task)
    task.add_done_callback(_on_rescan_done)


def _on_rescan_done(task: asyncio.Task[None]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exception = task.exception()
    if exception is not None:
        logger.error("Rescan failed", exc_info=exception)


def _balance_dict(account_name: str, balance: Balances) -> AccountBalanceDict:
    return {
        "accountname": account_name,
        "immaturecoinbaserewards": atoms_to_coins(balance.immature_coinbase_rewards),
        "immaturestakegeneration": atoms_to_coins(balance.immature_stake_generation),
        "lockedbytickets": atoms_to_coins(balance.locked_by_tickets),
        "spendable": atoms_to_coins(balance.spendable),
        "total": atoms_to_coins(balance.total),
        "unconfirmed": atoms_to_coins(balance.unconfirmed),
        "votingauthority": atoms_to_coins(balance.voting_authority),
    }


def _version_number(version: str) -> int:
    major, minor, patch = (int(part) for part in version.split(".")[:3])
    return major * 1_000_000 + minor * 10_000 + patch * 100


def _outpoint_dict(outpoint: OutPoint) -> dict[str, Any]:
    return { "txid": hash_to_hex_str(outpoint.tx_hash), "vout": outpoint.index,
        "tree": outpoint.tree }


# Accounts and addresses.

async def jsonrpc_accountaddressindex_async(loader: WalletLoader,
        cmd: AccountAddressIndexCmd) -> int:
    """Returns the next child index that will be used on the given branch of an account."""
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.account)
    indexes = await wallet.account_address_indexes(account)
    if cmd.branch == 0:
        return indexes.external
    if cmd.branch == 1:
        return indexes.internal
    raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "invalid branch %s", cmd.branch)


async def jsonrpc_accountsyncaddressindex_async(loader: WalletLoader,
        cmd: AccountSyncAddressIndexCmd) -> None:
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.account)
    if cmd.branch not in (0, 1):
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "invalid branch %s", cmd.branch)
    if cmd.index < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "child index must be non-negative")
    if cmd.index >= HARDENED_KEY_START:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER,
            "child index %d exceeds the maximum child index for an account", cmd.index)
    await wallet.sync_last_returned_address(account, cmd.branch, cmd.index)
    return None


async def jsonrpc_createnewaccount_async(loader: WalletLoader, cmd: CreateNewAccountCmd) -> None:
    wallet = _require_wallet(loader)
    if cmd.account in RESERVED_ACCOUNT_NAMES:
        raise ERR_RESERVED_ACCOUNT_NAME.exception()
    try:
        await wallet.next_account(cmd.account)
    except WalletError as exc:
        if exc.kind == ErrorKind.LOCKED:
            raise rpc_errorf(RPCErrorCode.WALLET_UNLOCK_NEEDED,
                "creating new accounts requires an unlocked wallet")
        raise
    return None


async def jsonrpc_renameaccount_async(loader: WalletLoader, cmd: RenameAccountCmd) -> None:
    wallet = _require_wallet(loader)
    if cmd.new_account in RESERVED_ACCOUNT_NAMES:
        raise ERR_RESERVED_ACCOUNT_NAME.exception()
    account = await _account_number(wallet, cmd.old_account)
    await wallet.rename_account(account, cmd.new_account)
    return None


async def jsonrpc_getaccount_async(loader: WalletLoader, cmd: AddressCmd) -> str:
    wallet = _require_wallet(loader)
    address = decode_address(wallet.codec, cmd.address)
    try:
        account = await wallet.account_of_address(address)
    except WalletError as exc:
        raise _wallet_access_error(exc)
    return await _account_name(wallet, account)


async def jsonrpc_getaccountaddress_async(loader: WalletLoader, cmd: AccountCmd) -> str:
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.account)
    address = await wallet.current_address(account)
    return wallet.codec.encode_address(address)


async def jsonrpc_getaddressesbyaccount_async(loader: WalletLoader,
        cmd: AccountCmd) -> list[str] | None:
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.account)
    addresses = await wallet.account_addresses(account)
    if not addresses:
        return None
    return [ wallet.codec.encode_address(address) for address in addresses ]


async def jsonrpc_getnewaddress_async(loader: WalletLoader, cmd: GetNewAddressCmd) -> str:
    """
    Derive the next external address of the account. The gap policy decides what happens when
    doing so would leave more unused addresses than the wallet will watch for.
    """
    wallet = _require_wallet(loader)
    gap_policy = _parse_gap_policy(cmd.gap_policy)
    account = await _account_number(wallet, cmd.account if cmd.account is not None
        else DEFAULT_ACCOUNT_NAME)
    address = await wallet.new_external_address(account, gap_policy)
    return wallet.codec.encode_address(address)


async def jsonrpc_getrawchangeaddress_async(loader: WalletLoader,
        cmd: OptionalAccountCmd) -> str:
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.account if cmd.account is not None
        else DEFAULT_ACCOUNT_NAME)
    address = await wallet.new_internal_address(account, GapPolicy.WRAP)
    return wallet.codec.encode_address(address)


async def jsonrpc_getmasterpubkey_async(loader: WalletLoader, cmd: OptionalAccountCmd) -> str:
    wallet = _require_wallet(loader)
    account = DEFAULT_ACCOUNT_NUMBER
    if cmd.account is not None:
        account = await _account_number(wallet, cmd.account)
    return await wallet.master_pubkey(account)


async def jsonrpc_validateaddress_async(loader: WalletLoader,
        cmd: AddressCmd) -> ValidateAddressResultDict:
    """
    Any address that decodes is valid. Whatever else the wallet knows about it is only included
    if the wallet has it.
    """
    wallet = _require_wallet(loader)
    try:
        address = decode_address(wallet.codec, cmd.address)
    except RPCError:
        return { "isvalid": False }

    result: ValidateAddressResultDict = {
        "isvalid": True,
        "address": wallet.codec.encode_address(address),
    }
    if not await wallet.have_address(address):
        return result

    result["ismine"] = True
    account = await wallet.account_of_address(address)
    result["account"] = await _account_name(wallet, account)

    if isinstance(address, P2SH_Address):
        result["isscript"] = True
        encoded_address = result["address"]
        for redeem_script in await wallet.redeem_scripts():
            script_address = wallet.codec.script_hash_address(redeem_script)
            if wallet.codec.encode_address(script_address) != encoded_address:
                continue
            result["hex"] = redeem_script.hex()
            multisig_script = parse_multisig_script(redeem_script)
            if multisig_script is None:
                result["script"] = "nonstandard"
                break
            result["script"] = "multisig"
            result["addresses"] = [ wallet.codec.encode_address(wallet.codec.public_key_address(
                PublicKey.from_bytes(public_key_bytes)))
                    for public_key_bytes in multisig_script.public_keys ]
            result["sigsrequired"] = multisig_script.threshold
            break
    return result


async def jsonrpc_keypoolrefill_async(loader: WalletLoader, cmd: KeyPoolRefillCmd) -> None:
    return None


# Balances.

async def jsonrpc_getbalance_async(loader: WalletLoader,
        cmd: GetBalanceCmd) -> GetBalanceResultDict:
    """
    The balance of every account along with the totals over all of them when the account is
    "*" or not given, otherwise the balance of the one account.
    """
    wallet = _require_wallet(loader)
    if cmd.min_conf < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "minconf must be non-negative")

    block_hash, _block_height = wallet.main_chain_tip()
    if cmd.account is None or cmd.account == "*":
        balances = sorted(await wallet.account_balances(cmd.min_conf),
            key=lambda balance: balance.account)
        entries = [ _balance_dict(await _account_name(wallet, balance.account), balance)
            for balance in balances ]
        return {
            "balances": entries,
            "blockhash": hash_to_hex_str(block_hash),
            "totalimmaturecoinbaserewards": atoms_to_coins(sum(
                balance.immature_coinbase_rewards for balance in balances)),
            "totalimmaturestakegeneration": atoms_to_coins(sum(
                balance.immature_stake_generation for balance in balances)),
            "totallockedbytickets": atoms_to_coins(sum(
                balance.locked_by_tickets for balance in balances)),
            "totalspendable": atoms_to_coins(sum(balance.spendable for balance in balances)),
            "cumulativetotal": atoms_to_coins(sum(balance.total for balance in balances)),
            "totalunconfirmed": atoms_to_coins(sum(
                balance.unconfirmed for balance in balances)),
            "totalvotingauthority": atoms_to_coins(sum(
                balance.voting_authority for balance in balances)),
        }

    account = await _account_number(wallet, cmd.account)
    balance = await wallet.account_balance(account, cmd.min_conf)
    return {
        "balances": [ _balance_dict(cmd.account, balance) ],
        "blockhash": hash_to_hex_str(block_hash),
    }


async def jsonrpc_getunconfirmedbalance_async(loader: WalletLoader,
        cmd: OptionalAccountCmd) -> float:
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.account if cmd.account is not None
        else DEFAULT_ACCOUNT_NAME)
    balance = await wallet.account_balance(account, DEFAULT_MINCONF)
    return atoms_to_coins(balance.total - balance.spendable)


async def jsonrpc_listaccounts_async(loader: WalletLoader,
        cmd: ListAccountsCmd) -> dict[str, float]:
    wallet = _require_wallet(loader)
    account_balances: dict[str, float] = {}
    for balance in await wallet.account_balances(cmd.min_conf):
        account_name = await _account_name(wallet, balance.account)
        account_balances[account_name] = atoms_to_coins(balance.spendable)
    return account_balances


# Chain state.

async def jsonrpc_getbestblock_async(loader: WalletLoader, cmd: NoParamsCmd) -> dict[str, Any]:
    wallet = _require_wallet(loader)
    block_hash, block_height = wallet.main_chain_tip()
    return { "hash": hash_to_hex_str(block_hash), "height": block_height }


async def jsonrpc_getbestblockhash_async(loader: WalletLoader, cmd: NoParamsCmd) -> str:
    wallet = _require_wallet(loader)
    block_hash, _block_height = wallet.main_chain_tip()
    return hash_to_hex_str(block_hash)


async def jsonrpc_getblockcount_async(loader: WalletLoader, cmd: NoParamsCmd) -> int:
    wallet = _require_wallet(loader)
    _block_hash, block_height = wallet.main_chain_tip()
    return block_height


async def jsonrpc_getinfo_async(loader: WalletLoader, cmd: NoParamsCmd) -> dict[str, Any]:
    """
    The wallet's view of the chain, with the node related fields replaced by what the consensus
    node reports if the network backend is one.
    """
    wallet = _require_wallet(loader)
    _block_hash, block_height = wallet.main_chain_tip()
    balances = await wallet.account_balances(DEFAULT_MINCONF)
    relay_fee = atoms_to_coins(wallet.relay_fee())
    info: dict[str, Any] = {
        "version": _version_number(PACKAGE_VERSION),
        "protocolversion": PROTOCOL_VERSION,
        "walletversion": WALLET_VERSION,
        "balance": atoms_to_coins(sum(balance.spendable for balance in balances)),
        "blocks": block_height,
        "timeoffset": 0,
        "connections": 0,
        "proxy": "",
        "difficulty": 0,
        "testnet": wallet.chain_params.is_testnet(),
        "keypoololdest": 0,
        "keypoolsize": 0,
        "unlocked_until": 0,
        "paytxfee": relay_fee,
        "relayfee": relay_fee,
        "errors": "",
    }

    client = _rpc_client(loader)
    if client is not None:
        consensus_info = await client.get_info()
        for key in ("version", "protocolversion", "timeoffset", "connections", "proxy",
                "relayfee", "errors", "difficulty"):
            if key in consensus_info:
                info[key] = consensus_info[key]
    return info


async def jsonrpc_version_async(loader: WalletLoader,
        cmd: NoParamsCmd) -> dict[str, VersionResultDict]:
    versions: dict[str, VersionResultDict] = {}
    client = _rpc_client(loader)
    if client is not None:
        versions.update(await client.version())
    versions["vhcwalletjsonrpcapi"] = {
        "versionstring": f"{JSONRPC_API_MAJOR}.{JSONRPC_API_MINOR}.{JSONRPC_API_PATCH}",
        "major": JSONRPC_API_MAJOR,
        "minor": JSONRPC_API_MINOR,
        "patch": JSONRPC_API_PATCH,
        "prerelease": "",
        "buildmetadata": "",
    }
    return versions


async def jsonrpc_help_async(loader: WalletLoader, cmd: HelpCmd) -> str:
    """
    With no method, the usage of every method. With a method, its help text, or the consensus
    node's help for methods that are passed through to it.
    """
    client = _rpc_client(loader)
    if not cmd.command:
        usages = HELP_CACHE.usages()
        if client is not None:
            try:
                chain_usages = await client.help()
            except (RPCError, ServerConnectionError) as exc:
                logger.debug("consensus node help unavailable: %s", exc)
            else:
                if chain_usages:
                    usages = ("Chain server usage:\n\n" + chain_usages +
                        "\n\nWallet server usage (overrides chain requests):\n\n" + usages)
        return usages

    help_text = HELP_CACHE.method_help(cmd.command)
    if help_text is not None:
        return help_text

    if client is not None:
        try:
            chain_help = await client.help(cmd.command)
        except (RPCError, ServerConnectionError) as exc:
            logger.debug("consensus node help for %s unavailable: %s", cmd.command, exc)
        else:
            if chain_help:
                return chain_help
    raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "no help for method %r", cmd.command)


async def jsonrpc_rescanwallet_async(loader: WalletLoader, cmd: RescanWalletCmd) -> None:
    wallet = _require_wallet(loader)
    network = loader.network_backend()
    if network is None:
        raise ERR_NO_NETWORK.exception()
    await wallet.rescan_from_height(network, cmd.begin_height)
    return None


# Keys, scripts and messages.

async def jsonrpc_dumpprivkey_async(loader: WalletLoader, cmd: AddressCmd) -> str:
    wallet = _require_wallet(loader)
    address = decode_address(wallet.codec, cmd.address)
    try:
        return await wallet.dump_wif(address)
    except WalletError as exc:
        raise _wallet_access_error(exc)


async def jsonrpc_importprivkey_async(loader: WalletLoader, cmd: ImportPrivKeyCmd) -> None:
    """
    Import a key into the imported account. A rescan, if one is asked for, is started in the
    background and this returns without waiting on it.
    """
    wallet = _require_wallet(loader)
    network = loader.network_backend()
    if cmd.rescan and network is None:
        raise ERR_NO_NETWORK.exception()
    if cmd.label is not None and cmd.label != IMPORTED_ACCOUNT_NAME:
        raise ERR_NOT_IMPORTED_ACCOUNT.exception()

    try:
        decoded_wif = wallet.codec.decode_wif(cmd.priv_key)
    except ValueError as exc:
        raise rpc_errorf(RPCErrorCode.INVALID_ADDRESS_OR_KEY, "WIF decode failed: %s", exc)
    if decoded_wif.network_name != wallet.chain_params.name:
        raise rpc_errorf(RPCErrorCode.INVALID_ADDRESS_OR_KEY, "key is not intended for %s",
            wallet.chain_params.name)

    try:
        await wallet.import_private_key(decoded_wif)
    except WalletError as exc:
        # Importing a key the wallet already has is not an error.
        if exc.kind == ErrorKind.EXIST:
            return None
        if exc.kind == ErrorKind.LOCKED:
            raise ERR_WALLET_UNLOCK_NEEDED.exception()
        raise

    if cmd.rescan:
        assert network is not None
        _start_rescan(wallet, network, cmd.scan_from or 0)
    return None


async def jsonrpc_importscript_async(loader: WalletLoader, cmd: ImportScriptCmd) -> None:
    wallet = _require_wallet(loader)
    network = loader.network_backend()
    if cmd.rescan and network is None:
        raise ERR_NO_NETWORK.exception()

    script = decode_hex_str(cmd.hex)
    if len(script) == 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "empty script")

    try:
        await wallet.import_script(script)
    except WalletError as exc:
        if exc.kind == ErrorKind.EXIST:
            return None
        if exc.kind == ErrorKind.LOCKED:
            raise ERR_WALLET_UNLOCK_NEEDED.exception()
        raise

    if cmd.rescan:
        assert network is not None
        _start_rescan(wallet, network, cmd.scan_from or 0)
    return None


async def jsonrpc_listscripts_async(loader: WalletLoader, cmd: NoParamsCmd) -> dict[str, Any]:
    wallet = _require_wallet(loader)
    scripts: list[dict[str, str]] = []
    for redeem_script in await wallet.redeem_scripts():
        address = wallet.codec.script_hash_address(redeem_script)
        scripts.append({
            "hash160": address.hash160().hex(),
            "address": wallet.codec.encode_address(address),
            "redeemscript": redeem_script.hex(),
        })
    return { "scripts": scripts }


async def jsonrpc_signmessage_async(loader: WalletLoader, cmd: SignMessageCmd) -> str:
    wallet = _require_wallet(loader)
    address = decode_address(wallet.codec, cmd.address)
    try:
        signature = await wallet.sign_message(cmd.message, address)
    except WalletError as exc:
        raise _wallet_access_error(exc)
    return base64.b64encode(signature).decode()


async def jsonrpc_verifymessage_async(loader: WalletLoader, cmd: VerifyMessageCmd) -> bool:
    """
    A signature that does not decode, or that the wallet cannot check, does not verify.
    """
    wallet = _require_wallet(loader)
    address = decode_address(wallet.codec, cmd.address)
    # Only addresses with a secp256k1 key can have signed the message.
    if isinstance(address, P2SH_Address):
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER,
            "address must be secp256k1 P2PK or P2PKH")
    try:
        signature = base64.b64decode(cmd.signature, validate=True)
    except binascii.Error as exc:
        raise rpc_errorf(RPCErrorCode.DESERIALIZATION_ERROR, "signature decode failed: %s",
            exc)
    try:
        return await wallet.verify_message(cmd.message, address, signature)
    except (ValueError, WalletError) as exc:
        logger.debug("message failed to verify: %s", exc)
        return False


# Unspent outputs.

async def jsonrpc_listunspent_async(loader: WalletLoader,
        cmd: ListUnspentCmd) -> list[dict[str, Any]]:
    wallet = _require_wallet(loader)
    addresses: set[Address] | None = None
    if cmd.addresses is not None:
        addresses = { decode_address(wallet.codec, text) for text in cmd.addresses }
    try:
        return await wallet.list_unspent(cmd.min_conf, cmd.max_conf, addresses)
    except WalletError as exc:
        if exc.kind == ErrorKind.NOT_EXIST:
            raise ERR_ADDRESS_NOT_IN_WALLET.exception()
        raise


async def jsonrpc_listlockunspent_async(loader: WalletLoader,
        cmd: NoParamsCmd) -> list[dict[str, Any]]:
    wallet = _require_wallet(loader)
    return [ _outpoint_dict(outpoint) for outpoint in await wallet.locked_outpoints() ]


async def jsonrpc_lockunspent_async(loader: WalletLoader, cmd: LockUnspentCmd) -> bool:
    """
    Unlocking with no outputs given unlocks every locked output.
    """
    wallet = _require_wallet(loader)
    if cmd.unlock and len(cmd.transactions) == 0:
        wallet.reset_locked_outpoints()
        return True

    outpoints = [ OutPoint(hash_from_str(transaction_input.txid), transaction_input.vout,
        transaction_input.tree) for transaction_input in cmd.transactions ]
    for outpoint in outpoints:
        if cmd.unlock:
            wallet.unlock_outpoint(outpoint)
        else:
            wallet.lock_outpoint(outpoint)
    return True


# Sending.

def _make_outputs(wallet: Wallet, amounts: dict[str, int]) -> list[TxOutput]:
    outputs: list[TxOutput] = []
    for address_text, amount in amounts.items():
        if amount < 0:
            raise ERR_NEED_POSITIVE_AMOUNT.exception()
        address = decode_address(wallet.codec, address_text)
        outputs.append(TxOutput(value=amount, script=address.to_script_bytes()))
    return outputs


async def _send_amounts(wallet: Wallet, amounts: dict[str, int], account: int,
        min_conf: int) -> str:
    outputs = _make_outputs(wallet, amounts)
    try:
        tx_hash = await wallet.send_outputs(outputs, account, min_conf)
    except WalletError as exc:
        if exc.kind == ErrorKind.LOCKED:
            raise ERR_WALLET_UNLOCK_NEEDED.exception()
        raise
    return hash_to_hex_str(tx_hash)


def _check_no_comments(*comments: str | None) -> None:
    if any(comments):
        raise rpc_errorf(RPCErrorCode.UNIMPLEMENTED, "transaction comments are unsupported")


async def jsonrpc_sendfrom_async(loader: WalletLoader, cmd: SendFromCmd) -> str:
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.from_account)
    _check_no_comments(cmd.comment, cmd.comment_to)
    if cmd.min_conf < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative minconf")
    if cmd.amount < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative amount")
    amounts = { cmd.to_address: coins_to_atoms(cmd.amount) }
    return await _send_amounts(wallet, amounts, account, cmd.min_conf)


async def jsonrpc_sendmany_async(loader: WalletLoader, cmd: SendManyCmd) -> str:
    wallet = _require_wallet(loader)
    account = await _account_number(wallet, cmd.from_account)
    _check_no_comments(cmd.comment)
    if cmd.min_conf < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative minconf")
    amounts = { address_text: coins_to_atoms(amount)
        for address_text, amount in cmd.amounts.items() }
    return await _send_amounts(wallet, amounts, account, cmd.min_conf)


async def jsonrpc_sendtoaddress_async(loader: WalletLoader, cmd: SendToAddressCmd) -> str:
    wallet = _require_wallet(loader)
    _check_no_comments(cmd.comment, cmd.comment_to)
    amount = coins_to_atoms(cmd.amount)
    if amount < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative amount")
    return await _send_amounts(wallet, { cmd.address: amount }, DEFAULT_ACCOUNT_NUMBER,
        DEFAULT_MINCONF)


async def jsonrpc_getwalletfee_async(loader: WalletLoader, cmd: NoParamsCmd) -> float:
    wallet = _require_wallet(loader)
    return atoms_to_coins(wallet.relay_fee())


async def jsonrpc_settxfee_async(loader: WalletLoader, cmd: SetTxFeeCmd) -> bool:
    wallet = _require_wallet(loader)
    fee = coins_to_atoms(cmd.amount)
    if fee < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative amount")
    wallet.set_relay_fee(fee)
    return True


# Signing and multisig redemption.

async def jsonrpc_signrawtransaction_async(loader: WalletLoader,
        cmd: SignRawTransactionCmd) -> SignRawTransactionResultDict:
    wallet = _require_wallet(loader)
    result = await resolve_and_sign(wallet, loader.network_backend(), cmd.raw_tx, cmd.flags,
        cmd.inputs, cmd.priv_keys)
    return signing_result_to_dict(result)


async def jsonrpc_signrawtransactions_async(loader: WalletLoader,
        cmd: SignRawTransactionsCmd) -> dict[str, Any]:
    wallet = _require_wallet(loader)
    results = await sign_transactions(wallet, loader.network_backend(), cmd.raw_txs, cmd.send)
    return { "results": results }


async def jsonrpc_getmultisigoutinfo_async(loader: WalletLoader,
        cmd: GetMultisigOutInfoCmd) -> GetMultisigOutInfoResultDict:
    wallet = _require_wallet(loader)
    # Multisig outputs are always in the regular tree.
    outpoint = OutPoint(hash_from_str(cmd.hash), cmd.index, TxTree.REGULAR)
    p2sh_output = await wallet.fetch_p2sh_multisig_output(outpoint)

    multisig_script = parse_multisig_script(p2sh_output.redeem_script)
    public_keys = [ public_key_bytes.hex() for public_key_bytes in
        multisig_script.public_keys ] if multisig_script is not None else []
    result: GetMultisigOutInfoResultDict = {
        "address": wallet.codec.encode_address(p2sh_output.address),
        "redeemscript": p2sh_output.redeem_script.hex(),
        "m": p2sh_output.threshold,
        "n": p2sh_output.key_count,
        "pubkeys": public_keys,
        "txhash": hash_to_hex_str(p2sh_output.outpoint.tx_hash),
        "blockhash": "",
        "blockheight": 0,
        "spent": False,
        "spentby": "",
        "spentbyindex": 0,
        "amount": atoms_to_coins(p2sh_output.output_amount),
    }
    if p2sh_output.block_hash is not None:
        result["blockhash"] = hash_to_hex_str(p2sh_output.block_hash)
        result["blockheight"] = p2sh_output.block_height
    if p2sh_output.spent_by is not None:
        result["spent"] = True
        result["spentby"] = hash_to_hex_str(p2sh_output.spent_by.tx_hash)
        result["spentbyindex"] = p2sh_output.spent_by.index
    return result


async def jsonrpc_redeemmultisigout_async(loader: WalletLoader,
        cmd: RedeemMultiSigOutCmd) -> SignRawTransactionResultDict:
    """
    Spend a multisig output with whatever signatures the wallet can make, paying it to the given
    address or to a new internal address of the default account.
    """
    wallet = _require_wallet(loader)
    outpoint = OutPoint(hash_from_str(cmd.hash), cmd.index, cmd.tree)
    destination = decode_address(wallet.codec, cmd.address) if cmd.address else None
    result = await multisig.redeem(wallet, loader.network_backend(), outpoint, destination)
    return signing_result_to_dict(result)


async def jsonrpc_redeemmultisigouts_async(loader: WalletLoader,
        cmd: RedeemMultiSigOutsCmd) -> RedeemMultiSigOutsResultDict:
    wallet = _require_wallet(loader)
    address = decode_address(wallet.codec, cmd.from_script_address)
    destination = decode_address(wallet.codec, cmd.to_address) if cmd.to_address else None
    results = await multisig.redeem_all(wallet, loader.network_backend(), address, cmd.number,
        destination)
    return { "results": [ signing_result_to_dict(result) for result in results ] }


# Stake.

async def jsonrpc_getstakeinfo_async(loader: WalletLoader, cmd: NoParamsCmd) -> dict[str, Any]:
    """
    Ticket statistics. These are exact when the consensus node can be asked which tickets were
    missed, otherwise they are the wallet's own estimate.
    """
    wallet = _require_wallet(loader)
    client = _rpc_client(loader)
    if client is not None:
        stake_info = await wallet.stake_info_precise(client)
    else:
        stake_info = await wallet.stake_info()

    proportion_live = 0.0
    if stake_info.pool_size > 0:
        proportion_live = stake_info.live / stake_info.pool_size
    proportion_missed = 0.0
    if stake_info.missed > 0:
        proportion_missed = stake_info.missed / (stake_info.voted + stake_info.missed)

    return {
        "blockheight": stake_info.block_height,
        "difficulty": atoms_to_coins(stake_info.stake_difficulty),
        "totalsubsidy": atoms_to_coins(stake_info.total_subsidy),
        "ownmempooltix": stake_info.own_mempool_tickets,
        "immature": stake_info.immature,
        "unspent": stake_info.unspent,
        "voted": stake_info.voted,
        "revoked": stake_info.revoked,
        "unspentexpired": stake_info.unspent_expired,
        "poolsize": stake_info.pool_size,
        "allmempooltix": stake_info.all_mempool_tickets,
        "live": stake_info.live,
        "proportionlive": proportion_live,
        "missed": stake_info.missed,
        "proportionmissed": proportion_missed,
        "expired": stake_info.expired,
    }


async def jsonrpc_getticketfee_async(loader: WalletLoader, cmd: NoParamsCmd) -> float:
    wallet = _require_wallet(loader)
    return atoms_to_coins(wallet.ticket_fee_increment())


async def jsonrpc_setticketfee_async(loader: WalletLoader, cmd: SetTicketFeeCmd) -> bool:
    wallet = _require_wallet(loader)
    fee = coins_to_atoms(cmd.fee)
    if fee < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative fee")
    wallet.set_ticket_fee_increment(fee)
    return True


async def jsonrpc_gettickets_async(loader: WalletLoader, cmd: GetTicketsCmd) -> dict[str, Any]:
    wallet = _require_wallet(loader)
    client = _rpc_client(loader)
    if client is None:
        raise ERR_CLIENT_NOT_CONNECTED.exception()
    ticket_hashes = await wallet.live_ticket_hashes(client, cmd.include_immature)
    return { "hashes": [ hash_to_hex_str(ticket_hash) for ticket_hash in ticket_hashes ] }


async def jsonrpc_getvotechoices_async(loader: WalletLoader,
        cmd: NoParamsCmd) -> dict[str, Any]:
    wallet = _require_wallet(loader)
    version, choices = await wallet.agenda_choices()
    return {
        "version": version,
        "choices": [ { "agendaid": choice.agenda_id, "choiceid": choice.choice_id }
            for choice in choices ],
    }


async def jsonrpc_setvotechoice_async(loader: WalletLoader, cmd: SetVoteChoiceCmd) -> None:
    wallet = _require_wallet(loader)
    await wallet.set_agenda_choices([ AgendaChoice(cmd.agenda_id, cmd.choice_id) ])
    return None


async def jsonrpc_purchaseticket_async(loader: WalletLoader,
        cmd: PurchaseTicketCmd) -> list[str]:
    """
    Purchase tickets with the spend limit as the most that will be paid for any one ticket.
    The ticket hashes are returned in the order the tickets were purchased.
    """
    wallet = _require_wallet(loader)
    if loader.network_backend() is None:
        raise ERR_NO_NETWORK.exception()

    spend_limit = coins_to_atoms(cmd.spend_limit)
    if spend_limit < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative spend limit")
    account = await _account_number(wallet, cmd.from_account)

    min_conf = DEFAULT_MINCONF
    if cmd.min_conf is not None:
        min_conf = cmd.min_conf
        if min_conf < 0:
            raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "negative minconf")

    ticket_address: Address | None = None
    if cmd.ticket_address:
        ticket_address = decode_address(wallet.codec, cmd.ticket_address)

    ticket_count = 1
    if cmd.num_tickets is not None and cmd.num_tickets > 1:
        ticket_count = cmd.num_tickets

    pool_address: Address | None = None
    pool_fees = 0.0
    if cmd.pool_address:
        pool_address = decode_address(wallet.codec, cmd.pool_address)
        if cmd.pool_fees is None:
            raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "pool address set without pool fee")
        pool_fees = cmd.pool_fees

    ticket_fee = wallet.ticket_fee_increment()
    if cmd.ticket_fee is not None:
        ticket_fee = coins_to_atoms(cmd.ticket_fee)

    request = TicketPurchaseRequest(account=account, spend_limit=spend_limit, min_conf=min_conf,
        ticket_count=ticket_count, ticket_fee=ticket_fee, relay_fee=wallet.relay_fee(),
        expiry=cmd.expiry or 0, ticket_address=ticket_address, pool_address=pool_address,
        pool_fees=pool_fees)
    ticket_hashes = await stake.purchase_tickets(wallet, request)
    return [ hash_to_hex_str(ticket_hash) for ticket_hash in ticket_hashes ]


async def jsonrpc_revoketickets_async(loader: WalletLoader, cmd: NoParamsCmd) -> None:
    wallet = _require_wallet(loader)
    await stake.revoke_tickets(wallet, loader.network_backend())
    return None


async def jsonrpc_stakepooluserinfo_async(loader: WalletLoader,
        cmd: StakePoolUserInfoCmd) -> dict[str, Any]:
    wallet = _require_wallet(loader)
    address = decode_address(wallet.codec, cmd.user)
    user_info = await wallet.stake_pool_user_info(address)

    tickets: list[dict[str, Any]] = []
    for ticket in user_info.tickets:
        status = ticket.status
        if status == "missed" and \
                ticket.spent_by_height - ticket.height >= wallet.chain_params.ticket_expiry:
            status = "expired"
        tickets.append({
            "ticket": hash_to_hex_str(ticket.ticket_hash),
            "ticketheight": ticket.height,
            "status": status,
            "spentby": hash_to_hex_str(ticket.spent_by) if ticket.spent_by is not None else "",
            "spentbyheight": ticket.spent_by_height,
        })
    return {
        "tickets": tickets,
        "invalid": [ hash_to_hex_str(ticket_hash) for ticket_hash in user_info.invalid_tickets ],
    }


async def jsonrpc_startautobuyer_async(loader: WalletLoader, cmd: StartAutoBuyerCmd) -> None:
    """
    Start the ticket buyer with the given settings applied over the configured defaults. The
    passphrase unlocks the wallet for as long as the buyer runs.
    """
    wallet = _require_wallet(loader)
    config = loader.ticket_buyer_base_config()
    if cmd.balance_to_maintain is not None:
        config.balance_to_maintain = cmd.balance_to_maintain
    if cmd.max_fee_per_kb is not None:
        config.max_fee = cmd.max_fee_per_kb
    if cmd.max_price_relative is not None:
        config.max_price_relative = cmd.max_price_relative
    if cmd.max_price_absolute is not None:
        config.max_price_absolute = cmd.max_price_absolute
    if cmd.max_per_block is not None:
        config.max_per_block = cmd.max_per_block
    if cmd.voting_address:
        config.voting_address = decode_address(wallet.codec, cmd.voting_address)
    if cmd.pool_address:
        config.pool_address = decode_address(wallet.codec, cmd.pool_address)
    if cmd.pool_fees is not None:
        config.pool_fees = cmd.pool_fees
    config.validate()

    config.account = await _account_number(wallet, cmd.account)
    await loader.start_ticket_purchase(cmd.passphrase.encode(), config)
    return None


async def jsonrpc_stopautobuyer_async(loader: WalletLoader, cmd: NoParamsCmd) -> None:
    await loader.stop_ticket_purchase()
    return None


# Wallet state.

async def jsonrpc_walletinfo_async(loader: WalletLoader, cmd: NoParamsCmd) -> dict[str, Any]:
    wallet = _require_wallet(loader)
    network = loader.network_backend()
    daemon_connected = network is not None
    client = _rpc_client(loader)
    if client is not None:
        try:
            await client.ping()
        except (RPCError, ServerConnectionError) as exc:
            logger.warning("Ping failed on connected daemon client: %s", exc)
            daemon_connected = False

    vote_bits, vote_bits_extended = wallet.vote_bits()
    vote_version = 0
    if len(vote_bits_extended) >= 4:
        vote_version = int.from_bytes(vote_bits_extended[:4], "little")
    return {
        "daemonconnected": daemon_connected,
        "unlocked": not wallet.locked(),
        "txfee": atoms_to_coins(wallet.relay_fee()),
        "ticketfee": atoms_to_coins(wallet.ticket_fee_increment()),
        "ticketpurchasing": loader.is_purchasing_tickets(),
        "votebits": vote_bits,
        "votebitsextended": vote_bits_extended.hex(),
        "voteversion": vote_version,
        "voting": wallet.voting_enabled(),
    }


async def jsonrpc_walletislocked_async(loader: WalletLoader, cmd: NoParamsCmd) -> bool:
    wallet = _require_wallet(loader)
    return wallet.locked()


async def jsonrpc_walletlock_async(loader: WalletLoader, cmd: NoParamsCmd) -> None:
    wallet = _require_wallet(loader)
    wallet.lock()
    return None


async def jsonrpc_walletpassphrase_async(loader: WalletLoader, cmd: WalletPassphraseCmd) -> None:
    """
    Unlock the wallet for `timeout` seconds. A timeout of zero leaves it unlocked until it is
    explicitly locked.
    """
    wallet = _require_wallet(loader)
    if cmd.timeout < 0:
        raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "timeout must be non-negative")
    timeout = float(cmd.timeout) if cmd.timeout != 0 else None
    await wallet.unlock(cmd.passphrase.encode(), timeout)
    return None


async def jsonrpc_walletpassphrasechange_async(loader: WalletLoader,
        cmd: WalletPassphraseChangeCmd) -> None:
    wallet = _require_wallet(loader)
    try:
        await wallet.change_private_passphrase(cmd.old_passphrase.encode(),
            cmd.new_passphrase.encode())
    except WalletError as exc:
        if exc.kind == ErrorKind.PASSPHRASE:
            raise rpc_errorf(RPCErrorCode.WALLET_PASSPHRASE_INCORRECT, "incorrect passphrase")
        raise
    return None


# Methods that are known but deliberately not served.

async def jsonrpc_unimplemented_async(loader: WalletLoader, cmd: Any) -> Any:
    raise ERR_UNIMPLEMENTED.exception()


async def jsonrpc_unsupported_async(loader: WalletLoader, cmd: Any) -> Any:
    raise ERR_UNSUPPORTED.exception()


HANDLERS: Mapping[str, HandlerDescriptor] = MappingProxyType({
    # Wallet methods that differ from or do not exist in the consensus node.
    "accountaddressindex": HandlerDescriptor(jsonrpc_accountaddressindex_async,
        AccountAddressIndexCmd),
    "accountsyncaddressindex": HandlerDescriptor(jsonrpc_accountsyncaddressindex_async,
        AccountSyncAddressIndexCmd),
    "createnewaccount": HandlerDescriptor(jsonrpc_createnewaccount_async, CreateNewAccountCmd),
    "dumpprivkey": HandlerDescriptor(jsonrpc_dumpprivkey_async, AddressCmd),
    "getaccount": HandlerDescriptor(jsonrpc_getaccount_async, AddressCmd),
    "getaccountaddress": HandlerDescriptor(jsonrpc_getaccountaddress_async, AccountCmd),
    "getaddressesbyaccount": HandlerDescriptor(jsonrpc_getaddressesbyaccount_async,
        AccountCmd),
    "getbalance": HandlerDescriptor(jsonrpc_getbalance_async, GetBalanceCmd),
    "getbestblock": HandlerDescriptor(jsonrpc_getbestblock_async, NoParamsCmd),
    "getbestblockhash": HandlerDescriptor(jsonrpc_getbestblockhash_async, NoParamsCmd),
    "getblockcount": HandlerDescriptor(jsonrpc_getblockcount_async, NoParamsCmd),
    "getinfo": HandlerDescriptor(jsonrpc_getinfo_async, NoParamsCmd),
    "getmasterpubkey": HandlerDescriptor(jsonrpc_getmasterpubkey_async, OptionalAccountCmd),
    "getmultisigoutinfo": HandlerDescriptor(jsonrpc_getmultisigoutinfo_async,
        GetMultisigOutInfoCmd),
    "getnewaddress": HandlerDescriptor(jsonrpc_getnewaddress_async, GetNewAddressCmd),
    "getrawchangeaddress": HandlerDescriptor(jsonrpc_getrawchangeaddress_async,
        OptionalAccountCmd),
    "getstakeinfo": HandlerDescriptor(jsonrpc_getstakeinfo_async, NoParamsCmd),
    "getticketfee": HandlerDescriptor(jsonrpc_getticketfee_async, NoParamsCmd),
    "gettickets": HandlerDescriptor(jsonrpc_gettickets_async, GetTicketsCmd),
    "getunconfirmedbalance": HandlerDescriptor(jsonrpc_getunconfirmedbalance_async,
        OptionalAccountCmd),
    "getvotechoices": HandlerDescriptor(jsonrpc_getvotechoices_async, NoParamsCmd),
    "getwalletfee": HandlerDescriptor(jsonrpc_getwalletfee_async, NoParamsCmd),
    "help": HandlerDescriptor(jsonrpc_help_async, HelpCmd),
    "importprivkey": HandlerDescriptor(jsonrpc_importprivkey_async, ImportPrivKeyCmd),
    "importscript": HandlerDescriptor(jsonrpc_importscript_async, ImportScriptCmd),
    "keypoolrefill": HandlerDescriptor(jsonrpc_keypoolrefill_async, KeyPoolRefillCmd),
    "listaccounts": HandlerDescriptor(jsonrpc_listaccounts_async, ListAccountsCmd),
    "listlockunspent": HandlerDescriptor(jsonrpc_listlockunspent_async, NoParamsCmd),
    "listscripts": HandlerDescriptor(jsonrpc_listscripts_async, NoParamsCmd),
    "listunspent": HandlerDescriptor(jsonrpc_listunspent_async, ListUnspentCmd),
    "lockunspent": HandlerDescriptor(jsonrpc_lockunspent_async, LockUnspentCmd),
    "purchaseticket": HandlerDescriptor(jsonrpc_purchaseticket_async, PurchaseTicketCmd),
    "redeemmultisigout": HandlerDescriptor(jsonrpc_redeemmultisigout_async,
        RedeemMultiSigOutCmd),
    "redeemmultisigouts": HandlerDescriptor(jsonrpc_redeemmultisigouts_async,
        RedeemMultiSigOutsCmd),
    "renameaccount": HandlerDescriptor(jsonrpc_renameaccount_async, RenameAccountCmd),
    "rescanwallet": HandlerDescriptor(jsonrpc_rescanwallet_async, RescanWalletCmd),
    "revoketickets": HandlerDescriptor(jsonrpc_revoketickets_async, NoParamsCmd),
    "sendfrom": HandlerDescriptor(jsonrpc_sendfrom_async, SendFromCmd),
    "sendmany": HandlerDescriptor(jsonrpc_sendmany_async, SendManyCmd),
    "sendtoaddress": HandlerDescriptor(jsonrpc_sendtoaddress_async, SendToAddressCmd),
    "setticketfee": HandlerDescriptor(jsonrpc_setticketfee_async, SetTicketFeeCmd),
    "settxfee": HandlerDescriptor(jsonrpc_settxfee_async, SetTxFeeCmd),
    "setvotechoice": HandlerDescriptor(jsonrpc_setvotechoice_async, SetVoteChoiceCmd),
    "signmessage": HandlerDescriptor(jsonrpc_signmessage_async, SignMessageCmd),
    "signrawtransaction": HandlerDescriptor(jsonrpc_signrawtransaction_async,
        SignRawTransactionCmd),
    "signrawtransactions": HandlerDescriptor(jsonrpc_signrawtransactions_async,
        SignRawTransactionsCmd),
    "stakepooluserinfo": HandlerDescriptor(jsonrpc_stakepooluserinfo_async,
        StakePoolUserInfoCmd),
    "startautobuyer": HandlerDescriptor(jsonrpc_startautobuyer_async, StartAutoBuyerCmd),
    "stopautobuyer": HandlerDescriptor(jsonrpc_stopautobuyer_async, NoParamsCmd),
    "validateaddress": HandlerDescriptor(jsonrpc_validateaddress_async, AddressCmd),
    "verifymessage": HandlerDescriptor(jsonrpc_verifymessage_async, VerifyMessageCmd),
    "version": HandlerDescriptor(jsonrpc_version_async, NoParamsCmd),
    "walletinfo": HandlerDescriptor(jsonrpc_walletinfo_async, NoParamsCmd),
    "walletislocked": HandlerDescriptor(jsonrpc_walletislocked_async, NoParamsCmd),
    "walletlock": HandlerDescriptor(jsonrpc_walletlock_async, NoParamsCmd),
    "walletpassphrase": HandlerDescriptor(jsonrpc_walletpassphrase_async, WalletPassphraseCmd),
    "walletpassphrasechange": HandlerDescriptor(jsonrpc_walletpassphrasechange_async,
        WalletPassphraseChangeCmd),

    # Reference methods which are not yet implemented.
    "addmultisigaddress": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "addticket": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "backupwallet": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "consolidate": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "createmultisig": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "generatevote": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "getreceivedbyaccount": HandlerDescriptor(jsonrpc_unimplemented_async, None,
        no_help=True),
    "getreceivedbyaddress": HandlerDescriptor(jsonrpc_unimplemented_async, None,
        no_help=True),
    "gettransaction": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "getwalletinfo": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "importwallet": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "listaddressgroupings": HandlerDescriptor(jsonrpc_unimplemented_async, None,
        no_help=True),
    "listaddresstransactions": HandlerDescriptor(jsonrpc_unimplemented_async, None,
        no_help=True),
    "listalltransactions": HandlerDescriptor(jsonrpc_unimplemented_async, None,
        no_help=True),
    "listreceivedbyaccount": HandlerDescriptor(jsonrpc_unimplemented_async, None,
        no_help=True),
    "listreceivedbyaddress": HandlerDescriptor(jsonrpc_unimplemented_async, None,
        no_help=True),
    "listsinceblock": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "listtransactions": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "sendtomultisig": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "sweepaccount": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),
    "ticketsforaddress": HandlerDescriptor(jsonrpc_unimplemented_async, None, no_help=True),

    # Reference methods which this wallet will never serve.
    "dumpwallet": HandlerDescriptor(jsonrpc_unsupported_async, None, no_help=True),
    "encryptwallet": HandlerDescriptor(jsonrpc_unsupported_async, None, no_help=True),
    "move": HandlerDescriptor(jsonrpc_unsupported_async, None, no_help=True),
    "setaccount": HandlerDescriptor(jsonrpc_unsupported_async, None, no_help=True),
})

HELP_CACHE = HelpCache(HANDLERS)


def _log_failure(method: str, exception: BaseException, error: RPCError) -> None:
    if isinstance(exception, (RPCError, ServerConnectionError, asyncio.TimeoutError)) or \
            (isinstance(exception, WalletError) and exception.kind != ErrorKind.BUG):
        logger.debug("method %s failed: %s", method, error.message)
    else:
        logger.error("method %s failed unexpectedly", method, exc_info=exception)


def lazy_apply_handler(loader: WalletLoader, method: str,
        params: list[Any] | dict[str, Any]) -> LazyHandler:
    """
    Resolve a request to the call that serves it. Nothing is done until the returned function
    is awaited, and it never raises for a failed request. The failure is returned as the error.
    """
    handler = HANDLERS.get(method)
    if handler is None:
        async def passthrough_async() -> tuple[Any, RPCError | None]:
            network = loader.network_backend()
            if network is None:
                return None, ERR_CLIENT_NOT_CONNECTED.exception()
            try:
                client = rpc_client_from_backend(network)
            except WalletError:
                return None, ERR_PASSTHROUGH_REQUIRES_RPC.exception()
            try:
                return await client.raw_request(method, params), None
            except Exception as exc:
                error = convert_error(exc)
                _log_failure(method, exc, error)
                return None, error
        return passthrough_async

    async def handler_async() -> tuple[Any, RPCError | None]:
        command: Any = None
        if handler.command_type is not None:
            try:
                command = parse_command(handler.command_type, params)
            except CommandParseError as exc:
                logger.debug("method %s has invalid parameters: %s", method, exc)
                return None, RPCError(RPCErrorCode.INVALID_REQUEST, f"Invalid request: {exc}")
        try:
            return await handler.fn(loader, command), None
        except Exception as exc:
            error = convert_error(exc)
            _log_failure(method, exc, error)
            return None, error
    return handler_async
