"""
Generated help for the locally handled JSON-RPC methods.

The text is generated from the method parameter shapes the first time a locale is asked for and
is kept for the life of the process. Request handlers may run on any thread the host uses, so the
cache is populated under a lock.
"""

from __future__ import annotations
import dataclasses
import threading
import types
import typing
from typing import Any, Mapping, Protocol, Type, Union

from .commands import command_usage, is_optional_field, wire_name
from .constants import DEFAULT_LOCALE
from .logs import logs


logger = logs.get_logger("rpc-server")


class HelpSource(Protocol):
    command_type: Type[Any] | None
    no_help: bool


SUMMARIES: dict[str, dict[str, str]] = {
    "en_US": {
        "accountaddressindex": "Returns the next unused child index of an account branch.",
        "accountsyncaddressindex": "Marks every address of an account branch up to the "
            "index as used.",
        "createnewaccount": "Creates a new account. The wallet must be unlocked.",
        "dumpprivkey": "Returns the private key of a wallet address in wallet import format.",
        "getaccount": "Returns the name of the account an address belongs to.",
        "getaccountaddress": "Returns the current external address of an account.",
        "getaddressesbyaccount": "Returns every address derived for an account.",
        "getbalance": "Returns the balances of one account, or of every account when the "
            "account is \"*\" or omitted.",
        "getbestblock": "Returns the hash and height of the main chain tip.",
        "getbestblockhash": "Returns the hash of the main chain tip.",
        "getblockcount": "Returns the height of the main chain tip.",
        "getinfo": "Returns wallet and, when connected, consensus node state.",
        "getmasterpubkey": "Returns the extended public key of an account.",
        "getmultisigoutinfo": "Returns what the wallet knows about a pay to script hash "
            "multisig output.",
        "getnewaddress": "Derives the next external address of an account.",
        "getrawchangeaddress": "Derives the next internal address of an account.",
        "getstakeinfo": "Returns statistics about the tickets owned by the wallet.",
        "getticketfee": "Returns the ticket fee per kilobyte.",
        "gettickets": "Returns the hashes of the live tickets owned by the wallet.",
        "getunconfirmedbalance": "Returns the unconfirmed balance of an account.",
        "getvotechoices": "Returns the current vote choices of every agenda.",
        "getwalletfee": "Returns the transaction fee per kilobyte.",
        "help": "Returns the usage of every method, or the help of a single method.",
        "importprivkey": "Imports a private key into the imported account.",
        "importscript": "Imports a redeem script.",
        "keypoolrefill": "Has no effect, addresses are derived as they are needed.",
        "listaccounts": "Returns the spendable balance of every account.",
        "listlockunspent": "Returns the outputs locked against spending.",
        "listscripts": "Returns every imported redeem script.",
        "listunspent": "Returns the unspent outputs of the wallet.",
        "lockunspent": "Locks or unlocks outputs against spending.",
        "purchaseticket": "Purchases one or more tickets.",
        "redeemmultisigout": "Spends a multisig output, signing with the wallet's keys.",
        "redeemmultisigouts": "Spends the unspent multisig outputs of a script hash address, "
            "signing with the wallet's keys.",
        "renameaccount": "Renames an account.",
        "rescanwallet": "Rescans the block chain for wallet transactions from a height.",
        "revoketickets": "Revokes missed and expired tickets.",
        "sendfrom": "Sends an amount from an account to an address.",
        "sendmany": "Sends amounts from an account to several addresses.",
        "sendtoaddress": "Sends an amount from the default account to an address.",
        "setticketfee": "Sets the ticket fee per kilobyte.",
        "settxfee": "Sets the transaction fee per kilobyte.",
        "setvotechoice": "Sets the vote choice of an agenda.",
        "signmessage": "Signs a message with the private key of an address.",
        "signrawtransaction": "Signs the inputs of a raw transaction that the given or wallet "
            "keys can sign.",
        "signrawtransactions": "Signs several raw transactions and optionally publishes them.",
        "stakepooluserinfo": "Returns the tickets of a stake pool user.",
        "startautobuyer": "Starts the automatic ticket buyer.",
        "stopautobuyer": "Stops the automatic ticket buyer.",
        "validateaddress": "Returns what the wallet knows about an address.",
        "verifymessage": "Verifies a signed message.",
        "version": "Returns the JSON-RPC API versions of the wallet and consensus node.",
        "walletinfo": "Returns the state of the wallet.",
        "walletislocked": "Returns whether the wallet is locked.",
        "walletlock": "Locks the wallet.",
        "walletpassphrase": "Unlocks the wallet for a number of seconds, or until it is "
            "locked if the timeout is zero.",
        "walletpassphrasechange": "Changes the wallet passphrase.",
    },
}


def _json_type_name(annotation: Any) -> str:
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return " or ".join(_json_type_name(member_type)
            for member_type in typing.get_args(annotation) if member_type is not type(None))
    if origin is list:
        return "array"
    if origin is dict or dataclasses.is_dataclass(annotation):
        return "object"
    if annotation is bool:
        return "boolean"
    if annotation in (int, float):
        return "numeric"
    if annotation is str:
        return "string"
    return "value"


def method_help_text(method: str, command_type: Type[Any] | None,
        summaries: Mapping[str, str]) -> str:
    lines = [ command_usage(method, command_type), "" ]
    summary = summaries.get(method)
    if summary is not None:
        lines.extend([ summary, "" ])
    fields = dataclasses.fields(command_type) if command_type is not None else ()
    if fields:
        hints = typing.get_type_hints(command_type)
        lines.append("Arguments:")
        for i, field in enumerate(fields, 1):
            qualifier = "optional" if is_optional_field(field) else "required"
            if is_optional_field(field) and field.default not in (None, dataclasses.MISSING):
                default = field.default
                qualifier += ", default=" + (str(default).lower() if isinstance(default, bool)
                    else str(default))
            lines.append(f"{i}. {wire_name(field)} ({_json_type_name(hints[field.name])}, "
                f"{qualifier})")
    else:
        lines.append("Arguments: none")
    return "\n".join(lines)


@dataclasses.dataclass
class _LocaleHelp:
    usages: str
    methods: dict[str, str]


class HelpCache:
    """
    The help of every method that has it, generated once per locale.
    """
    def __init__(self, handlers: Mapping[str, HelpSource]) -> None:
        self._handlers = handlers
        self._lock = threading.Lock()
        self._locales: dict[str, _LocaleHelp] = {}

    def _generate(self, locale: str) -> _LocaleHelp:
        summaries = SUMMARIES.get(locale)
        if summaries is None:
            logger.warning("no help for locale %s, using %s", locale, DEFAULT_LOCALE)
            summaries = SUMMARIES[DEFAULT_LOCALE]
        methods = { method: method_help_text(method, handler.command_type, summaries)
            for method, handler in sorted(self._handlers.items()) if not handler.no_help }
        usages = "\n".join(command_usage(method, self._handlers[method].command_type)
            for method in methods)
        return _LocaleHelp(usages, methods)

    def _get(self, locale: str) -> _LocaleHelp:
        with self._lock:
            locale_help = self._locales.get(locale)
            if locale_help is None:
                locale_help = self._locales[locale] = self._generate(locale)
            return locale_help

    def usages(self, locale: str=DEFAULT_LOCALE) -> str:
        return self._get(locale).usages

    def method_help(self, method: str, locale: str=DEFAULT_LOCALE) -> str | None:
        return self._get(locale).methods.get(method)
