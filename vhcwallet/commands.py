"""
The parameter shapes of every locally handled JSON-RPC method.

Each method has a frozen dataclass describing its parameters in positional order. The wire name
of a parameter is given by `param(...)`, and is used both for parameters passed by name and in
the generated usage text. A parameter with a default is optional, as are any after it.
"""

from __future__ import annotations
import dataclasses
import types
import typing
from typing import Any, Type, TypeVar, Union

from .types import RawTxInput


T = TypeVar("T")

MISSING = dataclasses.MISSING


class CommandParseError(ValueError):
    pass


def param(wire_name: str, default: Any=MISSING) -> Any:
    if default is MISSING:
        return dataclasses.field(metadata={ "name": wire_name })
    return dataclasses.field(default=default, metadata={ "name": wire_name })


def wire_name(field: dataclasses.Field[Any]) -> str:
    return str(field.metadata.get("name", field.name))


def is_optional_field(field: dataclasses.Field[Any]) -> bool:
    return field.default is not MISSING or field.default_factory is not MISSING


# Nested parameter objects.

RAW_TX_INPUT_WIRE_NAMES = { "txid": "txid", "vout": "vout", "tree": "tree",
    "script_pub_key": "scriptPubKey", "redeem_script": "redeemScript" }


@dataclasses.dataclass(frozen=True)
class TransactionInput:
    txid: str = param("txid")
    vout: int = param("vout")
    tree: int = param("tree", 0)


# Method parameter shapes.

@dataclasses.dataclass(frozen=True)
class NoParamsCmd:
    pass


@dataclasses.dataclass(frozen=True)
class HelpCmd:
    command: str | None = param("command", None)


@dataclasses.dataclass(frozen=True)
class AccountAddressIndexCmd:
    account: str = param("account")
    branch: int = param("branch")


@dataclasses.dataclass(frozen=True)
class AccountSyncAddressIndexCmd:
    account: str = param("account")
    branch: int = param("branch")
    index: int = param("index")


@dataclasses.dataclass(frozen=True)
class CreateNewAccountCmd:
    account: str = param("account")


@dataclasses.dataclass(frozen=True)
class AddressCmd:
    address: str = param("address")


@dataclasses.dataclass(frozen=True)
class AccountCmd:
    account: str = param("account")


@dataclasses.dataclass(frozen=True)
class OptionalAccountCmd:
    account: str | None = param("account", None)


@dataclasses.dataclass(frozen=True)
class GetBalanceCmd:
    account: str | None = param("account", None)
    min_conf: int = param("minconf", 1)


@dataclasses.dataclass(frozen=True)
class GetMultisigOutInfoCmd:
    hash: str = param("hash")
    index: int = param("index")


@dataclasses.dataclass(frozen=True)
class GetNewAddressCmd:
    account: str | None = param("account", None)
    gap_policy: str | None = param("gappolicy", None)


@dataclasses.dataclass(frozen=True)
class GetTicketsCmd:
    include_immature: bool = param("includeimmature")


@dataclasses.dataclass(frozen=True)
class ImportPrivKeyCmd:
    priv_key: str = param("privkey")
    label: str | None = param("label", None)
    rescan: bool = param("rescan", True)
    scan_from: int | None = param("scanfrom", None)


@dataclasses.dataclass(frozen=True)
class ImportScriptCmd:
    hex: str = param("hex")
    rescan: bool = param("rescan", True)
    scan_from: int | None = param("scanfrom", None)


@dataclasses.dataclass(frozen=True)
class KeyPoolRefillCmd:
    new_size: int | None = param("newsize", None)


@dataclasses.dataclass(frozen=True)
class ListAccountsCmd:
    min_conf: int = param("minconf", 1)


@dataclasses.dataclass(frozen=True)
class ListUnspentCmd:
    min_conf: int = param("minconf", 1)
    max_conf: int = param("maxconf", 9999999)
    addresses: list[str] | None = param("addresses", None)


@dataclasses.dataclass(frozen=True)
class LockUnspentCmd:
    unlock: bool = param("unlock")
    transactions: list[TransactionInput] = param("transactions")


@dataclasses.dataclass(frozen=True)
class PurchaseTicketCmd:
    from_account: str = param("fromaccount")
    spend_limit: float = param("spendlimit")
    min_conf: int | None = param("minconf", None)
    ticket_address: str | None = param("ticketaddress", None)
    num_tickets: int | None = param("numtickets", None)
    pool_address: str | None = param("pooladdress", None)
    pool_fees: float | None = param("poolfees", None)
    expiry: int | None = param("expiry", None)
    comment: str | None = param("comment", None)
    ticket_fee: float | None = param("ticketfee", None)


@dataclasses.dataclass(frozen=True)
class RedeemMultiSigOutCmd:
    hash: str = param("hash")
    index: int = param("index")
    tree: int = param("tree")
    address: str | None = param("address", None)


@dataclasses.dataclass(frozen=True)
class RedeemMultiSigOutsCmd:
    from_script_address: str = param("fromscraddress")
    to_address: str | None = param("toaddress", None)
    number: int | None = param("number", None)


@dataclasses.dataclass(frozen=True)
class RenameAccountCmd:
    old_account: str = param("oldaccount")
    new_account: str = param("newaccount")


@dataclasses.dataclass(frozen=True)
class RescanWalletCmd:
    begin_height: int = param("beginheight", 0)


@dataclasses.dataclass(frozen=True)
class SendFromCmd:
    from_account: str = param("fromaccount")
    to_address: str = param("toaddress")
    amount: float = param("amount")
    min_conf: int = param("minconf", 1)
    comment: str | None = param("comment", None)
    comment_to: str | None = param("commentto", None)


@dataclasses.dataclass(frozen=True)
class SendManyCmd:
    from_account: str = param("fromaccount")
    amounts: dict[str, float] = param("amounts")
    min_conf: int = param("minconf", 1)
    comment: str | None = param("comment", None)


@dataclasses.dataclass(frozen=True)
class SendToAddressCmd:
    address: str = param("address")
    amount: float = param("amount")
    comment: str | None = param("comment", None)
    comment_to: str | None = param("commentto", None)


@dataclasses.dataclass(frozen=True)
class SetTicketFeeCmd:
    fee: float = param("fee")


@dataclasses.dataclass(frozen=True)
class SetTxFeeCmd:
    amount: float = param("amount")


@dataclasses.dataclass(frozen=True)
class SetVoteChoiceCmd:
    agenda_id: str = param("agendaid")
    choice_id: str = param("choiceid")


@dataclasses.dataclass(frozen=True)
class SignMessageCmd:
    address: str = param("address")
    message: str = param("message")


@dataclasses.dataclass(frozen=True)
class SignRawTransactionCmd:
    raw_tx: str = param("rawtx")
    inputs: list[RawTxInput] | None = param("inputs", None)
    priv_keys: list[str] | None = param("privkeys", None)
    flags: str = param("flags", "ALL")


@dataclasses.dataclass(frozen=True)
class SignRawTransactionsCmd:
    raw_txs: list[str] = param("rawtxs")
    send: bool = param("send", True)


@dataclasses.dataclass(frozen=True)
class StakePoolUserInfoCmd:
    user: str = param("user")


@dataclasses.dataclass(frozen=True)
class StartAutoBuyerCmd:
    account: str = param("account")
    passphrase: str = param("passphrase")
    balance_to_maintain: int | None = param("balancetomaintain", None)
    max_fee_per_kb: int | None = param("maxfeeperkb", None)
    max_price_relative: float | None = param("maxpricerelative", None)
    max_price_absolute: int | None = param("maxpriceabsolute", None)
    voting_address: str | None = param("votingaddress", None)
    pool_address: str | None = param("pooladdress", None)
    pool_fees: float | None = param("poolfees", None)
    max_per_block: int | None = param("maxperblock", None)


@dataclasses.dataclass(frozen=True)
class VerifyMessageCmd:
    address: str = param("address")
    signature: str = param("signature")
    message: str = param("message")


@dataclasses.dataclass(frozen=True)
class WalletPassphraseCmd:
    passphrase: str = param("passphrase")
    timeout: int = param("timeout")


@dataclasses.dataclass(frozen=True)
class WalletPassphraseChangeCmd:
    old_passphrase: str = param("oldpassphrase")
    new_passphrase: str = param("newpassphrase")


# Parsing.

def _type_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", str(annotation))


def _convert(value: Any, annotation: Any, path: str) -> Any:
    if annotation is Any:
        return value

    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        member_types = typing.get_args(annotation)
        if value is None and type(None) in member_types:
            return None
        errors: list[str] = []
        for member_type in member_types:
            if member_type is type(None):
                continue
            try:
                return _convert(value, member_type, path)
            except CommandParseError as exc:
                errors.append(str(exc))
        raise CommandParseError(errors[0] if errors else f"{path}: invalid value")

    if origin is list:
        if not isinstance(value, list):
            raise CommandParseError(f"{path}: expected array")
        (item_type,) = typing.get_args(annotation)
        return [ _convert(item, item_type, f"{path}[{i}]") for i, item in enumerate(value) ]

    if origin is dict:
        if not isinstance(value, dict):
            raise CommandParseError(f"{path}: expected object")
        key_type, item_type = typing.get_args(annotation)
        return { _convert(key, key_type, path): _convert(item, item_type, f"{path}.{key}")
            for key, item in value.items() }

    if annotation is bool:
        if not isinstance(value, bool):
            raise CommandParseError(f"{path}: expected boolean")
        return value
    if annotation is int:
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if not isinstance(value, int) or isinstance(value, bool):
            raise CommandParseError(f"{path}: expected integer")
        return value
    if annotation is float:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise CommandParseError(f"{path}: expected number")
        return float(value)
    if annotation is str:
        if not isinstance(value, str):
            raise CommandParseError(f"{path}: expected string")
        return value

    if dataclasses.is_dataclass(annotation):
        if not isinstance(value, dict):
            raise CommandParseError(f"{path}: expected object")
        return _build_dataclass(annotation, value, path)

    raise CommandParseError(f"{path}: unsupported parameter type {_type_name(annotation)}")


def _object_wire_name(cls: Type[Any], field: dataclasses.Field[Any]) -> str:
    if cls is RawTxInput:
        return RAW_TX_INPUT_WIRE_NAMES[field.name]
    return wire_name(field)


def _build_dataclass(cls: Type[T], value: dict[str, Any], path: str) -> T:
    hints = typing.get_type_hints(cls)
    kwargs: dict[str, Any] = {}
    for field in dataclasses.fields(cls): # type: ignore[arg-type]
        name = _object_wire_name(cls, field)
        if name in value and value[name] is not None:
            kwargs[field.name] = _convert(value[name], hints[field.name], f"{path}.{name}")
        elif not is_optional_field(field):
            raise CommandParseError(f"{path}: missing field '{name}'")
    return cls(**kwargs)


def parse_command(command_type: Type[T], parameters: list[Any] | dict[str, Any]) -> T:
    """
    Parse the `params` member of a request into the given parameter shape.

    Raises `CommandParseError` if the parameters do not fit the shape.
    """
    fields = dataclasses.fields(command_type) # type: ignore[arg-type]
    hints = typing.get_type_hints(command_type)
    names = [ wire_name(field) for field in fields ]

    if isinstance(parameters, dict):
        unknown_names = sorted(set(parameters) - set(names))
        if unknown_names:
            raise CommandParseError(f"unknown named parameter '{unknown_names[0]}'")
        values = [ parameters.get(name) for name in names ]
    else:
        if len(parameters) > len(fields):
            raise CommandParseError(f"too many parameters, expected at most {len(fields)} "
                f"got {len(parameters)}")
        values = list(parameters) + [ None ] * (len(fields) - len(parameters))

    kwargs: dict[str, Any] = {}
    for field, name, value in zip(fields, names, values):
        if value is None:
            if not is_optional_field(field):
                raise CommandParseError(f"missing required parameter '{name}'")
            continue
        kwargs[field.name] = _convert(value, hints[field.name], name)
    return command_type(**kwargs)


def command_usage(method: str, command_type: Type[Any] | None) -> str:
    """The one line usage of a method, as listed by `help`."""
    if command_type is None:
        return method
    parts = [ method ]
    for field in dataclasses.fields(command_type):
        name = wire_name(field)
        if is_optional_field(field):
            default = field.default
            parts.append(f"({name})" if default is None or default is MISSING else
                f"({name}={str(default).lower() if isinstance(default, bool) else default})")
        else:
            parts.append(f'"{name}"' if str in _field_types(command_type, field) else name)
    return " ".join(parts)


def _field_types(command_type: Type[Any], field: dataclasses.Field[Any]) -> tuple[Any, ...]:
    annotation = typing.get_type_hints(command_type)[field.name]
    if typing.get_origin(annotation) in (Union, types.UnionType):
        return typing.get_args(annotation)
    return (annotation,)
