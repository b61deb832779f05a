from __future__ import annotations
import dataclasses
import threading
from typing import Any, Type
import unittest.mock

from vhcwallet.commands import GetBalanceCmd, NoParamsCmd, WalletPassphraseCmd
from vhcwallet.help import HelpCache, method_help_text, SUMMARIES


@dataclasses.dataclass
class Handler:
    command_type: Type[Any] | None
    no_help: bool = False


HANDLERS = {
    "walletpassphrase": Handler(WalletPassphraseCmd),
    "getbalance": Handler(GetBalanceCmd),
    "getinfo": Handler(NoParamsCmd),
    "getbestblock": Handler(None),
    "debuglevel": Handler(NoParamsCmd, no_help=True),
}


def test_usages() -> None:
    cache = HelpCache(HANDLERS)
    assert cache.usages().split("\n") == [
        "getbalance (account) (minconf=1)",
        "getbestblock",
        "getinfo",
        'walletpassphrase "passphrase" timeout',
    ]


def test_method_help() -> None:
    cache = HelpCache(HANDLERS)
    help_text = cache.method_help("getbalance")
    assert help_text is not None
    assert help_text.split("\n") == [
        "getbalance (account) (minconf=1)",
        "",
        SUMMARIES["en_US"]["getbalance"],
        "",
        "Arguments:",
        "1. account (string, optional)",
        "2. minconf (numeric, optional, default=1)",
    ]
    assert cache.method_help("debuglevel") is None
    assert cache.method_help("nosuchmethod") is None


def test_method_help_without_arguments() -> None:
    help_text = method_help_text("getbestblock", None, {})
    assert help_text == "getbestblock\n\nArguments: none"


def test_unknown_locale_falls_back() -> None:
    cache = HelpCache(HANDLERS)
    with unittest.mock.patch("vhcwallet.help.logger") as mock_logger:
        assert cache.usages("xx_XX") == cache.usages()
    assert mock_logger.warning.call_count == 1


def test_concurrent_first_use() -> None:
    cache = HelpCache(HANDLERS)
    barrier = threading.Barrier(8)
    results: list[str] = []

    def get_usages() -> None:
        barrier.wait()
        results.append(cache.usages())

    with unittest.mock.patch.object(cache, "_generate", wraps=cache._generate) as mock_generate:
        threads = [ threading.Thread(target=get_usages) for _i in range(8) ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    assert mock_generate.call_count == 1
    assert len(results) == 8
    assert all(result is results[0] for result in results)
