# Pytest looks here for fixtures
from typing import Any
import unittest.mock

from aiohttp import web
from aiohttp.test_utils import TestClient
import pytest

from vhcwallet.chain_rpc import RPCBackend
from vhcwallet.chainparams import TESTNET_PARAMS
from vhcwallet.loader import WalletLoader
from vhcwallet import rpcserver

from .util import FakeCodec, FakeWallet, InstrumentedRPCClient


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def rpc_client(events: list[str]) -> InstrumentedRPCClient:
    return InstrumentedRPCClient({}, events)


@pytest.fixture
def rpc_backend(rpc_client: InstrumentedRPCClient) -> RPCBackend:
    return RPCBackend(rpc_client, TESTNET_PARAMS) # type: ignore[arg-type]


@pytest.fixture
def loader() -> WalletLoader:
    return WalletLoader()


@pytest.fixture
def mock_wallet() -> Any:
    """A wallet where every collaborator method is a mock, for handlers that only relay."""
    wallet = unittest.mock.Mock()
    wallet.chain_params = TESTNET_PARAMS
    wallet.codec = FakeCodec()
    for name in ("unlock", "change_private_passphrase", "account_number", "account_name",
            "account_of_address", "have_address", "account_addresses",
            "account_address_indexes", "sync_last_returned_address", "current_address",
            "new_external_address", "new_internal_address", "master_pubkey", "next_account",
            "rename_account", "account_balance", "account_balances", "dump_wif",
            "import_private_key", "import_script", "redeem_scripts", "sign_message",
            "verify_message", "fetch_p2sh_multisig_output",
            "unspent_multisig_credits_for_address", "prepare_redeem_multisig_output",
            "sign_transaction", "publish_transaction", "send_outputs", "list_unspent",
            "locked_outpoints", "rescan_from_height", "stake_info", "stake_info_precise",
            "live_ticket_hashes", "unspent_tickets", "revoke_ticket_hashes", "purchase_tickets",
            "agenda_choices", "set_agenda_choices", "stake_pool_user_info"):
        setattr(wallet, name, unittest.mock.AsyncMock())
    return wallet


@pytest.fixture
async def server_tester(aiohttp_client: Any) -> TestClient:
    """mock client - see: https://docs.aiohttp.org/en/stable/client_quickstart.html"""
    web_application = web.Application()
    mock_server = unittest.mock.Mock()
    mock_server.loader = WalletLoader()
    mock_server.request_timeout = 5.0
    web_application["server"] = mock_server
    rpcserver.setup_web_application(web_application)
    return await aiohttp_client(web_application)
