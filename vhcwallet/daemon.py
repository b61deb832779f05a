"""
Wiring the command engine into a hosting process from its configuration.

The host owns the wallet. It creates the loader, the optional consensus node backend and the
JSON-RPC server here, hands the wallet to the loader once it is opened, and runs the server until
it is asked to stop.
"""

from __future__ import annotations
import asyncio
import os
from typing import cast

from .chain_rpc import RPCBackend, RPCClient
from .chainparams import params_for_network
from .loader import WalletLoader
from .logs import logs
from .rpcserver import RPCServer
from .simple_config import SimpleConfig


logger = logs.get_logger("daemon")


def configure_logging(config: SimpleConfig) -> None:
    """
    Raises `ValueError` if the configured `debuglevel` names an unknown subsystem or level.
    """
    log_path = config.get_log_file_path()
    if log_path is not None:
        logs.add_file_output(log_path)
    debug_level = config.get_debug_level()
    if debug_level:
        logs.set_levels(debug_level)


def create_network_backend(config: SimpleConfig) -> RPCBackend | None:
    """
    Returns `None` if no consensus node is configured.
    """
    url, username, password = config.get_consensus_rpc()
    if url is None:
        return None
    client = RPCClient(url, username, password)
    return RPCBackend(client, params_for_network(config.is_testnet()))


def create_rpc_server(config: SimpleConfig, loader: WalletLoader) -> RPCServer | None:
    """
    Returns `None` if the server cannot run with the configured credentials.
    """
    host = cast(str, os.environ.get("VHCWALLET_RPC_HOST")) \
        if os.environ.get("VHCWALLET_RPC_HOST") else config.get_rpc_host()
    port = int(cast(str, os.environ.get("VHCWALLET_RPC_PORT"))) \
        if os.environ.get("VHCWALLET_RPC_PORT") else config.get_rpc_port()

    username, password = config.get_rpc_credentials()
    # If the password is given and given as empty, then we do not check credentials.
    if password == "":
        logger.warning("No password set for JSON-RPC wallet API. "
            "No credentials required for access.")
    elif username is None:
        logger.error("JSON-RPC wallet API server not running: invalid user name or password")
        return None

    return RPCServer(loader, host=host, port=port, username=username, password=password,
        request_timeout=config.get_request_timeout())


class Daemon:
    def __init__(self, config: SimpleConfig) -> None:
        self.config = config
        configure_logging(config)
        self.loader = WalletLoader(config.get_ticketbuyer_defaults())
        self.network = create_network_backend(config)
        self.loader.set_network_backend(self.network)
        self.rpc_server = create_rpc_server(config, self.loader)

    async def run_async(self) -> None:
        if self.rpc_server is None:
            logger.error("Nothing to run")
            return
        assert not self.rpc_server.is_running
        try:
            await self.rpc_server.run_async()
        except asyncio.CancelledError:
            logger.info("Stopping")
            raise
        finally:
            await self.stop_async()

    async def stop_async(self) -> None:
        await self.loader.unload_wallet()
        if self.rpc_server is not None and self.rpc_server.is_running:
            logger.info("Waiting for JSON-RPC API shutdown")
            await self.rpc_server.shutdown_async()
        if self.network is not None:
            logger.info("Waiting for network shutdown")
            await self.network.rpc_client.close()
            self.network = None
            self.loader.set_network_backend(None)
        logger.info("Stopped")
