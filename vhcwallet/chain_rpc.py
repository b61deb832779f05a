"""
The JSON-RPC client used to talk to a trusted consensus node, and the network backend that is
built on top of it. When the network backend is one of these, the wallet server can pass
requests it does not handle through to the node and can ask the node about chain state it would
otherwise have to trust an unauthenticated peer for.
"""

from __future__ import annotations
from http import HTTPStatus
import itertools
import json
from typing import Any, cast

import aiohttp
from bitcoinx import hash_to_hex_str, hex_str_to_hash

from .chainparams import ChainParams
from .exceptions import BadServerError, ErrorKind, ServerConnectionError, WalletError
from .interfaces import ChainRPCClient, NetworkBackend
from .logs import logs
from .rpc_error import RPCError, RPCErrorCode
from .transaction import Transaction
from .types import OutPoint
from .util import coins_to_atoms


logger = logs.get_logger("chain-rpc")

DEFAULT_TIMEOUT = 30.0


class RPCClient:
    def __init__(self, url: str, username: str | None=None, password: str | None=None,
            session: aiohttp.ClientSession | None=None, timeout: float=DEFAULT_TIMEOUT) -> None:
        self._url = url
        self._auth = aiohttp.BasicAuth(username, password or "") \
            if username is not None else None
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._request_ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def raw_request(self, method: str, params: list[Any] | dict[str, Any]) -> Any:
        """
        Make a call and return the `result` member of the response exactly as the node gave it.

        Raises `RPCError` with the node's code and message if the node returned an error.
        Raises `ServerConnectionError` if the node could not be reached.
        Raises `BadServerError` if the node did not return a JSON-RPC response.
        """
        request_data = {
            "jsonrpc": "1.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        try:
            async with self._get_session().post(self._url, json=request_data,
                    auth=self._auth) as response:
                if response.status == HTTPStatus.UNAUTHORIZED:
                    raise ServerConnectionError("Consensus RPC server rejected the credentials")
                try:
                    response_data = await response.json(content_type=None)
                except json.JSONDecodeError:
                    raise BadServerError(f"Bad response status code: {response.status}, "
                        f"reason: {response.reason}")
        except aiohttp.ClientError:
            # NOTE(exception-details) The wrapped exception is only logged, the caller only needs
            #     to know the node is unreachable.
            logger.debug("Wrapped aiohttp exception", exc_info=True)
            raise ServerConnectionError(f"Unable to establish server connection: {self._url}")

        if not isinstance(response_data, dict):
            raise BadServerError("Response is not a JSON-RPC response object")
        error_data = response_data.get("error")
        if error_data is not None:
            if not isinstance(error_data, dict):
                raise BadServerError("Response error is not a JSON-RPC error object")
            error_code = error_data.get("code", RPCErrorCode.MISC_ERROR)
            if not isinstance(error_code, int) or isinstance(error_code, bool):
                raise BadServerError("Response error code is not an integer")
            raise RPCError(error_code, str(error_data.get("message", "")))
        return response_data.get("result")

    async def get_tx_out(self, tx_hash: bytes, index: int, tree: int,
            include_mempool: bool=True) -> dict[str, Any] | None:
        """
        Returns `None` if the output is spent or unknown to the node.
        """
        result = await self.raw_request("gettxout",
            [ hash_to_hex_str(tx_hash), index, tree, include_mempool ])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise BadServerError("Invalid gettxout result")
        return cast(dict[str, Any], result)

    async def get_info(self) -> dict[str, Any]:
        return cast(dict[str, Any], await self.raw_request("getinfo", []))

    async def version(self) -> dict[str, Any]:
        return cast(dict[str, Any], await self.raw_request("version", []))

    async def ping(self) -> None:
        await self.raw_request("ping", [])

    async def help(self, command: str | None=None) -> str:
        params = [] if command is None else [ command ]
        return cast(str, await self.raw_request("help", params))

    async def get_stake_difficulty(self) -> dict[str, Any]:
        return cast(dict[str, Any], await self.raw_request("getstakedifficulty", []))

    async def get_ticket_pool_value(self) -> float:
        return cast(float, await self.raw_request("getticketpoolvalue", []))

    async def send_raw_transaction(self, transaction_bytes: bytes) -> bytes:
        transaction_id = await self.raw_request("sendrawtransaction",
            [ transaction_bytes.hex(), False ])
        return hex_str_to_hash(transaction_id)

    async def exists_missed_tickets(self, ticket_hashes: list[bytes]) -> list[bool]:
        """
        The node takes the concatenated hashes and returns a bit set with one bit per hash.
        """
        if not ticket_hashes:
            return []
        blob = b"".join(ticket_hashes).hex()
        bitset_hex = await self.raw_request("existsmissedtickets", [ blob ])
        try:
            bitset = bytes.fromhex(bitset_hex)
        except (TypeError, ValueError):
            raise BadServerError("Invalid existsmissedtickets result")
        if len(bitset) * 8 < len(ticket_hashes):
            raise BadServerError("Truncated existsmissedtickets result")
        return [ bitset[i // 8] & (1 << (i % 8)) != 0 for i in range(len(ticket_hashes)) ]


class RPCBackend:
    """
    A network backend where all chain access goes through a trusted consensus node.
    """
    def __init__(self, client: RPCClient, chain_params: ChainParams) -> None:
        self._client = client
        self._chain_params = chain_params

    @property
    def rpc_client(self) -> RPCClient:
        return self._client

    async def publish_transactions(self, *transactions: Transaction) -> None:
        for transaction in transactions:
            await self._client.send_raw_transaction(transaction.to_bytes())

    async def load_tx_filter(self, reload: bool, addresses: list[str],
            outpoints: list[OutPoint]) -> None:
        outpoint_objects = [ { "hash": hash_to_hex_str(outpoint.tx_hash),
            "tree": outpoint.tree, "index": outpoint.index } for outpoint in outpoints ]
        await self._client.raw_request("loadtxfilter", [ reload, addresses, outpoint_objects ])

    async def stake_difficulty(self) -> int:
        result = await self._client.get_stake_difficulty()
        return coins_to_atoms(result["next"])

    async def average_stake_difficulty(self) -> int:
        # The node does not report an average ticket price. It is estimated as the value of
        # the ticket pool over the number of live tickets the pool targets.
        pool_value = await self._client.get_ticket_pool_value()
        target_pool_tickets = self._chain_params.ticket_pool_size * \
            self._chain_params.tickets_per_block
        return coins_to_atoms(pool_value) // target_pool_tickets


def rpc_client_from_backend(backend: NetworkBackend | None) -> ChainRPCClient:
    """
    Raises `WalletError` if there is no backend or it is not backed by a consensus node.
    """
    if isinstance(backend, RPCBackend):
        return backend.rpc_client
    raise WalletError(ErrorKind.INVALID, "this operation requires the network backend to be "
        "the consensus RPC server", "chain.RPCClientFromBackend")
