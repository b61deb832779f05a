# vhcwallet - stake-capable wallet daemon
# Copyright (C) 2019-2020 The ElectrumSV Developers
# Copyright (C) 2024 The vhcwallet developers
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""
The automated ticket buyer.

While running, the buyer wakes up once per interval and, if the chain has advanced since its
last purchase, compares the spendable balance of the configured account and the current ticket
price against its limits and buys as many tickets as are allowed. Purchases go through
`stake.purchase_tickets`, exactly as a manual `purchaseticket` call does.
"""

from __future__ import annotations
import asyncio
import dataclasses
from typing import Any, Callable

from bitcoinx import Address

from .constants import AutomationRunState, DEFAULT_ACCOUNT_NUMBER
from .exceptions import ErrorKind, WalletError
from .interfaces import NetworkBackend, Wallet
from .logs import logs
from .rpc_error import rpc_errorf, RPCErrorCode
from .simple_config import DEFAULT_TICKETBUYER_INTERVAL
from .stake import purchase_tickets
from .txrules import valid_pool_fee_rate
from .types import TicketPurchaseRequest
from .util import coins_to_atoms


logger = logs.get_logger("ticketbuyer")

# How long `stop` waits for an in progress purchase to complete before cancelling it.
STOP_GRACE_PERIOD = 5.0


@dataclasses.dataclass
class TicketBuyerConfig:
    account: int = DEFAULT_ACCOUNT_NUMBER
    # Amounts are in atoms.
    balance_to_maintain: int = 0
    max_fee: int = 0
    max_price_absolute: int = 0
    max_price_relative: float = 0.0
    max_per_block: int = 0
    voting_address: Address | None = None
    pool_address: Address | None = None
    pool_fees: float = 0.0
    min_conf: int = 1
    # Seconds between purchase attempts.
    interval: float = DEFAULT_TICKETBUYER_INTERVAL

    @classmethod
    def from_config_values(cls, values: dict[str, Any]) -> TicketBuyerConfig:
        """
        Build the base configuration from the `ticketbuyer.*` settings. Amounts are given in
        coins.

        Raises `RPCError` (INVALID_PARAMETER) for invalid amounts.
        """
        config = cls()
        if "account" in values:
            config.account = int(values["account"])
        for field_name in ("balance_to_maintain", "max_fee", "max_price_absolute"):
            if field_name in values:
                setattr(config, field_name, coins_to_atoms(values[field_name]))
        if "max_price_relative" in values:
            config.max_price_relative = float(values["max_price_relative"])
        if "max_per_block" in values:
            config.max_per_block = int(values["max_per_block"])
        if "interval" in values:
            config.interval = float(values["interval"])
        return config

    def validate(self) -> None:
        """
        Raises `RPCError` (INVALID_PARAMETER) naming the first invalid setting.
        """
        for wire_name, value in (("balancetomaintain", self.balance_to_maintain),
                ("maxfeeperkb", self.max_fee), ("maxpriceabsolute", self.max_price_absolute),
                ("maxpricerelative", self.max_price_relative),
                ("maxperblock", self.max_per_block)):
            if value < 0:
                raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER,
                    "%s (%s) must be non-negative", wire_name, value)

        if self.pool_fees == 0 and self.pool_address is not None:
            raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "pooladdress set without poolfees")
        if self.pool_fees != 0 and self.pool_address is None:
            raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "poolfees set without pooladdress")
        if self.pool_fees != 0 and not valid_pool_fee_rate(self.pool_fees):
            raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "invalid poolfees %s",
                self.pool_fees)
        if self.interval <= 0:
            raise rpc_errorf(RPCErrorCode.INVALID_PARAMETER, "interval must be positive")


class TicketBuyer:
    """
    The buyer for one wallet. It is either stopped, or running with a background task. The
    configuration of a run is fixed when it is started.
    """

    def __init__(self, wallet: Wallet,
            get_network_backend: Callable[[], NetworkBackend | None]) -> None:
        self._wallet = wallet
        self._get_network_backend = get_network_backend

        self._state = AutomationRunState.STOPPED
        self._config: TicketBuyerConfig | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._state_lock = asyncio.Lock()
        self._last_purchase_height = -1

    @property
    def state(self) -> AutomationRunState:
        return self._state

    def is_running(self) -> bool:
        return self._state == AutomationRunState.RUNNING

    @property
    def config(self) -> TicketBuyerConfig | None:
        return self._config

    async def start(self, passphrase: bytes, config: TicketBuyerConfig) -> None:
        """
        Unlock the wallet with the passphrase and start buying tickets. The passphrase is only
        used to unlock the wallet, it is not retained.

        Raises `RPCError` if the configuration is invalid.
        Raises `WalletError` if the buyer is already running or the passphrase is incorrect.
        """
        config.validate()
        async with self._state_lock:
            if self._state == AutomationRunState.RUNNING:
                raise WalletError(ErrorKind.INVALID, "ticket purchaser already started")

            await self._wallet.unlock(passphrase, None)

            self._config = dataclasses.replace(config)
            self._last_purchase_height = -1
            self._stop_event = asyncio.Event()
            self._task = asyncio.create_task(self._run_async(self._config, self._stop_event),
                name="ticketbuyer")
            self._task.add_done_callback(self._on_task_done)
            self._state = AutomationRunState.RUNNING
        logger.info("Ticket purchaser started for account %d", config.account)

    async def stop(self) -> None:
        """
        Stop buying tickets. When this returns no further purchases will be started. Stopping a
        buyer that is not running does nothing.
        """
        async with self._state_lock:
            if self._state == AutomationRunState.STOPPED:
                return
            self._state = AutomationRunState.STOPPED
            self._stop_event.set()
            task, self._task = self._task, None

        if task is not None:
            # Let a purchase that is already being made complete, but do not wait on it forever.
            done, _pending = await asyncio.wait({ task }, timeout=STOP_GRACE_PERIOD)
            if not done:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        logger.info("Ticket purchaser stopped")

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exception = task.exception()
        if exception is not None:
            logger.error("Ticket purchaser exited unexpectedly", exc_info=exception)
            if self._task is task:
                self._task = None
                self._state = AutomationRunState.STOPPED

    async def _run_async(self, config: TicketBuyerConfig, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.purchase_once(config)
            except Exception:
                # A failed round is not fatal, the next round may well succeed.
                logger.exception("Ticket purchase attempt failed")

            try:
                await asyncio.wait_for(stop_event.wait(), config.interval)
            except asyncio.TimeoutError:
                pass

    async def purchase_once(self, config: TicketBuyerConfig) -> list[bytes]:
        """
        Make one round of purchases. At most one round is made per block.
        """
        network = self._get_network_backend()
        if network is None:
            logger.debug("Not purchasing tickets, no network backend")
            return []

        wallet = self._wallet
        _tip_hash, tip_height = wallet.main_chain_tip()
        if tip_height == self._last_purchase_height:
            return []

        ticket_price = await network.stake_difficulty()
        if ticket_price <= 0:
            return []
        if config.max_price_absolute > 0 and ticket_price > config.max_price_absolute:
            logger.info("Not purchasing tickets, price %d exceeds the absolute limit %d",
                ticket_price, config.max_price_absolute)
            return []
        if config.max_price_relative > 0:
            average_price = await network.average_stake_difficulty()
            relative_limit = int(average_price * config.max_price_relative)
            if ticket_price > relative_limit:
                logger.info("Not purchasing tickets, price %d exceeds the relative limit %d",
                    ticket_price, relative_limit)
                return []

        ticket_fee = wallet.ticket_fee_increment()
        if config.max_fee > 0 and ticket_fee > config.max_fee:
            ticket_fee = config.max_fee

        balance = await wallet.account_balance(config.account, config.min_conf)
        available = balance.spendable - config.balance_to_maintain
        ticket_count = available // ticket_price if available > 0 else 0
        maximum_count = wallet.chain_params.max_fresh_stake_per_block
        if config.max_per_block > 0:
            maximum_count = min(maximum_count, config.max_per_block)
        ticket_count = min(ticket_count, maximum_count)
        if ticket_count == 0:
            logger.debug("Not purchasing tickets, available balance %d below price %d",
                available, ticket_price)
            return []

        request = TicketPurchaseRequest(account=config.account, spend_limit=ticket_price,
            min_conf=config.min_conf, ticket_count=ticket_count, ticket_fee=ticket_fee,
            relay_fee=wallet.relay_fee(), ticket_address=config.voting_address,
            pool_address=config.pool_address, pool_fees=config.pool_fees)
        ticket_hashes = await purchase_tickets(wallet, request)
        self._last_purchase_height = tip_height
        return ticket_hashes
