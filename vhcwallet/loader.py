from __future__ import annotations
from typing import Any

from .exceptions import ErrorKind, WalletError
from .interfaces import NetworkBackend, Wallet
from .logs import logs
from .ticketbuyer import TicketBuyer, TicketBuyerConfig


logger = logs.get_logger("loader")


class WalletLoader:
    """
    The context every request is served in. The hosting process loads the wallet and connects
    the network backend, and either may be absent at any time. Requests only borrow them.
    """

    def __init__(self, ticketbuyer_defaults: dict[str, Any] | None=None) -> None:
        self._wallet: Wallet | None = None
        self._network: NetworkBackend | None = None
        self._ticket_buyer: TicketBuyer | None = None
        self._ticketbuyer_defaults = dict(ticketbuyer_defaults or {})

    def loaded_wallet(self) -> Wallet | None:
        return self._wallet

    def network_backend(self) -> NetworkBackend | None:
        return self._network

    def set_network_backend(self, network: NetworkBackend | None) -> None:
        self._network = network

    def set_wallet(self, wallet: Wallet) -> None:
        if self._wallet is not None:
            raise WalletError(ErrorKind.INVALID, "wallet already loaded")
        self._wallet = wallet
        self._ticket_buyer = TicketBuyer(wallet, self.network_backend)
        logger.debug("wallet loaded")

    async def unload_wallet(self) -> None:
        await self.stop_ticket_purchase()
        self._wallet = None
        self._ticket_buyer = None
        logger.debug("wallet unloaded")

    def ticket_buyer(self) -> TicketBuyer | None:
        return self._ticket_buyer

    def is_purchasing_tickets(self) -> bool:
        return self._ticket_buyer is not None and self._ticket_buyer.is_running()

    def ticket_buyer_base_config(self) -> TicketBuyerConfig:
        return TicketBuyerConfig.from_config_values(self._ticketbuyer_defaults)

    async def start_ticket_purchase(self, passphrase: bytes, config: TicketBuyerConfig) -> None:
        if self._ticket_buyer is None:
            raise WalletError(ErrorKind.INVALID, "wallet must be loaded")
        await self._ticket_buyer.start(passphrase, config)

    async def stop_ticket_purchase(self) -> None:
        if self._ticket_buyer is not None:
            await self._ticket_buyer.stop()
