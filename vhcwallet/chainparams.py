"""
The protocol constants of each supported network that the command engine depends on. Address
encoding and everything else that is network specific belongs to the collaborators.
"""

from __future__ import annotations
import dataclasses


@dataclasses.dataclass(frozen=True)
class ChainParams:
    name: str
    # The number of blocks after maturity that a ticket stays live before it expires.
    ticket_expiry: int
    ticket_maturity: int
    ticket_pool_size: int
    tickets_per_block: int
    max_fresh_stake_per_block: int
    stake_validation_height: int
    # Seconds.
    target_time_per_block: int

    def is_testnet(self) -> bool:
        return self.name != MAINNET_PARAMS.name


MAINNET_PARAMS = ChainParams(
    name="mainnet",
    ticket_expiry=40960,
    ticket_maturity=256,
    ticket_pool_size=8192,
    tickets_per_block=5,
    max_fresh_stake_per_block=20,
    stake_validation_height=4096,
    target_time_per_block=5 * 60,
)

TESTNET_PARAMS = ChainParams(
    name="testnet",
    ticket_expiry=6144,
    ticket_maturity=16,
    ticket_pool_size=1024,
    tickets_per_block=5,
    max_fresh_stake_per_block=20,
    stake_validation_height=768,
    target_time_per_block=2 * 60,
)


def params_for_network(testnet: bool) -> ChainParams:
    return TESTNET_PARAMS if testnet else MAINNET_PARAMS
