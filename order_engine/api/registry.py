"""
Protocol address registry.

Resolves well-known contract addresses and token metadata for one network.
Built once at startup from configuration and read-only afterwards.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

from eth_utils import is_address

from order_engine.api.exceptions import ConfigurationError, UnknownToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenInfo:
    """Registered token."""
    symbol: str
    address: str
    decimals: int


class ProtocolAddressRegistry:
    """
    Typed symbol/address lookup for tokens plus the exchange deployment.

    Lookups accept a symbol (case-insensitive) or a token address and fail
    with UnknownToken instead of returning an undefined value.
    """

    def __init__(
        self,
        network_id: int,
        exchange_address: str,
        token_transfer_proxy_address: str,
        tokens: Iterable[TokenInfo],
        wrapped_token_symbol: str = "WETH",
        fee_token_symbol: str = "ZRX",
    ):
        self.network_id = network_id
        self.exchange_address = self._validate_address("exchange_address", exchange_address)
        self.token_transfer_proxy_address = self._validate_address(
            "token_transfer_proxy_address", token_transfer_proxy_address
        )

        self._by_symbol: Dict[str, TokenInfo] = {}
        self._by_address: Dict[str, TokenInfo] = {}
        for token in tokens:
            address = self._validate_address(f"tokens.{token.symbol}", token.address)
            if not 0 <= token.decimals <= 77:
                raise ConfigurationError(f"Token {token.symbol} has invalid decimals {token.decimals}")
            info = TokenInfo(symbol=token.symbol.upper(), address=address, decimals=token.decimals)
            if info.symbol in self._by_symbol or address in self._by_address:
                raise ConfigurationError(f"Duplicate token registration: {info.symbol} {address}")
            self._by_symbol[info.symbol] = info
            self._by_address[address] = info

        # Fail fast on a misconfigured deployment
        self.wrapped_token = self.token(wrapped_token_symbol)
        self.fee_token = self.token(fee_token_symbol)

        logger.debug(
            f"Registry for network {network_id}: exchange={self.exchange_address}, "
            f"tokens={sorted(self._by_symbol)}"
        )

    @staticmethod
    def _validate_address(name: str, value: str) -> str:
        if not isinstance(value, str) or not is_address(value):
            raise ConfigurationError(f"{name} is not a valid address: {value!r}")
        return value.lower()

    @classmethod
    def from_config(cls, config) -> "ProtocolAddressRegistry":
        """Build the registry from a Config instance."""
        tokens = [
            TokenInfo(symbol=symbol, address=token.address, decimals=token.decimals)
            for symbol, token in config.tokens.items()
        ]
        return cls(
            network_id=config.network_id,
            exchange_address=config.exchange_address,
            token_transfer_proxy_address=config.token_transfer_proxy_address,
            tokens=tokens,
            wrapped_token_symbol=config.wrapped_token_symbol,
            fee_token_symbol=config.fee_token_symbol,
        )

    def token(self, symbol_or_address: str) -> TokenInfo:
        """
        Resolve a token by symbol or address.

        Raises:
            UnknownToken: Not registered
        """
        if not isinstance(symbol_or_address, str):
            raise UnknownToken(repr(symbol_or_address))
        key = symbol_or_address.strip()
        if key.lower() in self._by_address:
            return self._by_address[key.lower()]
        if key.upper() in self._by_symbol:
            return self._by_symbol[key.upper()]
        raise UnknownToken(symbol_or_address)

    def token_address(self, symbol_or_address: str) -> str:
        return self.token(symbol_or_address).address

    @property
    def symbols(self) -> List[str]:
        return sorted(self._by_symbol)
