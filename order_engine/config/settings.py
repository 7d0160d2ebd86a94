from typing import Dict, Optional, Tuple, Type, Any
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource
from eth_utils import is_address
import yaml
import os

# Contract addresses of the 0x v1 TestRPC snapshot (network 50)
TESTRPC_NETWORK_ID = 50
TESTRPC_EXCHANGE_ADDRESS = "0x48bacb9266a570d521063ef5dd96e61686dbe788"
TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS = "0x1dc4c1cefef38a777b15aa20260a54e584b16c48"
TESTRPC_ZRX_ADDRESS = "0x1d7022f5b17d2f8b695918fb48fa1089c9f85401"
TESTRPC_WETH_ADDRESS = "0x871dd7c2b4b25e1aa18728e9d5f2af4c4e431f5c"


def _check_address(value: str) -> str:
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"{value!r} is not a valid address")
    return value.lower()


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """
    A simple settings source that loads variables from a YAML file
    at the project's config/config.yaml location.
    """
    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        pass

    def __call__(self) -> Dict[str, Any]:
        config_file = os.getenv("CONFIG_FILE", "config/config.yaml")
        if os.path.exists(config_file):
            with open(config_file) as f:
                return yaml.safe_load(f) or {}
        return {}


class TokenConfig(BaseModel):
    """A tradeable token: contract address and decimal precision."""
    address: str
    decimals: int = Field(18, ge=0, le=77)

    @field_validator("address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        return _check_address(value)


def _default_tokens() -> Dict[str, TokenConfig]:
    return {
        "ZRX": TokenConfig(address=TESTRPC_ZRX_ADDRESS, decimals=18),
        "WETH": TokenConfig(address=TESTRPC_WETH_ADDRESS, decimals=18),
    }


class Config(BaseSettings):
    # Environment
    env: str = Field("development", description="Environment: development, staging, production")
    debug: bool = False

    # Ledger
    rpc_url: str = "http://localhost:8545"
    rpc_timeout: float = 30.0
    network_id: int = TESTRPC_NETWORK_ID

    # Protocol deployment
    exchange_address: str = TESTRPC_EXCHANGE_ADDRESS
    token_transfer_proxy_address: str = TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS
    wrapped_token_symbol: str = "WETH"
    fee_token_symbol: str = "ZRX"
    tokens: Dict[str, TokenConfig] = Field(default_factory=_default_tokens)

    # Orders
    order_ttl_seconds: int = Field(3600, gt=0)
    add_personal_message_prefix: bool = False

    # Fills
    should_throw_on_insufficient_balance_or_allowance: bool = True
    attempt_fill_if_precheck_fails: bool = False
    check_allowances_before_fill: bool = True

    # Allowances; anything at or above the threshold counts as unlimited
    allowance_threshold: int = Field(2 ** 255, gt=0)

    # Transactions
    transaction_gas_limit: Optional[int] = None
    confirmation_timeout: Optional[float] = 120.0
    confirmation_poll_interval: float = Field(1.0, gt=0)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = "logs/engine.log"

    @field_validator("exchange_address", "token_transfer_proxy_address")
    @classmethod
    def validate_contract_address(cls, value: str) -> str:
        return _check_address(value)

    @field_validator("tokens")
    @classmethod
    def normalize_symbols(cls, value: Dict[str, TokenConfig]) -> Dict[str, TokenConfig]:
        return {symbol.upper(): token for symbol, token in value.items()}

    def validate_protocol(self) -> tuple[bool, str]:
        """
        Validate configuration against the token registry.

        Returns:
            Tuple of (is_valid, error_message)
        """
        for symbol in (self.wrapped_token_symbol, self.fee_token_symbol):
            if symbol.upper() not in self.tokens:
                return False, f"Token {symbol} is not configured in tokens"

        if self.confirmation_timeout is not None and self.confirmation_timeout <= 0:
            return False, "confirmation_timeout must be positive or null"

        return True, "Configuration valid"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )
