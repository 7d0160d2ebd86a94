"""
Tests for configuration and the protocol address registry.
"""
import pytest
import yaml
from pydantic import ValidationError

from order_engine.api.exceptions import ConfigurationError, UnknownToken
from order_engine.api.registry import ProtocolAddressRegistry, TokenInfo
from order_engine.config import Config
from order_engine.config.settings import (
    TESTRPC_EXCHANGE_ADDRESS,
    TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS,
    TESTRPC_WETH_ADDRESS,
    TESTRPC_ZRX_ADDRESS,
)

from conftest import USDC_ADDRESS


@pytest.fixture
def no_config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("CONFIG_FILE", str(tmp_path / "absent.yaml"))


def make_config(**kwargs):
    return Config(_env_file=None, **kwargs)


class TestConfig:

    def test_defaults(self, no_config_file):
        config = make_config()
        assert config.network_id == 50
        assert config.exchange_address == TESTRPC_EXCHANGE_ADDRESS
        assert set(config.tokens) == {"ZRX", "WETH"}
        assert config.allowance_threshold == 2 ** 255
        assert config.should_throw_on_insufficient_balance_or_allowance is True
        assert config.add_personal_message_prefix is False
        assert config.validate_protocol() == (True, "Configuration valid")

    def test_addresses_normalized(self, no_config_file):
        config = make_config(exchange_address=TESTRPC_EXCHANGE_ADDRESS.upper().replace("0X", "0x"))
        assert config.exchange_address == TESTRPC_EXCHANGE_ADDRESS

    def test_invalid_address(self, no_config_file):
        with pytest.raises(ValidationError):
            make_config(token_transfer_proxy_address="0x1234")

    def test_invalid_token_decimals(self, no_config_file):
        with pytest.raises(ValidationError):
            make_config(tokens={"ZRX": {"address": TESTRPC_ZRX_ADDRESS, "decimals": 78}})

    def test_symbols_uppercased(self, no_config_file):
        config = make_config(tokens={
            "zrx": {"address": TESTRPC_ZRX_ADDRESS},
            "weth": {"address": TESTRPC_WETH_ADDRESS},
        })
        assert set(config.tokens) == {"ZRX", "WETH"}
        assert config.tokens["ZRX"].decimals == 18

    def test_missing_wrapped_token(self, no_config_file):
        config = make_config(tokens={"ZRX": {"address": TESTRPC_ZRX_ADDRESS}})
        valid, message = config.validate_protocol()
        assert not valid
        assert "WETH" in message

    def test_env_override(self, no_config_file, monkeypatch):
        monkeypatch.setenv("ORDER_TTL_SECONDS", "120")
        assert make_config().order_ttl_seconds == 120

    def test_yaml_source(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "network_id": 1337,
            "transaction_gas_limit": 400000,
            "tokens": {
                "ZRX": {"address": TESTRPC_ZRX_ADDRESS, "decimals": 18},
                "WETH": {"address": TESTRPC_WETH_ADDRESS, "decimals": 18},
                "USDC": {"address": USDC_ADDRESS, "decimals": 6},
            },
        }))
        monkeypatch.setenv("CONFIG_FILE", str(path))

        config = make_config()
        assert config.network_id == 1337
        assert config.transaction_gas_limit == 400000
        assert config.tokens["USDC"].decimals == 6

    def test_init_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("network_id: 1337\n")
        monkeypatch.setenv("CONFIG_FILE", str(path))
        assert make_config(network_id=42).network_id == 42


class TestRegistry:

    def test_lookup(self, registry):
        assert registry.token("zrx").address == TESTRPC_ZRX_ADDRESS
        assert registry.token(TESTRPC_WETH_ADDRESS.upper().replace("0X", "0x")).symbol == "WETH"
        assert registry.token_address("USDC") == USDC_ADDRESS
        assert registry.symbols == ["USDC", "WETH", "ZRX"]
        assert registry.wrapped_token.symbol == "WETH"
        assert registry.fee_token.symbol == "ZRX"

    @pytest.mark.parametrize("token", ["DAI", "0x" + "99" * 20, "", None])
    def test_unknown_token(self, registry, token):
        with pytest.raises(UnknownToken):
            registry.token(token)

    def test_unknown_token_is_lookup_error(self, registry):
        with pytest.raises(LookupError):
            registry.token("DAI")

    def test_invalid_exchange_address(self):
        with pytest.raises(ConfigurationError):
            ProtocolAddressRegistry(50, "0x12", TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS, [])

    def test_missing_wrapped_token_fails_fast(self):
        with pytest.raises(UnknownToken):
            ProtocolAddressRegistry(
                50, TESTRPC_EXCHANGE_ADDRESS, TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS,
                [TokenInfo("ZRX", TESTRPC_ZRX_ADDRESS, 18)],
            )

    def test_duplicate_token(self):
        with pytest.raises(ConfigurationError):
            ProtocolAddressRegistry(
                50, TESTRPC_EXCHANGE_ADDRESS, TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS,
                [
                    TokenInfo("ZRX", TESTRPC_ZRX_ADDRESS, 18),
                    TokenInfo("zrx", TESTRPC_WETH_ADDRESS, 18),
                ],
            )

    def test_from_config(self, no_config_file):
        registry = ProtocolAddressRegistry.from_config(make_config())
        assert registry.network_id == 50
        assert registry.token_transfer_proxy_address == TESTRPC_TOKEN_TRANSFER_PROXY_ADDRESS
        assert registry.token("WETH").decimals == 18
