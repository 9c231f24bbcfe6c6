"""
Unit tests for the crypto settings service.
"""

import pytest
from datetime import datetime, timezone

from core.exceptions import InvalidSettingsError
from models.crypto_settings import DEFAULT_CRYPTO_INSTRUCTIONS, CryptoSettings, WalletAddress
from services.crypto_settings import CryptoSettingsService
from services.market import build_services
from services.stores import SettingsStore


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


# Fixtures

@pytest.fixture
def settings_store():
    return SettingsStore()


@pytest.fixture
def service(settings_store):
    return CryptoSettingsService(settings_store, clock=lambda: NOW)


# Tests

class TestDefaults:
    def test_first_read_has_defaults(self, service):
        settings = service.get_settings()

        assert settings.usdt_network == "TRC20"
        assert settings.bitcoin.address == ""
        assert settings.instructions == DEFAULT_CRYPTO_INSTRUCTIONS

    def test_public_shape(self, settings_store):
        settings_store.save_crypto(
            CryptoSettings(
                bitcoin=WalletAddress(address="bc1qxyz", qr_code="data:image/png;base64,AAA"),
                usdt=WalletAddress(address="TXyz"),
                usdt_network="BEP20",
            )
        )

        data = settings_store.get_crypto().to_public_dict()

        assert data["bitcoin"] == {"address": "bc1qxyz", "qrCode": "data:image/png;base64,AAA"}
        assert data["usdt"] == {"address": "TXyz", "qrCode": "", "network": "BEP20"}
        assert "whatsappCommunityLink" in data

    def test_seeded_from_config(self):
        services = build_services(
            {"CRYPTO_BITCOIN_ADDRESS": "bc1qseed", "CRYPTO_USDT_NETWORK": "erc20"}
        )

        settings = services.crypto_settings.get_settings()

        assert settings.bitcoin.address == "bc1qseed"
        assert settings.usdt_network == "ERC20"


class TestUpdate:
    def test_partial_update_keeps_other_fields(self, service):
        service.update_settings("admin-1", bitcoin_address="bc1qfirst", usdt_address="TFirst")

        settings = service.update_settings("admin-1", usdt_address="TSecond")

        assert settings.bitcoin.address == "bc1qfirst"
        assert settings.usdt.address == "TSecond"
        assert settings.updated_at == NOW
        assert service.get_settings().usdt.address == "TSecond"

    def test_network_is_normalized(self, service):
        assert service.update_settings("admin-1", usdt_network=" erc20 ").usdt_network == "ERC20"

    def test_unknown_network_changes_nothing(self, service):
        with pytest.raises(InvalidSettingsError) as exc_info:
            service.update_settings("admin-1", bitcoin_address="bc1qnew", usdt_network="SOL")

        assert exc_info.value.details["allowed"] == ["TRC20", "ERC20", "BEP20"]
        assert service.get_settings().bitcoin.address == ""

    def test_markup_is_stripped_but_qr_codes_are_kept(self, service):
        settings = service.update_settings(
            "admin-1",
            instructions="<script>x</script>Send the <b>screenshot</b>",
            bitcoin_qr_code="https://cdn.example.com/btc.png",
        )

        assert "<" not in settings.instructions
        assert "screenshot" in settings.instructions
        assert settings.bitcoin.qr_code == "https://cdn.example.com/btc.png"
