"""Tests for network notation helpers."""
import pytest

from rtx_reconciler.engine.network import (
    canonical_network,
    cidr_to_mask,
    cidr_to_range,
    format_network_notation,
    mask_to_prefix,
    network_address,
    on_off,
    parse_network_notation,
    range_to_cidr,
    render_on_off,
)


class TestOnOff:
    @pytest.mark.parametrize("word", ["on", "ON", "yes", "enable", True])
    def test_true(self, word):
        assert on_off(word) is True

    @pytest.mark.parametrize("word", ["off", "no", "disable", False])
    def test_false(self, word):
        assert on_off(word) is False

    def test_invalid(self):
        with pytest.raises(ValueError):
            on_off("maybe")

    def test_render(self):
        assert render_on_off(True) == "on"
        assert render_on_off("off") == "off"


class TestNetworkNotation:
    """Tests for RTX network notation."""

    def test_default(self):
        assert parse_network_notation("default") == ("0.0.0.0", "0.0.0.0")
        assert format_network_notation("0.0.0.0", "0.0.0.0") == "default"

    def test_cidr(self):
        assert parse_network_notation("192.168.1.0/24") == ("192.168.1.0", "255.255.255.0")

    def test_dotted_mask(self):
        assert parse_network_notation("10.0.0.0/255.0.0.0") == ("10.0.0.0", "255.0.0.0")

    @pytest.mark.parametrize("value", ["10.0.0.0", "10.0.0.0/33", "host/24", "10.0.0.0/255.0.0.x"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_network_notation(value)

    def test_canonical(self):
        assert canonical_network("10.0.0.0/255.0.0.0") == "10.0.0.0/8"
        assert canonical_network(" default ") == "default"

    def test_masks(self):
        assert cidr_to_mask(24) == "255.255.255.0"
        assert mask_to_prefix("255.255.0.0") == 16
        with pytest.raises(ValueError):
            mask_to_prefix("255.0.255.0")

    def test_network_address(self):
        assert network_address("192.168.1.77", 24) == "192.168.1.0"
        assert network_address("10.1.2.3", "255.255.0.0") == "10.1.0.0"


class TestRanges:
    """Tests for range/CIDR conversion used by NAT inner networks."""

    def test_cidr_to_range(self):
        assert cidr_to_range("192.168.1.0/24") == "192.168.1.0-192.168.1.255"

    def test_range_to_cidr(self):
        assert range_to_cidr("192.168.1.0-192.168.1.255") == "192.168.1.0/24"

    def test_uneven_range_unchanged(self):
        assert range_to_cidr("192.168.1.1-192.168.1.100") == "192.168.1.1-192.168.1.100"

    def test_single_address(self):
        assert range_to_cidr("192.168.1.1") == "192.168.1.1/32"
