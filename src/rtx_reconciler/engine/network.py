"""Value helpers shared by resource grammars.

RTX configuration mixes CIDR (``10.0.0.0/8``), dotted masks
(``10.0.0.0/255.0.0.0``), the keyword ``default`` and address ranges
(``192.168.1.0-192.168.1.255``). These helpers convert between them.
"""
import ipaddress
from typing import Any, Union

DEFAULT_ROUTE = ("0.0.0.0", "0.0.0.0")

_TRUE_WORDS = {"on", "yes", "true", "enable", "enabled", "1"}
_FALSE_WORDS = {"off", "no", "false", "disable", "disabled", "0"}


def on_off(value: Union[str, bool]) -> bool:
    """Parse an on/off style flag.

    Raises:
        ValueError: not a recognised flag word
    """
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(f"Not an on/off value: {value!r}")


def render_on_off(value: Any) -> str:
    return "on" if on_off(value) else "off"


def split_words(value: str) -> list[str]:
    """Split a space separated list (e.g. DNS servers) into words."""
    return value.split()


def is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except (ipaddress.AddressValueError, ValueError):
        return False
    return True


def cidr_to_mask(prefix_len: int) -> str:
    """24 -> "255.255.255.0"."""
    if not 0 <= int(prefix_len) <= 32:
        raise ValueError(f"Prefix length out of range: {prefix_len}")
    return str(ipaddress.IPv4Network(f"0.0.0.0/{int(prefix_len)}").netmask)


def mask_to_prefix(mask: str) -> int:
    """"255.255.255.0" -> 24.

    Raises:
        ValueError: the mask is not contiguous
    """
    return ipaddress.IPv4Network(f"0.0.0.0/{mask}").prefixlen


def network_address(address: str, prefix: Union[int, str]) -> str:
    """Network address of ``address`` within ``prefix`` (length or dotted mask)."""
    interface = ipaddress.IPv4Interface(f"{address}/{prefix}")
    return str(interface.network.network_address)


def parse_network_notation(network: str) -> tuple[str, str]:
    """Turn "default", "x.x.x.x/y" or "x.x.x.x/m.m.m.m" into (prefix, mask).

    Raises:
        ValueError: not one of the accepted forms
    """
    network = network.strip()
    if network == "default":
        return DEFAULT_ROUTE

    address, sep, suffix = network.partition("/")
    if not sep or not is_ipv4(address):
        raise ValueError(f"Invalid network: {network!r}")

    if "." in suffix:
        if not is_ipv4(suffix):
            raise ValueError(f"Invalid mask in {network!r}")
        return address, suffix
    return address, cidr_to_mask(int(suffix))


def format_network_notation(prefix: str, mask: str) -> str:
    """Inverse of parse_network_notation: "default" or CIDR, dotted mask as fallback."""
    if (prefix, mask) == DEFAULT_ROUTE:
        return "default"
    try:
        return f"{prefix}/{mask_to_prefix(mask)}"
    except ValueError:
        return f"{prefix}/{mask}"


def canonical_network(network: str) -> str:
    """Normalise any accepted network notation to the form the device prints."""
    return format_network_notation(*parse_network_notation(network))


def cidr_to_range(cidr: str) -> str:
    """"192.168.1.0/24" -> "192.168.1.0-192.168.1.255"."""
    net = ipaddress.IPv4Network(cidr, strict=False)
    return f"{net.network_address}-{net.broadcast_address}"


def range_to_cidr(value: str) -> str:
    """"192.168.1.0-192.168.1.255" -> "192.168.1.0/24".

    Values that are already CIDR or a single address come back normalised.
    Ranges that do not cover exactly one network are returned unchanged.
    """
    value = value.strip()
    if "-" not in value:
        return str(ipaddress.IPv4Network(value, strict=False))

    start, end = (ipaddress.IPv4Address(part.strip()) for part in value.split("-", 1))
    networks = list(ipaddress.summarize_address_range(start, end))
    if len(networks) != 1:
        return value
    return str(networks[0])
