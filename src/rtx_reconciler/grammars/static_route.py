"""Static route grammar, one route (destination network) per bound grammar.

Device lines::

    ip route default gateway 192.168.0.1
    ip route 10.0.0.0/8 gateway 192.168.1.254 weight 2
    ip route 172.16.0.0/16 gateway pp 1 filter 100 hide
    ip route 10.1.0.0/16 gateway 192.168.1.20 gateway 192.168.1.21

A line with several ``gateway`` clauses is an equal-cost route; every clause
becomes its own next hop. Bind the destination before use::

    STATIC_ROUTE.bind(network="10.0.0.0/8")
"""
import logging
import re

from ..engine.grammar import Collection, Derivation, Field, Grammar, LinePattern
from ..engine.network import canonical_network, parse_network_notation

logger = logging.getLogger(__name__)

HOP_PATTERN = re.compile(
    r"^(?P<gateway>(?:pp|tunnel|dhcp) \S+|\S+)"
    r"(?: weight (?P<weight>\d+))?(?: filter (?P<filter>\d+))?"
    r"(?P<hide> hide)?(?P<keepalive> keepalive)?$"
)


def _present(_: str) -> bool:
    return True


def split_next_hops(captures: dict[str, str]) -> list[dict[str, str]]:
    """One route line -> one capture set per ``gateway`` clause."""
    hops = []
    for part in captures["hops"].split(" gateway "):
        m = HOP_PATTERN.match(part.strip())
        if m is None:
            logger.debug(f"Unrecognised next hop {part!r} in route {captures['network']}")
            return []
        hop = {name: value for name, value in m.groupdict().items() if value is not None}
        hops.append({"network": captures["network"], **hop})
    return hops


def _route_command(values: dict) -> str:
    parts = [f"ip route {values['network']} gateway {values['gateway']}"]
    if values.get("weight") and values["weight"] > 1:
        parts.append(f"weight {values['weight']}")
    if values.get("filter"):
        parts.append(f"filter {values['filter']}")
    if values.get("hide"):
        parts.append("hide")
    if values.get("keepalive"):
        parts.append("keepalive")
    return " ".join(parts)


STATIC_ROUTE = Grammar(
    name="static_route",
    query=('show config | grep "ip route {network}"',),
    record_start=r"^ip route\s",
    identity=("network",),
    patterns=(
        LinePattern(
            r"^ip route (?P<network>\S+) gateway (?P<hops>\S.*)$",
            collection="next_hops",
            split=split_next_hops,
        ),
    ),
    fields=(
        Field("network", parse=canonical_network),
    ),
    collections=(
        Collection(
            name="next_hops",
            key=("gateway",),
            fields=(
                Field("gateway", normalize=str.lower),
                Field("weight", parse=int, default=1),
                Field("filter", parse=int),
                Field("hide", parse=_present, default=False),
                Field("keepalive", parse=_present, default=False),
            ),
            add=_route_command,
            remove="no ip route {network} gateway {gateway}",
        ),
    ),
    derivations=(
        Derivation("prefix", ("network",), lambda network: parse_network_notation(network)[0]),
        Derivation("mask", ("network",), lambda network: parse_network_notation(network)[1]),
    ),
    delete=("no ip route {network}",),
)
