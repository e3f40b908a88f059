"""Resource grammars for RTX routers."""
from ..engine.grammar import Grammar
from .dns import DNS
from .nat_masquerade import NAT_MASQUERADE
from .static_route import STATIC_ROUTE
from .syslog import SYSLOG

__all__ = [
    "DNS",
    "NAT_MASQUERADE",
    "STATIC_ROUTE",
    "SYSLOG",
    "GRAMMARS",
    "get_grammar",
]

# Grammar registry
GRAMMARS: dict[str, Grammar] = {
    grammar.name: grammar
    for grammar in (SYSLOG, DNS, STATIC_ROUTE, NAT_MASQUERADE)
}


def get_grammar(name: str) -> Grammar:
    """Look up a grammar by resource name."""
    key = name.lower().replace("-", "_")
    if key not in GRAMMARS:
        raise ValueError(f"Unknown resource: {name}")
    return GRAMMARS[key]
