"""DNS grammar.

Device lines::

    dns server 8.8.8.8 8.8.4.4
    dns domain lookup off
    dns domain example.com
    dns static router.example.com 192.168.1.1
    dns service recursive
    dns private address spoof on
"""
from ..engine.grammar import Collection, Field, Grammar, LinePattern
from ..engine.network import on_off, render_on_off, split_words

SERVICE_MODES = ("on", "off", "recursive")


def parse_service(value: str) -> str:
    mode = value.strip().lower()
    if mode not in SERVICE_MODES:
        raise ValueError(f"Unknown dns service mode: {value!r}")
    return mode


def _domain_lookup(values: dict) -> str:
    return "dns domain lookup on" if values["value"] else "no dns domain lookup"


DNS = Grammar(
    name="dns",
    query=("show config | grep dns",),
    record_start=r"^(no )?dns\s",
    patterns=(
        LinePattern(r"^dns server (?!select\b)(?P<name_servers>\S+(?:\s+\S+){0,2})$"),
        LinePattern(r"^dns domain lookup (?P<domain_lookup>on|off)$"),
        LinePattern(r"^(?P<domain_lookup>no) dns domain lookup$"),
        LinePattern(r"^dns domain (?!lookup\b)(?P<domain_name>\S+)$"),
        LinePattern(r"^dns static (?P<name>\S+)\s+(?P<address>\S+)$", collection="hosts"),
        LinePattern(r"^dns service (?P<service>on|off|recursive)$"),
        LinePattern(r"^dns private address spoof (?P<private_spoof>on|off)$"),
    ),
    fields=(
        Field(
            "name_servers",
            parse=split_words,
            render=" ".join,
            set="dns server {value}",
            clear="no dns server",
        ),
        Field(
            "domain_lookup",
            parse=on_off,
            default=True,
            set=_domain_lookup,
            clear="dns domain lookup on",
        ),
        Field(
            "domain_name",
            normalize=str.lower,
            set="dns domain {value}",
            clear="no dns domain",
        ),
        Field(
            "service",
            parse=parse_service,
            set="dns service {value}",
            clear="no dns service",
        ),
        Field(
            "private_spoof",
            parse=on_off,
            render=render_on_off,
            default=False,
            set="dns private address spoof {value}",
            clear="dns private address spoof off",
        ),
    ),
    collections=(
        Collection(
            name="hosts",
            key=("name",),
            fields=(
                Field("name", normalize=str.lower),
                Field("address"),
            ),
            add="dns static {name} {address}",
            remove="no dns static {name}",
            update="dns static {name} {address}",
            dedupe=True,
        ),
    ),
)
