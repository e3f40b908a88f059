"""Syslog grammar.

Device lines::

    syslog host 192.168.1.10
    syslog host 192.168.1.11 1514
    syslog local address 192.168.1.1
    syslog facility local0
    syslog notice on
"""
from ..engine.grammar import Collection, Field, Grammar, LinePattern
from ..engine.network import on_off, render_on_off

DEFAULT_PORT = 514

FACILITIES = {"user"} | {f"local{n}" for n in range(8)}


def parse_facility(value: str) -> str:
    facility = value.strip().lower()
    if facility not in FACILITIES:
        raise ValueError(f"Unknown syslog facility: {value!r}")
    return facility


def _add_host(values: dict) -> str:
    port = values.get("port")
    if port and port != DEFAULT_PORT:
        return f"syslog host {values['address']} {port}"
    return f"syslog host {values['address']}"


def _level(name: str) -> Field:
    return Field(
        name,
        parse=on_off,
        render=render_on_off,
        default=False,
        set=f"syslog {name} {{value}}",
        clear=f"syslog {name} off",
    )


SYSLOG = Grammar(
    name="syslog",
    query=("show config | grep syslog",),
    record_start=r"^syslog\s",
    patterns=(
        LinePattern(r"^syslog host (?P<address>\S+)(?:\s+(?P<port>\d+))?$", collection="hosts"),
        LinePattern(r"^syslog local address (?P<local_address>\S+)$"),
        LinePattern(r"^syslog facility (?P<facility>\S+)$"),
        LinePattern(r"^syslog notice (?P<notice>on|off)$"),
        LinePattern(r"^syslog info (?P<info>on|off)$"),
        LinePattern(r"^syslog debug (?P<debug>on|off)$"),
    ),
    fields=(
        Field(
            "local_address",
            set="syslog local address {value}",
            clear="no syslog local address",
        ),
        Field(
            "facility",
            parse=parse_facility,
            set="syslog facility {value}",
            clear="no syslog facility",
        ),
        _level("notice"),
        _level("info"),
        _level("debug"),
    ),
    collections=(
        Collection(
            name="hosts",
            key=("address",),
            fields=(
                Field("address", normalize=str.lower),
                Field("port", parse=int, default=DEFAULT_PORT),
            ),
            add=_add_host,
            remove="no syslog host {address}",
            dedupe=True,
        ),
    ),
)
