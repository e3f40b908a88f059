"""NAT masquerade grammar, one descriptor per bound grammar.

Device lines::

    nat descriptor type 1000 masquerade
    nat descriptor address outer 1000 primary
    nat descriptor address inner 1000 192.168.1.0-192.168.1.255
    nat descriptor masquerade static 1000 1 192.168.1.10:80=192.168.1.10:8080 tcp

The ``type`` line defines the descriptor; address and static lines without
it are inconsistent output. Inner networks are ranges on the device and
CIDR in records.
"""
from ..engine.grammar import Collection, Field, Grammar, LinePattern
from ..engine.network import cidr_to_range, range_to_cidr

INNER_KEYWORDS = ("auto",)


def parse_inner_network(value: str) -> str:
    if value in INNER_KEYWORDS:
        return value
    return range_to_cidr(value)


def render_inner_network(value: str) -> str:
    if value in INNER_KEYWORDS or "/" not in value:
        return value
    return cidr_to_range(value)


def _static_entry(values: dict) -> str:
    command = (
        f"nat descriptor masquerade static {values['descriptor_id']} {values['entry_number']} "
        f"{values['outside_address']}:{values['outside_port']}="
        f"{values['inside_address']}:{values['inside_port']}"
    )
    if values.get("protocol"):
        command += f" {values['protocol']}"
    return command


def _delete_descriptor(values: dict) -> list[str]:
    """Dependent lines first, then the descriptor itself."""
    descriptor = values["descriptor_id"]
    commands = [
        f"no nat descriptor masquerade static {descriptor} {entry['entry_number']}"
        for entry in values.get("static_entries") or []
    ]
    if values.get("inner_network"):
        commands.append(f"no nat descriptor address inner {descriptor}")
    if values.get("outer_address"):
        commands.append(f"no nat descriptor address outer {descriptor}")
    commands.append(f"no nat descriptor type {descriptor}")
    return commands


NAT_MASQUERADE = Grammar(
    name="nat_masquerade",
    query=('show config | grep "nat descriptor"',),
    record_start=r"^nat descriptor\s",
    identity=("descriptor_id",),
    patterns=(
        LinePattern(
            r"^nat descriptor type (?P<descriptor_id>\d+) masquerade$",
            anchor=True,
        ),
        LinePattern(
            r"^nat descriptor address outer (?P<descriptor_id>\d+) (?P<outer_address>\S+)$",
            requires_anchor=True,
        ),
        LinePattern(
            r"^nat descriptor address inner (?P<descriptor_id>\d+) (?P<inner_network>\S+)$",
            requires_anchor=True,
        ),
        LinePattern(
            r"^nat descriptor masquerade static (?P<descriptor_id>\d+) (?P<entry_number>\d+) "
            r"(?P<outside_address>[^:\s]+):(?P<outside_port>\d+)="
            r"(?P<inside_address>[^:\s]+):(?P<inside_port>\d+)(?: (?P<protocol>\S+))?$",
            collection="static_entries",
            requires_anchor=True,
        ),
    ),
    fields=(
        Field("descriptor_id", parse=int),
        Field(
            "outer_address",
            set="nat descriptor address outer {descriptor_id} {value}",
            clear="no nat descriptor address outer {descriptor_id}",
        ),
        Field(
            "inner_network",
            parse=parse_inner_network,
            render=render_inner_network,
            set="nat descriptor address inner {descriptor_id} {value}",
            clear="no nat descriptor address inner {descriptor_id}",
            depends_on=("outer_address",),
        ),
    ),
    collections=(
        Collection(
            name="static_entries",
            key=("entry_number",),
            fields=(
                Field("entry_number", parse=int),
                Field("outside_address"),
                Field("outside_port", parse=int),
                Field("inside_address"),
                Field("inside_port", parse=int),
                Field("protocol", normalize=str.lower),
            ),
            add=_static_entry,
            remove="no nat descriptor masquerade static {descriptor_id} {entry_number}",
            dedupe=True,
        ),
    ),
    create=("nat descriptor type {descriptor_id} masquerade",),
    delete=(_delete_descriptor,),
)
