"""Declarative grammars: CLI text to records, and records to commands.

A Grammar is data. It lists the line patterns that extract a resource from
``show config`` output, the fields those patterns fill, the repeatable
collections, the derived fields, and the command templates used to change
the resource. The parsing mechanics live here once; each resource module
only declares its grammar.

Templates are either format strings, rendered with the bound parameters, the
record's scalar fields and (for collection templates) the item's fields, or
callables that receive the same values unrendered and return a command, a
list of commands, or None.
"""
import copy
import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from ..errors import GrammarError, MalformedOutputError
from .framer import reassemble_wrapped_lines
from .schema import Record

logger = logging.getLogger(__name__)

Template = Union[str, Callable[[dict], Union[str, list[str], None]]]


class _Unset:
    """Marker for "no default declared"."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class Field:
    """One typed value in a record or collection item.

    Attributes:
        parse: converts captured text into a value
        normalize: canonical form used for comparison (e.g. lower-case)
        render: value to command text
        default: value injected when the device prints nothing for the field
        set: template applied to set the field (``{value}`` is the new value)
        clear: template that returns the field to its default
        depends_on: fields whose commands must run first
    """
    name: str
    parse: Callable[[str], Any] = str
    normalize: Optional[Callable[[Any], Any]] = None
    render: Callable[[Any], str] = str
    default: Any = UNSET
    set: Optional[Template] = None
    clear: Optional[Template] = None
    depends_on: tuple[str, ...] = ()

    def coerce(self, raw: str) -> Any:
        """Captured text to a canonical value."""
        value = self.parse(raw)
        return self.normalize(value) if self.normalize else value

    def canonical(self, value: Any) -> Any:
        """Caller-supplied value to the same canonical form as coerce()."""
        if value is None:
            return None
        if isinstance(value, str) and self.parse is not str:
            value = self.parse(value)
        elif isinstance(value, list):
            value = list(value)
        return self.normalize(value) if self.normalize else value

    @property
    def has_default(self) -> bool:
        return self.default is not UNSET


@dataclass(frozen=True)
class LinePattern:
    """A regex with named groups; group names are field names.

    ``collection`` makes every match a new item of that collection.
    ``anchor`` marks the line that proves the resource exists;
    ``requires_anchor`` marks dependent lines that are meaningless without it.
    ``split`` turns one line's captures into several capture sets, one
    collection item each (e.g. a route line listing several gateways); an
    empty result means the line does not belong to the resource.
    """
    regex: str
    collection: Optional[str] = None
    anchor: bool = False
    requires_anchor: bool = False
    split: Optional[Callable[[dict[str, str]], list[dict[str, str]]]] = None
    compiled: re.Pattern = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "compiled", re.compile(self.regex))

    def match(self, line: str) -> Optional[dict[str, str]]:
        m = self.compiled.match(line)
        if m is None:
            return None
        return {name: value for name, value in m.groupdict().items() if value is not None}

    def expand(self, captures: dict[str, str]) -> list[dict[str, str]]:
        if self.split is None:
            return [captures]
        return self.split(captures)


@dataclass(frozen=True)
class Collection:
    """Repeatable sub-records, identified by their key fields."""
    name: str
    key: tuple[str, ...]
    fields: tuple[Field, ...]
    add: Optional[Template] = None
    remove: Optional[Template] = None
    update: Optional[Template] = None
    dedupe: bool = False

    def __post_init__(self):
        names = {f.name for f in self.fields}
        missing = [k for k in self.key if k not in names]
        if missing:
            raise GrammarError(f"Collection {self.name} key fields not declared: {missing}")

    def get_field(self, name: str) -> Optional[Field]:
        return next((f for f in self.fields if f.name == name), None)

    def key_of(self, item: Mapping[str, Any]) -> tuple:
        return tuple(item.get(k) for k in self.key)

    def new_item(self) -> dict[str, Any]:
        return {f.name: copy.deepcopy(f.default) for f in self.fields if f.has_default}

    def canonical_item(self, item: Mapping[str, Any]) -> dict[str, Any]:
        result = {}
        for name, value in item.items():
            item_field = self.get_field(name)
            if item_field is None:
                raise GrammarError(f"Unknown field '{name}' in {self.name} item")
            if value is not None:
                result[name] = item_field.canonical(value)
        for k in self.key:
            if k not in result:
                raise GrammarError(f"{self.name} item is missing key field '{k}': {dict(item)}")
        return result


@dataclass(frozen=True)
class Derivation:
    """Computes ``field`` from ``inputs`` once all lines are matched."""
    field: str
    inputs: tuple[str, ...]
    func: Callable[..., Any]


@dataclass(frozen=True)
class RecordBoundary:
    """Tells wrap reassembly where records start and when one is whole.

    Wrapped tails and stray lines look alike: a line that does not start a
    record is joined onto a complete record whenever the join still matches
    a pattern. ``x`` after ``syslog host 10.0.0.1`` therefore reads as
    ``syslog host 10.0.0.1x``. Lines whose join matches nothing stay
    separate and are ignored by the parser.
    """
    record_start: re.Pattern
    complete: tuple[re.Pattern, ...] = ()

    def starts_record(self, line: str) -> bool:
        return bool(self.record_start.match(line))

    def is_complete(self, line: str) -> bool:
        text = line.strip()
        return any(pattern.match(text) for pattern in self.complete)


def render_template(template: Optional[Template], values: Mapping[str, Any],
                    rendered: Mapping[str, str]) -> list[str]:
    """Expand one template into zero or more command lines."""
    if template is None:
        return []
    if callable(template):
        result = template(dict(values))
        if result is None:
            return []
        if isinstance(result, str):
            return [result]
        return [line for line in result if line]
    try:
        return [template.format_map(rendered)]
    except KeyError as e:
        raise GrammarError(f"Template '{template}' needs value {e}") from e


@dataclass(frozen=True)
class Grammar:
    """Resource grammar.

    ``identity`` names the parameters that select one resource instance
    (e.g. a NAT descriptor id); they must be bound with bind() before the
    grammar is read or applied.
    """
    name: str
    query: tuple[Template, ...]
    patterns: tuple[LinePattern, ...]
    fields: tuple[Field, ...] = ()
    collections: tuple[Collection, ...] = ()
    derivations: tuple[Derivation, ...] = ()
    create: tuple[Template, ...] = ()
    delete: tuple[Template, ...] = ()
    record_start: Optional[str] = None
    identity: tuple[str, ...] = ()
    params: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    boundary: Optional[RecordBoundary] = dataclasses.field(init=False, default=None, compare=False)

    def __post_init__(self):
        names = {f.name for f in self.fields}
        for f in self.fields:
            unknown = [d for d in f.depends_on if d not in names]
            if unknown:
                raise GrammarError(f"{self.name}.{f.name} depends on unknown fields {unknown}")
        for pattern in self.patterns:
            if pattern.collection and self.get_collection(pattern.collection) is None:
                raise GrammarError(f"{self.name} pattern refers to unknown collection {pattern.collection}")
        if self.record_start:
            boundary = RecordBoundary(
                record_start=re.compile(self.record_start),
                complete=tuple(p.compiled for p in self.patterns),
            )
            object.__setattr__(self, "boundary", boundary)
        # Validates the dependency graph eagerly
        self.update_order()

    # --- Lookup ---

    def get_field(self, name: str) -> Optional[Field]:
        return next((f for f in self.fields if f.name == name), None)

    def get_collection(self, name: str) -> Optional[Collection]:
        return next((c for c in self.collections if c.name == name), None)

    @property
    def derived_fields(self) -> set[str]:
        return {d.field for d in self.derivations}

    def bind(self, **params: Any) -> "Grammar":
        """Return a copy scoped to one resource instance."""
        bound = dict(self.params)
        for name, value in params.items():
            if value is None:
                continue
            known = self.get_field(name)
            bound[name] = known.canonical(value) if known else value
        return dataclasses.replace(self, params=bound)

    def require_identity(self) -> None:
        missing = [name for name in self.identity if name not in self.params]
        if missing:
            raise GrammarError(f"Grammar {self.name} needs parameters {missing}")

    def update_order(self) -> list[Field]:
        """Fields in declared order with dependencies moved first."""
        ordered: list[Field] = []
        placed: set[str] = set()
        visiting: set[str] = set()

        def visit(f: Field):
            if f.name in placed:
                return
            if f.name in visiting:
                raise GrammarError(f"Dependency cycle in {self.name} at field {f.name}")
            visiting.add(f.name)
            for dep in f.depends_on:
                visit(self.get_field(dep))
            visiting.discard(f.name)
            placed.add(f.name)
            ordered.append(f)

        for f in self.fields:
            visit(f)
        return ordered

    # --- Templates ---

    def template_values(self, record: Optional[Mapping[str, Any]] = None,
                        item: Optional[Mapping[str, Any]] = None,
                        collection: Optional[Collection] = None,
                        value: Any = UNSET,
                        value_field: Optional[Field] = None) -> tuple[dict, dict]:
        """Values (raw and rendered) available to a template."""
        values: dict[str, Any] = {}
        rendered: dict[str, str] = {}

        def put(name: str, val: Any, spec: Optional[Field]):
            values[name] = val
            if val is None:
                rendered[name] = ""
            elif spec is not None:
                rendered[name] = spec.render(val)
            else:
                rendered[name] = str(val)

        for name, val in self.params.items():
            put(name, val, self.get_field(name))
        for name, val in (record or {}).items():
            if self.get_collection(name) is None:
                put(name, val, self.get_field(name))
            else:
                # Lists are only useful to callable templates
                values[name] = val
        if item is not None and collection is not None:
            for name, val in item.items():
                put(name, val, collection.get_field(name))
        if value is not UNSET:
            put("value", value, value_field)
        return values, rendered

    def commands(self, templates: Iterable[Template], **context) -> list[str]:
        values, rendered = self.template_values(**context)
        lines: list[str] = []
        for template in templates:
            lines.extend(render_template(template, values, rendered))
        return lines

    def query_commands(self) -> list[str]:
        return self.commands(self.query)

    # --- Parsing ---

    def _param_mismatch(self, captures: Mapping[str, str]) -> bool:
        for name, raw in captures.items():
            if name not in self.params:
                continue
            spec = self.get_field(name)
            try:
                captured = spec.coerce(raw) if spec else raw
            except ValueError:
                return True
            if captured != self.params[name]:
                return True
        return False

    def _coerce(self, spec: Optional[Field], name: str, raw: str) -> Any:
        if spec is None:
            return UNSET
        try:
            return spec.coerce(raw)
        except ValueError as e:
            logger.debug(f"{self.name}: cannot parse {name}={raw!r}: {e}")
            return UNSET

    def parse(self, lines: Iterable[str]) -> Optional[Record]:
        """Extract one record from output lines.

        Returns:
            The record, or None when no line belongs to the resource

        Raises:
            MalformedOutputError: dependent lines present without the anchor line
        """
        lines = reassemble_wrapped_lines(lines, boundary=self.boundary)

        record: Record = {}
        items: dict[str, list[dict]] = {c.name: [] for c in self.collections}
        positions: dict[str, dict[tuple, int]] = {c.name: {} for c in self.collections}
        matched = False
        anchor_seen = False
        dependent_line: Optional[str] = None

        for line in lines:
            text = line.strip()
            if not text:
                continue

            for pattern in self.patterns:
                captures = pattern.match(text)
                if captures is None:
                    continue
                # First matching pattern owns the line
                if self._param_mismatch(captures):
                    break

                collection = self.get_collection(pattern.collection) if pattern.collection else None
                for values in pattern.expand(captures):
                    matched = True
                    anchor_seen = anchor_seen or pattern.anchor
                    if pattern.requires_anchor and dependent_line is None:
                        dependent_line = text

                    item = collection.new_item() if collection else None
                    for name, raw in values.items():
                        if item is not None and collection.get_field(name):
                            value = self._coerce(collection.get_field(name), name, raw)
                            if value is not UNSET:
                                item[name] = value
                            continue
                        value = self._coerce(self.get_field(name), name, raw)
                        if value is not UNSET:
                            record[name] = value  # last match wins

                    if item is not None:
                        self._add_item(collection, items, positions, item)
                break

        if not matched:
            return None
        if dependent_line is not None and not anchor_seen and any(p.anchor for p in self.patterns):
            raise MalformedOutputError(
                f"{self.name}: found '{dependent_line}' but no defining line"
            )

        for f in self.fields:
            if f.name not in record and f.has_default:
                record[f.name] = copy.deepcopy(f.default)
        for c in self.collections:
            record[c.name] = items[c.name]

        self._derive(record)
        return record

    def _add_item(self, collection: Collection, items: dict, positions: dict, item: dict) -> None:
        key = collection.key_of(item)
        if collection.dedupe and key in positions[collection.name]:
            # Keep the first position, take the latest values
            items[collection.name][positions[collection.name][key]] = item
            return
        positions[collection.name][key] = len(items[collection.name])
        items[collection.name].append(item)

    def _derive(self, record: Record) -> None:
        for derivation in self.derivations:
            if any(record.get(name) is None for name in derivation.inputs):
                continue
            try:
                record[derivation.field] = derivation.func(*(record[n] for n in derivation.inputs))
            except ValueError as e:
                logger.warning(f"{self.name}: cannot derive {derivation.field}: {e}")

    # --- Desired records ---

    def canonicalize(self, desired: Mapping[str, Any]) -> Record:
        """Normalise a caller-supplied record; None values are dropped."""
        result: Record = {}
        derived = self.derived_fields
        for name, value in desired.items():
            if value is None:
                continue
            collection = self.get_collection(name)
            if collection is not None:
                if not isinstance(value, list):
                    raise GrammarError(f"{self.name}.{name} must be a list")
                result[name] = [collection.canonical_item(item) for item in value]
                continue
            spec = self.get_field(name)
            if spec is None:
                if name in derived:
                    result[name] = value
                    continue
                raise GrammarError(f"Unknown field '{name}' for grammar {self.name}")
            try:
                result[name] = spec.canonical(value)
            except ValueError as e:
                raise GrammarError(f"Invalid value for {self.name}.{name}: {e}") from e
        return result
