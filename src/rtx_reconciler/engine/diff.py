"""Diff engine for calculating changes between desired and current records.

Computes the minimal ordered command plan needed to reach the desired record:

1. remove collection items that are no longer wanted
2. create the resource when it is absent
3. update scalar fields (dependencies first)
4. add new collection items

Removing before adding avoids transient identifier collisions when an
entry is replaced at the same slot.
"""
import logging
from typing import Any, Mapping, Optional

from ..errors import GrammarError
from .grammar import Collection, Field, Grammar
from .schema import Command, CommandPlan, PlanPhase, PlannedCommand, Record

logger = logging.getLogger(__name__)


def _item_matches(collection: Collection, desired: Mapping[str, Any], current: Mapping[str, Any]) -> bool:
    """Only fields the desired item states are compared."""
    for name, value in desired.items():
        current_value = current.get(name)
        if current_value is None:
            spec = collection.get_field(name)
            if spec is not None and spec.has_default:
                current_value = spec.default
        if current_value != value:
            return False
    return True


class DiffEngine:
    """Calculate command plans for a grammar."""

    def plan(
        self,
        grammar: Grammar,
        desired: Mapping[str, Any],
        current: Optional[Record],
    ) -> CommandPlan:
        """
        Calculate the plan that moves ``current`` to ``desired``.

        Args:
            grammar: Bound resource grammar
            desired: Desired record; absent or None fields are left alone
            current: Parsed current record, None when the resource is absent

        Returns:
            CommandPlan, empty when nothing differs
        """
        desired = grammar.canonicalize(desired)
        plan = CommandPlan(grammar=grammar.name)
        if not desired:
            return plan

        phases: dict[PlanPhase, list[PlannedCommand]] = {phase: [] for phase in PlanPhase}

        if current is None:
            for text in grammar.commands(grammar.create, record=desired):
                phases[PlanPhase.CREATE].append(PlannedCommand(PlanPhase.CREATE, Command(text)))
            current = {}

        for collection in grammar.collections:
            if collection.name in desired:
                self._diff_collection(grammar, collection, desired, current, phases)

        skip = set(grammar.params) | grammar.derived_fields
        for spec in grammar.update_order():
            if spec.name in skip or spec.name not in desired:
                continue
            self._diff_scalar(grammar, spec, desired, current, phases)

        for phase in PlanPhase:
            plan.steps.extend(phases[phase])
        return plan

    def _diff_scalar(
        self,
        grammar: Grammar,
        spec: Field,
        desired: Record,
        current: Record,
        phases: dict,
    ) -> None:
        wanted = desired[spec.name]
        have = current.get(spec.name)
        if have is None and spec.has_default:
            # The device does not print default values
            have = spec.default
        if have == wanted:
            return

        if spec.set is not None:
            template = spec.set
        elif spec.clear is not None and spec.has_default and wanted == spec.default:
            template = spec.clear
        else:
            raise GrammarError(
                f"{grammar.name}.{spec.name} cannot be changed from {have!r} to {wanted!r}"
            )

        for text in grammar.commands([template], record=desired, value=wanted, value_field=spec):
            phases[PlanPhase.UPDATE].append(PlannedCommand(PlanPhase.UPDATE, Command(text), spec.name))

    def _diff_collection(
        self,
        grammar: Grammar,
        collection: Collection,
        desired: Record,
        current: Record,
        phases: dict,
    ) -> None:
        wanted_items = desired[collection.name]
        current_items = current.get(collection.name) or []

        wanted_by_key: dict[tuple, dict] = {}
        for item in wanted_items:
            key = collection.key_of(item)
            if key in wanted_by_key:
                raise GrammarError(f"Duplicate {collection.name} entry {key} in desired record")
            wanted_by_key[key] = item
        current_by_key = {collection.key_of(item): item for item in current_items}

        def emit(phase: PlanPhase, template, item: Mapping[str, Any]):
            if template is None:
                raise GrammarError(f"{grammar.name}.{collection.name} has no {phase.value} template")
            texts = grammar.commands([template], record=desired, item=item, collection=collection)
            for text in texts:
                phases[phase].append(PlannedCommand(phase, Command(text), collection.name))

        for key, item in current_by_key.items():
            wanted = wanted_by_key.get(key)
            if wanted is None:
                emit(PlanPhase.REMOVE, collection.remove, item)
            elif not _item_matches(collection, wanted, item):
                merged = {**item, **wanted}
                if collection.update is not None:
                    emit(PlanPhase.UPDATE, collection.update, merged)
                else:
                    emit(PlanPhase.REMOVE, collection.remove, item)
                    emit(PlanPhase.ADD, collection.add, {**collection.new_item(), **wanted})

        for key, item in wanted_by_key.items():
            if key not in current_by_key:
                emit(PlanPhase.ADD, collection.add, {**collection.new_item(), **item})

    def deletion_plan(self, grammar: Grammar, current: Optional[Record]) -> CommandPlan:
        """Commands that remove the resource.

        Uses the grammar's delete templates when it has them, otherwise removes
        every collection item and clears every scalar that is not at its default.
        """
        plan = CommandPlan(grammar=grammar.name)
        if current is None:
            return plan

        if grammar.delete:
            for text in grammar.commands(grammar.delete, record=current):
                plan.steps.append(PlannedCommand(PlanPhase.REMOVE, Command(text)))
            return plan

        for collection in grammar.collections:
            for item in current.get(collection.name) or []:
                for text in grammar.commands([collection.remove], record=current,
                                             item=item, collection=collection):
                    plan.steps.append(PlannedCommand(PlanPhase.REMOVE, Command(text), collection.name))

        skip = set(grammar.params) | grammar.derived_fields
        for spec in reversed(grammar.update_order()):
            value = current.get(spec.name)
            if spec.name in skip or value is None or spec.clear is None:
                continue
            if spec.has_default and value == spec.default:
                continue
            for text in grammar.commands([spec.clear], record=current, value=value, value_field=spec):
                plan.steps.append(PlannedCommand(PlanPhase.UPDATE, Command(text), spec.name))
        return plan

    def drift(self, grammar: Grammar, desired: Mapping[str, Any], actual: Optional[Record]) -> list[str]:
        """Fields of ``desired`` that the device does not reflect."""
        wanted = grammar.canonicalize(desired)
        if actual is None:
            return sorted(name for name in wanted if name not in grammar.params)

        drifted = []
        for name, value in wanted.items():
            if name in grammar.params or name in grammar.derived_fields:
                continue
            collection = grammar.get_collection(name)
            if collection is not None:
                have = {collection.key_of(i): i for i in actual.get(name) or []}
                same = len(have) == len(value) and all(
                    collection.key_of(item) in have
                    and _item_matches(collection, item, have[collection.key_of(item)])
                    for item in value
                )
                if not same:
                    drifted.append(name)
            elif actual.get(name) != value:
                drifted.append(name)
        return drifted


def summarize_plan(plan: CommandPlan) -> dict[str, int]:
    """Count of planned commands per phase, for logs and dry runs."""
    counts = {phase.value: 0 for phase in PlanPhase}
    for step in plan:
        counts[step.phase.value] += 1
    return counts
