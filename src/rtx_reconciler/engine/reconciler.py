"""Read, plan, apply, delete and import resources on one router.

Workflow for apply:
1. Read the current record (query commands through the framer, then parse)
2. Diff against the desired record into a CommandPlan
3. Execute the plan sequentially, stopping at the first device error
4. Optionally save the running configuration
5. Re-read and report drift
"""
import logging
from typing import Any, Mapping, Optional

from ..errors import ApplyError, CommandError, CommandTimeoutError, NotFoundError, RTXError
from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed_section
from ..utils.sanitizer import sanitize_mapping
from .coordinator import SessionCoordinator
from .diff import DiffEngine, summarize_plan
from .grammar import Grammar
from .schema import Command, CommandPlan, CommandResult, ExitSignal, Record

logger = logging.getLogger(__name__)

SAVE_COMMAND = Command("save", timeout=120)


class Reconciler:
    """Resource operations against the device behind one coordinator."""

    def __init__(self, coordinator: SessionCoordinator, diff: Optional[DiffEngine] = None):
        self.coordinator = coordinator
        self.diff = diff or DiffEngine()

    @property
    def device_id(self) -> str:
        return self.coordinator.device_id

    async def _read(self, grammar: Grammar) -> Optional[Record]:
        lines: list[str] = []
        for text in grammar.query_commands():
            result = await self.coordinator.run(Command.query(text), boundary=grammar.boundary)
            if not result.ok:
                raise CommandError(text, result.error_message)
            lines.extend(result.lines)
        return grammar.parse(lines)

    async def read(self, grammar: Grammar, deadline: Optional[float] = None) -> Optional[Record]:
        """Current record of the resource, or None when it is absent."""
        grammar.require_identity()
        async with self.coordinator.locked(deadline):
            return await self._read(grammar)

    async def plan(
        self,
        grammar: Grammar,
        desired: Mapping[str, Any],
        deadline: Optional[float] = None,
    ) -> CommandPlan:
        """Commands apply() would send. Nothing is changed on the device."""
        grammar.require_identity()
        async with self.coordinator.locked(deadline):
            current = await self._read(grammar)
        return self.diff.plan(grammar, desired, current)

    async def _run_step(
        self,
        command: Command,
        remaining: list[Command],
        executed: list[CommandResult],
        context: str,
    ) -> CommandResult:
        """Run one mutating command; getting no answer at all becomes ApplyError.

        Covers lost sessions, deadlines, and reconnects that fail to
        authenticate or to regain administrator mode.
        """
        try:
            return await self.coordinator.run(command)
        except RTXError as e:
            failed_result = None
            if isinstance(e.__cause__, CommandTimeoutError):
                failed_result = CommandResult(
                    command=command,
                    lines=e.__cause__.partial_output.splitlines(),
                    signal=ExitSignal.TIMEOUT,
                    error_message=str(e.__cause__),
                )
            raise ApplyError(
                f"{context}: '{command.text}' not confirmed: {e}",
                executed=executed,
                failed=command,
                not_confirmed=remaining,
                failed_result=failed_result,
            ) from e

    async def _execute(self, plan: CommandPlan) -> list[CommandResult]:
        """Run a plan in order, stopping at the first command that fails."""
        commands = plan.commands
        executed: list[CommandResult] = []

        for index, command in enumerate(commands):
            result = await self._run_step(
                command, commands[index:], executed, f"{plan.grammar} on {self.device_id}"
            )

            if not result.ok:
                raise ApplyError(
                    f"{plan.grammar} on {self.device_id}: '{command.text}' rejected: {result.error_message}",
                    executed=executed,
                    failed=command,
                    not_confirmed=commands[index:],
                    device_message=result.error_message,
                    failed_result=result,
                )
            executed.append(result)

        return executed

    async def apply(
        self,
        grammar: Grammar,
        desired: Mapping[str, Any],
        save: bool = False,
        deadline: Optional[float] = None,
    ) -> Optional[Record]:
        """Converge the resource to ``desired`` and return the re-read record.

        Raises:
            ApplyError: a command was rejected or could not be confirmed;
                commands before it stay applied
        """
        grammar.require_identity()
        tracker = ChangeTracker(self.device_id, grammar.name)
        parameters = sanitize_mapping({**grammar.params, "save": save})

        async with self.coordinator.locked(deadline):
            current = await self._read(grammar)
            plan = self.diff.plan(grammar, desired, current)
            if plan.is_empty:
                logger.info(f"{grammar.name} on {self.device_id} already matches desired state")
                return current

            tracker.snapshot("before", current)
            logger.info(f"Applying {grammar.name} on {self.device_id}: {summarize_plan(plan)}")

            try:
                async with timed_section("apply_plan", self.device_id, commands=len(plan)):
                    executed = await self._execute(plan)
                if save:
                    await self._save(plan, executed)
            except ApplyError as e:
                tracker.log_change("apply", parameters, success=False,
                                   commands=e.executed_commands, error=str(e))
                raise

            after = await self._read(grammar)

        tracker.snapshot("after", after)
        tracker.log_change("apply", parameters, success=True,
                           commands=[r.command.text for r in executed])

        drift = self.diff.drift(grammar, desired, after)
        if drift:
            logger.warning(f"{grammar.name} on {self.device_id} drifted after apply: {drift}")
        return after

    async def _save(self, plan: CommandPlan, executed: list[CommandResult]) -> None:
        result = await self._run_step(
            SAVE_COMMAND, [SAVE_COMMAND], executed, f"Saving configuration on {self.device_id}"
        )
        if not result.ok:
            raise ApplyError(
                f"Saving configuration on {self.device_id} failed: {result.error_message}",
                executed=executed,
                failed=SAVE_COMMAND,
                not_confirmed=[SAVE_COMMAND],
                device_message=result.error_message,
                failed_result=result,
            )
        executed.append(result)
        logger.info(f"Configuration saved on {self.device_id} after {len(plan)} changes")

    async def delete(self, grammar: Grammar, save: bool = False, deadline: Optional[float] = None) -> None:
        """Remove the resource. An absent resource is already deleted.

        Raises:
            ApplyError: the device rejected a removal for a reason other than
                the item already being gone
        """
        grammar.require_identity()
        tracker = ChangeTracker(self.device_id, grammar.name)
        parameters = sanitize_mapping(dict(grammar.params))
        executed: list[CommandResult] = []

        async with self.coordinator.locked(deadline):
            current = await self._read(grammar)
            if current is None:
                logger.info(f"{grammar.name} on {self.device_id} is already absent")
                return

            tracker.snapshot("before", current)
            plan = self.diff.deletion_plan(grammar, current)
            commands = plan.commands
            try:
                for index, command in enumerate(commands):
                    result = await self._run_step(
                        command, commands[index:], executed,
                        f"Deleting {grammar.name} on {self.device_id}",
                    )
                    if not result.ok and "not found" not in (result.error_message or "").lower():
                        raise ApplyError(
                            f"Deleting {grammar.name} on {self.device_id}: '{command.text}' rejected: "
                            f"{result.error_message}",
                            executed=executed,
                            failed=command,
                            not_confirmed=commands[index:],
                            device_message=result.error_message,
                            failed_result=result,
                        )
                    if not result.ok:
                        logger.debug(f"'{command.text}' on {self.device_id}: already gone")
                    executed.append(result)
                if save:
                    await self._save(plan, executed)
            except ApplyError as e:
                tracker.log_change("delete", parameters, success=False,
                                   commands=e.executed_commands, error=str(e))
                raise

            after = await self._read(grammar)

        tracker.snapshot("after", after)
        tracker.log_change("delete", parameters, success=True,
                           commands=[r.command.text for r in executed])
        if after is not None:
            logger.warning(f"{grammar.name} on {self.device_id} still present after delete: {after}")

    async def import_(
        self,
        grammar: Grammar,
        identity: Optional[Mapping[str, Any]] = None,
        deadline: Optional[float] = None,
    ) -> Record:
        """Read an existing resource so it can be adopted as desired state.

        Raises:
            NotFoundError: nothing is configured for that identity
        """
        bound = grammar.bind(**identity) if identity else grammar
        record = await self.read(bound, deadline)
        if record is None:
            described = ", ".join(f"{k}={v}" for k, v in bound.params.items()) or "default"
            raise NotFoundError(f"{grammar.name} ({described}) not found on {self.device_id}")
        return record
