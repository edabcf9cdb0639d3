"""Step-by-step control of one full attack.

The controller is an explicit state machine::

    RUNNING(0) -advance/skip-> RUNNING(1) ... -> COMPLETED
        \\-cancel-> CANCELLED

Each run carries a correlation token (``run_id``); commands that name a
different run are rejected without side effects, as is anything issued
while another command is still in flight.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Sequence

from ..errors import CommandRejected, LedgerInvariantViolation, StepResolutionFailure
from ..logging import get_logger
from .context import StepContextBuilder
from .ledger import ResourceLedger
from .outcome import OutcomeSink, build_outcome
from .resolve import AttackResolver
from .types import AttackDescriptor, AttackForm, Phase, SequenceState, StepOutcome

log = get_logger(__name__)

CommandKind = Literal["advance", "skip", "cancel", "acknowledge"]


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    run_id: str


class SequentialController:
    def __init__(
        self,
        attacks: Sequence[AttackDescriptor],
        ledger: ResourceLedger,
        builder: StepContextBuilder,
        resolver: AttackResolver,
        sink: OutcomeSink,
        form: AttackForm,
        *,
        run_id: Optional[str] = None,
        release: Optional[Callable[[], None]] = None,
        on_complete: Optional[Callable[["SequentialController"], None]] = None,
    ) -> None:
        self.attacks: List[AttackDescriptor] = list(attacks)
        self.ledger = ledger
        self.builder = builder
        self.resolver = resolver
        self.sink = sink
        self.form = form
        self.run_id = run_id or uuid.uuid4().hex
        self.state = SequenceState(length=len(self.attacks))
        self.outcomes: List[StepOutcome] = []
        self._release = release
        self._released = False
        self._on_complete = on_complete
        self._busy = False
        self._fault: Optional[LedgerInvariantViolation] = None
        # Rolled and committed, but not yet delivered to the sink.
        self._undelivered: Optional[StepOutcome] = None

    # -- queries -----------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def current(self) -> Optional[AttackDescriptor]:
        if self.state.phase.terminal:
            return None
        return self.attacks[self.state.current_index]

    @property
    def is_last(self) -> bool:
        return self.state.current_index == len(self.attacks) - 1

    @property
    def halted(self) -> bool:
        return self._fault is not None

    @property
    def awaiting_delivery(self) -> bool:
        return self._undelivered is not None

    # -- commands ----------------------------------------------------------

    def dispatch(self, command: Command) -> Optional[StepOutcome]:
        handler = {
            "advance": self.advance,
            "skip": self.skip,
            "cancel": self.cancel,
            "acknowledge": self.acknowledge,
        }.get(command.kind)
        if handler is None:
            raise CommandRejected(f"unknown command {command.kind!r}")
        return handler(run_id=command.run_id)

    def advance(self, *, run_id: Optional[str] = None) -> StepOutcome:
        """Resolve the current attack and move to the next one."""
        self._guard("advance", run_id)
        self._busy = True
        try:
            return self._advance()
        finally:
            self._busy = False

    def skip(self, *, run_id: Optional[str] = None) -> None:
        """Move past the current attack without rolling or spending anything."""
        self._guard("skip", run_id)
        if self._undelivered is not None:
            raise CommandRejected(
                f"attack {self.state.current_index + 1} is already rolled and must be delivered"
            )
        index = self.state.current_index
        self.state.mark(self.state.skipped)
        log.info("skipped attack %d (%s)", index + 1, self.attacks[index].label)
        self._after_step()

    def cancel(self, *, run_id: Optional[str] = None) -> None:
        self._guard("cancel", run_id)
        if self._undelivered is not None:
            log.warning(
                "cancelled with attack %d rolled but undelivered", self._undelivered.index + 1
            )
            self._undelivered = None
        self.state.phase = Phase.CANCELLED
        log.info(
            "sequence %s cancelled at attack %d of %d",
            self.run_id,
            self.state.current_index + 1,
            len(self.attacks),
        )
        if self._release is not None and not self._released:
            self._released = True
            self._release()

    def acknowledge(self, *, run_id: Optional[str] = None) -> None:
        """Close a completed sequence. Changes nothing."""
        self._check_token(run_id)
        if self.state.phase is not Phase.COMPLETED:
            raise CommandRejected(f"cannot acknowledge a {self.state.phase.value} sequence")

    # -- internals ---------------------------------------------------------

    def _check_token(self, run_id: Optional[str]) -> None:
        if self._fault is not None:
            raise self._fault
        if run_id is not None and run_id != self.run_id:
            raise CommandRejected(f"command for run {run_id} sent to run {self.run_id}")

    def _guard(self, kind: str, run_id: Optional[str]) -> None:
        self._check_token(run_id)
        if self._busy:
            raise CommandRejected(f"{kind} rejected: another command is in progress")
        if self.state.phase.terminal:
            raise CommandRejected(f"{kind} rejected: sequence is {self.state.phase.value}")

    def _halt(self, err: LedgerInvariantViolation) -> LedgerInvariantViolation:
        self._fault = err
        log.error("sequence %s halted: %s", self.run_id, err)
        return err

    def _advance(self) -> StepOutcome:
        index = self.state.current_index
        atk = self.attacks[index]

        if self._undelivered is None:
            try:
                ctx = self.builder.build(self.form, atk, self.state)
            except Exception as e:
                log.exception("attack %d: could not build roll context", index + 1)
                raise StepResolutionFailure(index, e) from e

            if not self.ledger.can_afford(atk):
                raise self._halt(
                    LedgerInvariantViolation(
                        f"attack {index + 1} ({atk.label}) is no longer affordable"
                    )
                )

            try:
                rolled = self.resolver.roll(atk, ctx)
            except Exception as e:
                log.exception("attack %d: roll failed", index + 1)
                raise StepResolutionFailure(index, e) from e

            try:
                delta = self.ledger.commit_step(atk)
            except LedgerInvariantViolation as e:
                raise self._halt(e)

            self._undelivered = build_outcome(self.run_id, atk, ctx, rolled, delta)
        else:
            log.info("re-sending attack %d", index + 1)

        try:
            self.sink.emit(self._undelivered)
        except Exception as e:
            log.exception("attack %d: could not deliver result", index + 1)
            raise StepResolutionFailure(index, e) from e

        outcome, self._undelivered = self._undelivered, None
        self.outcomes.append(outcome)
        self.state.mark(self.state.resolved)
        self._after_step()
        return outcome

    def _after_step(self) -> None:
        if self.state.phase is not Phase.COMPLETED:
            return
        log.info(
            "sequence %s completed: %d resolved, %d skipped",
            self.run_id,
            len(self.state.resolved),
            len(self.state.skipped),
        )
        if self._on_complete is not None:
            self._on_complete(self)


__all__ = ["SequentialController", "Command", "CommandKind"]
