"""
Wizard navigation.

A small state machine over indices into sequence(data). The controller never
owns data: it reads answers from the session store and moves its pointer.
Rejected moves leave the store untouched and say why in the Transition.
"""

import logging
from dataclasses import asdict, dataclass, field

from .state import SessionStore
from .steps import (
    StepDefinition,
    clamp_index,
    is_step_complete,
    missing_fields,
    sequence,
)

logger = logging.getLogger(__name__)


@dataclass
class Transition:
    """Result of a navigation request."""
    moved: bool
    index: int
    step_id: str
    missing_fields: list[str] = field(default_factory=list)
    # Set when moved is False: incomplete, terminal, first_step,
    # out_of_range, locked, not_skippable
    reason: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


class NavigationController:
    """Moves the step pointer of a SessionStore through the branched sequence."""

    def __init__(self, store: SessionStore):
        self.store = store

    @property
    def steps(self) -> list[StepDefinition]:
        return sequence(dict(self.store.data))

    @property
    def current_index(self) -> int:
        return clamp_index(self.store.step_index, self.steps)

    @property
    def current_step(self) -> StepDefinition:
        return self.steps[self.current_index]

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    def advance(self) -> Transition:
        """Move forward one step if the current step is complete."""
        steps = self.steps
        index = clamp_index(self.store.step_index, steps)
        step = steps[index]

        missing = missing_fields(step, dict(self.store.data))
        if missing:
            return Transition(False, index, step.id, missing, reason="incomplete")
        if step.is_terminal:
            return Transition(False, index, step.id, reason="terminal")

        return self._move(index + 1, steps)

    def retreat(self) -> Transition:
        """Move back one step. Answers are kept."""
        steps = self.steps
        index = clamp_index(self.store.step_index, steps)
        if index == 0:
            return Transition(False, 0, steps[0].id, reason="first_step")
        return self._move(index - 1, steps)

    def jump_to(self, index: int) -> Transition:
        """
        Jump to any earlier step, or to a later step that is already complete.

        Forward jumps to an incomplete step are rejected with the target's
        missing fields.
        """
        steps = self.steps
        current = clamp_index(self.store.step_index, steps)

        if index < 0 or index >= len(steps):
            return Transition(False, current, steps[current].id, reason="out_of_range")

        target = steps[index]
        if index > current and not is_step_complete(target, dict(self.store.data)):
            return Transition(
                False, current, steps[current].id,
                missing_fields(target, dict(self.store.data)),
                reason="locked",
            )
        if index == current:
            return Transition(False, current, target.id)

        return self._move(index, steps)

    def skip(self) -> Transition:
        """Acknowledge a skippable step without answering it, then advance."""
        step = self.current_step
        if not step.skippable:
            return Transition(False, self.current_index, step.id, reason="not_skippable")

        self.store.update({step.sentinel_field: True})
        return self.advance()

    def route_to(self, step_id: str) -> Transition:
        """Point at a step by id (used to send the user back to an incomplete step)."""
        steps = self.steps
        for index, step in enumerate(steps):
            if step.id == step_id:
                if index == self.store.step_index:
                    return Transition(False, index, step_id)
                return self._move(index, steps)
        raise KeyError(f"Step {step_id} is not in the current sequence")

    def reconcile(self, previous_step_id: str) -> Transition:
        """
        Re-anchor the pointer after answers reshaped the sequence.

        The pointer follows its step if that step survived, otherwise it is
        clamped into the new sequence.
        """
        steps = self.steps
        ids = [s.id for s in steps]
        if previous_step_id in ids:
            target = ids.index(previous_step_id)
        else:
            target = clamp_index(self.store.step_index, steps)
            logger.info(f"Step {previous_step_id} left the sequence, pointer clamped to {target}")

        if target != self.store.step_index:
            return self._move(target, steps)
        return Transition(False, target, steps[target].id)

    def _move(self, index: int, steps: list[StepDefinition]) -> Transition:
        self.store.set_step_index(index)
        return Transition(True, index, steps[index].id)
