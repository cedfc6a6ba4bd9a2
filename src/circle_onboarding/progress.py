"""
Completion progress.

Progress is measured over the required fields of the full static step list,
not the branched sequence, so pruning a branch never makes the number drop.
"""

from dataclasses import asdict, dataclass

from .steps import STEP_DEFINITIONS, is_filled, is_step_complete, required_field_keys, sequence


def completed_field_count(data: dict) -> int:
    return sum(1 for key in required_field_keys() if is_filled(data.get(key)))


def percent(data: dict) -> int:
    """Share of required fields answered, as a whole percent in [0, 100]."""
    keys = required_field_keys()
    if not keys:
        return 100
    # Half up, not round-half-even
    return int(100 * completed_field_count(data) / len(keys) + 0.5)


@dataclass
class StepProgress:
    step_id: str
    label: str
    group: str
    filled: int
    total: int
    completed: bool
    in_sequence: bool

    def to_dict(self) -> dict:
        return asdict(self)


def step_progress(data: dict) -> list[StepProgress]:
    """Per-step breakdown over the full static list."""
    active = {s.id for s in sequence(data)}
    return [
        StepProgress(
            step_id=step.id,
            label=step.label,
            group=step.group,
            filled=sum(1 for key in step.required_fields if is_filled(data.get(key))),
            total=len(step.required_fields),
            completed=is_step_complete(step, data),
            in_sequence=step.id in active,
        )
        for step in STEP_DEFINITIONS
    ]
