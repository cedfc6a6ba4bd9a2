"""
Step Registry.

Static catalog of wizard steps and the pure function that derives the
effective step sequence from the answers given so far.

Branching happens at the locations step: commercial-type locations insert the
gym-search step, a home gym inserts the home-equipment step (and the weights
step while dumbbells or a barbell are possible), outdoor-only inserts nothing.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from .fields import COMMERCIAL_LOCATION_TYPES, FIELD_KEYS, WEIGHTED_EQUIPMENT


@dataclass(frozen=True)
class StepDefinition:
    """One page of the onboarding wizard."""
    id: str
    group: str
    label: str
    required_fields: tuple[str, ...] = ()
    # Given the answers, which steps to insert right after this one
    branch: Optional[Callable[[dict], list["StepDefinition"]]] = None
    # Skippable steps complete by writing their acknowledged field
    skippable: bool = False
    # Other fields the step writes (used to route validation errors back)
    optional_fields: tuple[str, ...] = ()

    @property
    def sentinel_field(self) -> str | None:
        """Field synthesized by skip(); only defined for skippable steps."""
        if not self.skippable or not self.required_fields:
            return None
        return self.required_fields[0]

    @property
    def is_terminal(self) -> bool:
        return self.id == REVIEW.id


def is_filled(value) -> bool:
    """A value counts as answered if it is not None, "" or an empty collection."""
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def is_step_complete(step: StepDefinition, data: dict) -> bool:
    """True iff every required field of the step is present and non-empty."""
    return all(is_filled(data.get(key)) for key in step.required_fields)


def missing_fields(step: StepDefinition, data: dict) -> list[str]:
    """Required fields of the step that are still unanswered."""
    return [key for key in step.required_fields if not is_filled(data.get(key))]


# =============================================================================
# Step Definitions
# =============================================================================

NAME = StepDefinition("name", "About you", "Name", ("name",))
PROFILE_PHOTO = StepDefinition(
    "profile_photo", "About you", "Profile Photo",
    ("profile_photo_acknowledged",), skippable=True,
    optional_fields=("profile_picture",),
)
BASICS = StepDefinition(
    "basics", "About you", "Basics",
    ("birth_year", "gender", "height_feet", "weight"),
    optional_fields=("birth_month", "age", "height_inches", "body_fat_percentage", "target_weight"),
)
GOALS = StepDefinition(
    "goals", "Goals", "Goals", ("primary_goal",),
    optional_fields=("secondary_goals", "primary_motivation", "timeline"),
)
FITNESS_LEVEL = StepDefinition("fitness_level", "Training", "Fitness Level", ("fitness_level",))
ACTIVITY = StepDefinition(
    "activity", "Training", "Activity", ("training_frequency",),
    optional_fields=("activity_level", "current_activity"),
)
SPORTS = StepDefinition(
    "sports", "Training", "Sports", ("sports_acknowledged",), skippable=True,
    optional_fields=("sports",),
)
MAXES = StepDefinition(
    "maxes", "Training", "PRs & Skills", ("maxes_acknowledged",), skippable=True,
    optional_fields=("current_maxes",),
)
LIMITATIONS = StepDefinition(
    "limitations", "Health", "Limitations", ("limitations_acknowledged",), skippable=True,
    optional_fields=("limitations",),
)
GYM_SEARCH = StepDefinition(
    "gym_search", "Equipment", "Find Your Gym",
    ("gym_search_acknowledged",), skippable=True,
    optional_fields=("commercial_gym_details",),
)
HOME_EQUIPMENT = StepDefinition("equipment", "Equipment", "Home Equipment", ("equipment_access",))
WEIGHTS = StepDefinition(
    "weights", "Equipment", "Weights", ("weights_acknowledged",), skippable=True,
    optional_fields=("equipment_details",),
)


def id_list(value) -> list[str]:
    """String ids from a branch field; anything that isn't a list reads as empty."""
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


def check_branch_fields(data: dict) -> None:
    """Raise ValueError if a branch field is set to anything but a list of string ids."""
    for key in sorted(BRANCH_FIELDS):
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"{key} must be a list of ids, got {value!r}")


def _location_branch(data: dict) -> list[StepDefinition]:
    locations = id_list(data.get("gym_locations"))
    branched = []
    if any(loc in COMMERCIAL_LOCATION_TYPES for loc in locations):
        branched.append(GYM_SEARCH)
    if "home" in locations:
        branched.append(HOME_EQUIPMENT)
        equipment = id_list(data.get("equipment_access"))
        # Until equipment is picked we can't rule the weights step out
        if not equipment or WEIGHTED_EQUIPMENT.intersection(equipment):
            branched.append(WEIGHTS)
    return branched


LOCATIONS = StepDefinition(
    "locations", "Equipment", "Where You Train", ("gym_locations",),
    branch=_location_branch,
)
PREFERENCES = StepDefinition(
    "preferences", "Schedule", "Preferences", ("workout_duration", "workout_days"),
    optional_fields=("city", "state", "country"),
)
PERSONAL_CONTEXT = StepDefinition(
    "personal_context", "Schedule", "Your Story",
    ("personal_context_acknowledged",), skippable=True,
    optional_fields=("personal_context",),
)
REVIEW = StepDefinition(
    "review", "Review", "Review & Submit",
    optional_fields=("profile_visibility",),
)


# Full static list, in display order. Progress is computed over all of these.
STEP_DEFINITIONS: tuple[StepDefinition, ...] = (
    NAME,
    PROFILE_PHOTO,
    BASICS,
    GOALS,
    FITNESS_LEVEL,
    ACTIVITY,
    SPORTS,
    MAXES,
    LIMITATIONS,
    LOCATIONS,
    GYM_SEARCH,
    HOME_EQUIPMENT,
    WEIGHTS,
    PREFERENCES,
    PERSONAL_CONTEXT,
    REVIEW,
)

# Steps that only appear through a branch predicate
BRANCH_STEPS = frozenset({GYM_SEARCH.id, HOME_EQUIPMENT.id, WEIGHTS.id})

_SPINE: tuple[StepDefinition, ...] = tuple(
    s for s in STEP_DEFINITIONS if s.id not in BRANCH_STEPS
)

# Fields whose change can reshape the sequence
BRANCH_FIELDS = frozenset({"gym_locations", "equipment_access"})


def _check_registry(steps: tuple[StepDefinition, ...]) -> None:
    seen = set()
    for step in steps:
        if step.id in seen:
            raise ValueError(f"Duplicate step id: {step.id}")
        seen.add(step.id)
        unknown = set(step.required_fields) - FIELD_KEYS
        if unknown:
            raise ValueError(f"Step {step.id} requires unknown fields: {sorted(unknown)}")
        unknown = set(step.optional_fields) - FIELD_KEYS
        if unknown:
            raise ValueError(f"Step {step.id} writes unknown fields: {sorted(unknown)}")
    if steps[-1].required_fields:
        raise ValueError("The terminal step cannot have required fields")


_check_registry(STEP_DEFINITIONS)

_BY_ID = {s.id: s for s in STEP_DEFINITIONS}


# =============================================================================
# Registry API
# =============================================================================

def sequence(data: dict) -> list[StepDefinition]:
    """
    Ordered list of steps that apply to the given answers.

    Pure and deterministic: the same data always yields the same sequence.
    """
    steps = []
    for step in _SPINE:
        steps.append(step)
        if step.branch is not None:
            steps.extend(step.branch(data))
    return steps


def get_step(step_id: str) -> StepDefinition:
    """Look up a step definition by id. Raises KeyError for unknown ids."""
    return _BY_ID[step_id]


def required_field_keys() -> list[str]:
    """Flattened, de-duplicated required fields across the full static list."""
    keys: list[str] = []
    for step in STEP_DEFINITIONS:
        for key in step.required_fields:
            if key not in keys:
                keys.append(key)
    return keys


def step_for_field(key: str) -> StepDefinition | None:
    """The step that collects a given field, if any."""
    for step in STEP_DEFINITIONS:
        if key in step.required_fields or key in step.optional_fields:
            return step
    return None


def clamp_index(index: int, steps: list[StepDefinition]) -> int:
    """Clamp a step pointer into [0, len(steps) - 1]."""
    return max(0, min(index, len(steps) - 1))


def incomplete_steps(data: dict) -> list[StepDefinition]:
    """Steps of the current branched sequence that are not complete yet."""
    return [s for s in sequence(data) if not is_step_complete(s, data)]
