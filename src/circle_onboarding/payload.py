"""
Onboarding Payload and Submission.

The OnboardingPayload is the normalized handoff written to the durable channel
when the user finishes the wizard. build_payload() turns the raw wizard
answers into it; SubmissionAssembler guards the one-time submission.
"""

import calendar
import json
import logging
import math
import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal, Mapping

from pydantic import ValidationError

from .catalog import EquipmentCatalog
from .channels import RemoteProgress
from .fields import (
    COMMERCIAL_LOCATION_TYPES,
    DEFAULT_GYM_NAMES,
    OUTDOOR_EQUIPMENT,
    TIME_UNITS,
    MaxEntry,
    OnboardingFields,
    implied_equipment,
)
from .persistence import PersistenceCoordinator
from .steps import MAXES, incomplete_steps, step_for_field

logger = logging.getLogger(__name__)


ONBOARDING_VERSION = "2.0"

GOAL_CATEGORIES = {
    "strength": "strength",
    "weight_loss": "weight",
    "muscle_gain": "strength",
    "muscle_building": "strength",
    "cardio": "cardio",
    "endurance": "cardio",
    "skill": "skill",
    "flexibility": "health",
    "general_fitness": "health",
    "aesthetic": "weight",
    "health": "health",
}

_TIMELINE_PATTERN = re.compile(r"(\d+)\s*(week|month|year)", re.IGNORECASE)
# Digits with an optional decimal part
_TIME_PART_PATTERN = re.compile(r"\d+\.?\d*")


class PayloadError(ValueError):
    """Answers that can't be normalized. Carries the steps to send the user back to."""

    def __init__(self, errors: list[str], step_ids: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
        self.step_ids = step_ids


class SubmissionError(Exception):
    """The durable channel rejected the submission. Safe to retry."""


# =============================================================================
# Value Normalization
# =============================================================================

def parse_time_value(value: Any, unit: str) -> float:
    """
    Parse a time-like PR value into seconds.

    Accepts "m:ss" for mm:ss, "h:mm:ss" for hh:mm:ss and "12.34" for ss.ms.
    Numbers are taken as seconds already. Raises ValueError otherwise.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid time value: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            raise ValueError(f"Invalid {unit} value: {value!r}")
        return float(value)

    text = str(value).strip()
    max_parts = {"ss.ms": 1, "mm:ss": 2, "hh:mm:ss": 3}[unit]
    parts = [p.strip() for p in text.split(":")]
    if len(parts) > max_parts or not all(_TIME_PART_PATTERN.fullmatch(p) for p in parts):
        raise ValueError(f"Invalid {unit} value: {value!r}")

    seconds = 0.0
    for position, part in enumerate(parts):
        number = float(part)
        # Only the leading component may exceed 59
        if position > 0 and number >= 60:
            raise ValueError(f"Invalid {unit} value: {value!r}")
        seconds = seconds * 60 + number
    return seconds


def format_time_value(seconds: float, unit: str) -> str:
    """Render seconds back in the entry's unit, e.g. 450 -> "7:30"."""
    seconds = round(seconds, 2)
    if unit == "ss.ms":
        return f"{seconds:.2f}"

    whole = int(seconds)
    hours, remainder = divmod(whole, 3600)
    minutes, secs = divmod(remainder, 60)
    if unit == "hh:mm:ss":
        text = f"{hours}:{minutes:02d}:{secs:02d}"
    else:
        text = f"{hours * 60 + minutes}:{secs:02d}"

    fraction = round(seconds - whole, 2)
    if fraction:
        text += f"{fraction:.2f}"[1:]
    return text


def normalize_max(entry: MaxEntry) -> dict:
    """
    Convert a PR entry to base units.

    Time-like entries become seconds with the entered unit tag and a
    display string; weight and rep entries become floats.
    """
    if entry.unit in TIME_UNITS:
        seconds = parse_time_value(entry.value, entry.unit)
        display = entry.value if isinstance(entry.value, str) else format_time_value(seconds, entry.unit)
        return {
            "exercise": entry.exercise,
            "value": seconds,
            "unit": entry.unit,
            "display_value": display,
            "is_custom": entry.is_custom,
            "rep_max": None,
        }

    try:
        value = float(entry.value)
    except (TypeError, ValueError):
        raise ValueError(f"{entry.exercise}: {entry.value!r} is not a number")
    if not math.isfinite(value):
        raise ValueError(f"{entry.exercise}: {entry.value!r} is not a finite number")
    if value < 0:
        raise ValueError(f"{entry.exercise}: value cannot be negative")

    return {
        "exercise": entry.exercise,
        "value": value,
        "unit": entry.unit,
        "display_value": f"{value:g} {entry.unit}",
        "is_custom": entry.is_custom,
        "rep_max": 1 if entry.unit in ("lbs", "kg") else None,
    }


def height_in_inches(feet: int | None, inches: int | None) -> int | None:
    if feet is None:
        return None
    return feet * 12 + (inches or 0)


def resolve_birth(fields: OnboardingFields, today: date) -> tuple[int | None, int | None]:
    """(birth_month, birth_year), estimating from the legacy age field if needed."""
    if not fields.birth_month and not fields.birth_year and fields.age:
        return 1, today.year - fields.age
    return fields.birth_month, fields.birth_year


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def timeline_target_date(timeline: str | None, today: date) -> date | None:
    """Parse "12 weeks", "6 months", "1 year" into a target date."""
    if not timeline:
        return None
    match = _TIMELINE_PATTERN.search(timeline)
    if not match:
        return None

    amount = int(match.group(1))
    unit = match.group(2).lower()
    if unit == "week":
        return date.fromordinal(today.toordinal() + amount * 7)
    if unit == "month":
        return _add_months(today, amount)
    return _add_months(today, amount * 12)


def build_goal(fields: OnboardingFields, today: date) -> dict | None:
    if not fields.primary_goal:
        return None

    motivation = fields.primary_motivation
    if isinstance(motivation, list):
        motivation = ", ".join(motivation)

    target = timeline_target_date(fields.timeline, today)
    return {
        "type": fields.primary_goal,
        "title": fields.primary_goal.replace("_", " "),
        "description": motivation or None,
        "category": GOAL_CATEGORIES.get(fields.primary_goal, "health"),
        "target_date": target.isoformat() if target else None,
    }


def build_gym_locations(fields: OnboardingFields) -> list[dict]:
    """
    One entry per selected location type.

    Home is active whenever selected; commercial types are active only
    without a home gym; outdoor is active only when it's the sole option.
    """
    locations = fields.gym_locations or []
    entries = []

    if "home" in locations:
        entries.append({
            "name": "Home Gym",
            "type": "home",
            "is_active": True,
            "equipment": list(fields.equipment_access or []),
            "equipment_details": dict(fields.equipment_details or {}),
        })

    details = {d.location_type: d for d in fields.commercial_gym_details or []}
    for location_type in COMMERCIAL_LOCATION_TYPES:
        if location_type not in locations:
            continue
        detail = details.get(location_type)
        entries.append({
            "name": (detail.name if detail else None) or DEFAULT_GYM_NAMES[location_type],
            "type": location_type,
            "address": detail.address if detail else None,
            "lat": detail.lat if detail else None,
            "lng": detail.lng if detail else None,
            "is_active": "home" not in locations,
            "equipment": ["full_gym"],
            "equipment_details": {},
        })

    if "outdoor" in locations:
        entries.append({
            "name": "Outdoor/Park",
            "type": "outdoor",
            "is_active": not entries,
            "equipment": list(OUTDOOR_EQUIPMENT),
            "equipment_details": {},
        })

    if not entries and fields.equipment_access:
        # Answers saved before locations existed
        entries.append({
            "name": "My Gym",
            "type": "home",
            "is_active": True,
            "equipment": list(fields.equipment_access),
            "equipment_details": dict(fields.equipment_details or {}),
        })

    return entries


def workout_preferences(fields: OnboardingFields) -> dict:
    """Schedule and activity answers, only the ones actually given."""
    prefs = {
        "workout_days": fields.workout_days,
        "workout_duration": fields.workout_duration,
        "training_frequency": fields.training_frequency,
        "activity_level": fields.activity_level.model_dump() if fields.activity_level else None,
        "current_activity": fields.current_activity,
        "secondary_goals": fields.secondary_goals,
    }
    return {key: value for key, value in prefs.items() if value}


# =============================================================================
# Payload
# =============================================================================

@dataclass
class OnboardingPayload:
    """Everything the rest of the app needs from a finished onboarding."""

    # Identity
    name: str | None = None
    profile_picture: str | None = None
    birth_month: int | None = None
    birth_year: int | None = None
    gender: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None

    # Metrics
    weight: float | None = None
    height_inches: int | None = None
    body_fat_percentage: float | None = None
    target_weight: float | None = None
    fitness_level: str | None = None

    # Goals
    primary_goal: str | None = None
    goal: dict | None = None
    timeline: str | None = None

    # Training setup
    workout_preferences: dict = field(default_factory=dict)
    gym_locations: list[dict] = field(default_factory=list)
    equipment_access: list[str] = field(default_factory=list)
    equipment_ids: list[str] = field(default_factory=list)

    # History
    personal_records: list[dict] = field(default_factory=list)
    skills: list[dict] = field(default_factory=list)
    limitations: list[dict] = field(default_factory=list)
    sports: list[str] = field(default_factory=list)
    personal_context: str | None = None

    profile_visibility: Literal["public", "private"] = "private"

    # Metadata
    onboarding_completed: bool = True
    onboarding_version: str = ONBOARDING_VERSION
    completed_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def _validation_error(e: ValidationError) -> PayloadError:
    errors = []
    step_ids = []
    for err in e.errors():
        loc = err["loc"]
        errors.append(f"{'.'.join(str(p) for p in loc)}: {err['msg']}")
        step = step_for_field(str(loc[0])) if loc else None
        if step is not None and step.id not in step_ids:
            step_ids.append(step.id)
    return PayloadError(errors, step_ids)


def build_payload(data: Mapping[str, Any], today: date | None = None) -> OnboardingPayload:
    """
    Normalize raw wizard answers into an OnboardingPayload.

    equipment_ids is left empty; it needs the catalog (see SubmissionAssembler).

    Raises:
        PayloadError: answers that fail the field schema or PR parsing
    """
    today = today or date.today()
    try:
        fields = OnboardingFields.model_validate(dict(data))
    except ValidationError as e:
        raise _validation_error(e)

    records = []
    skills = []
    errors = []
    for i, entry in enumerate(fields.current_maxes or []):
        if entry.unit == "skill":
            skills.append({"name": entry.exercise, "status": str(entry.value)})
            continue
        try:
            records.append(normalize_max(entry))
        except ValueError as e:
            errors.append(f"current_maxes.{i}: {e}")
    if errors:
        raise PayloadError(errors, [MAXES.id])

    locations = fields.gym_locations or []
    equipment = fields.equipment_access or implied_equipment(locations)
    birth_month, birth_year = resolve_birth(fields, today)

    return OnboardingPayload(
        name=fields.name,
        profile_picture=fields.profile_picture,
        birth_month=birth_month,
        birth_year=birth_year,
        gender=fields.gender,
        city=fields.city,
        state=fields.state,
        country=fields.country,
        weight=fields.weight,
        height_inches=height_in_inches(fields.height_feet, fields.height_inches),
        body_fat_percentage=fields.body_fat_percentage,
        target_weight=fields.target_weight,
        fitness_level=fields.fitness_level,
        primary_goal=fields.primary_goal,
        goal=build_goal(fields, today),
        timeline=fields.timeline,
        workout_preferences=workout_preferences(fields),
        gym_locations=build_gym_locations(fields),
        equipment_access=list(equipment),
        personal_records=records,
        skills=skills,
        limitations=[lim.model_dump() for lim in fields.limitations or []],
        sports=[sport.name for sport in fields.sports or []],
        personal_context=fields.personal_context,
        profile_visibility=fields.profile_visibility or "private",
    )


# =============================================================================
# Submission
# =============================================================================

SubmissionStatus = Literal["submitted", "incomplete", "invalid", "duplicate"]


@dataclass
class SubmissionResult:
    status: SubmissionStatus
    # First entry is where the user should be sent
    incomplete_steps: list[str] = field(default_factory=list)
    invalid_steps: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    payload: dict | None = None

    @property
    def ok(self) -> bool:
        return self.status == "submitted"

    def to_dict(self) -> dict:
        return asdict(self)


class SubmissionAssembler:
    """
    Validates, normalizes and submits a session exactly once.

    A second submit() while one is in flight, or after one succeeded, returns
    status="duplicate" without touching the network.
    """

    def __init__(
        self,
        remote: RemoteProgress,
        catalog: EquipmentCatalog,
        persistence: PersistenceCoordinator | None = None,
    ):
        self.remote = remote
        self.catalog = catalog
        self.persistence = persistence
        self._in_flight = False
        self._submitted = False

    @property
    def submitted(self) -> bool:
        return self._submitted

    async def submit(self, data: Mapping[str, Any]) -> SubmissionResult:
        if self._submitted or self._in_flight:
            logger.info("Ignoring duplicate submission")
            return SubmissionResult(status="duplicate")

        data = dict(data)
        incomplete = incomplete_steps(data)
        if incomplete:
            return SubmissionResult(status="incomplete", incomplete_steps=[s.id for s in incomplete])

        try:
            payload = build_payload(data)
        except PayloadError as e:
            logger.info(f"Submission rejected: {e}")
            return SubmissionResult(status="invalid", invalid_steps=e.step_ids, errors=e.errors)

        self._in_flight = True
        try:
            payload.equipment_ids = await self.catalog.ids(payload.equipment_access)
            payload.completed_at = datetime.now(timezone.utc).isoformat()
            if self.persistence is not None:
                # Land any pending progress write before the completion record
                await self.persistence.flush()
            await self.remote.complete(payload.to_dict())
        except Exception as e:
            logger.error(f"Failed to submit onboarding: {e}")
            raise SubmissionError(f"Failed to submit onboarding: {e}") from e
        finally:
            self._in_flight = False

        self._submitted = True
        if self.persistence is not None:
            self.persistence.clear()

        return SubmissionResult(status="submitted", payload=payload.to_dict())
