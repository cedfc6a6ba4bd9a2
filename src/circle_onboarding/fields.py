"""
Onboarding Fields - the answer schema and option catalogs.

Every key a wizard step can write is declared on OnboardingFields. The session
itself stores answers as a plain dict (open and append-only); this model is the
contract used to check step definitions and to validate answers on demand.
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


# =============================================================================
# Option Catalogs
# =============================================================================

LOCATION_TYPES = [
    {"id": "home", "label": "Home Gym", "description": "I work out at home"},
    {"id": "commercial", "label": "Commercial Gym", "description": "Planet Fitness, LA Fitness, etc."},
    {"id": "crossfit", "label": "CrossFit Box", "description": "CrossFit affiliate gym"},
    {"id": "school", "label": "School/University", "description": "School or campus gym"},
    {"id": "outdoor", "label": "Outdoor/Park", "description": "Park, track, or outdoor area"},
]
VALID_LOCATION_IDS = {loc["id"] for loc in LOCATION_TYPES}

# Location types that get a gym-search step and a full-gym equipment list
COMMERCIAL_LOCATION_TYPES = ["commercial", "crossfit", "school"]

DEFAULT_GYM_NAMES = {
    "commercial": "Commercial Gym",
    "crossfit": "CrossFit Box",
    "school": "School/University Gym",
}

HOME_EQUIPMENT_OPTIONS = [
    {"id": "bodyweight", "label": "Bodyweight Only"},
    {"id": "dumbbells", "label": "Dumbbells"},
    {"id": "barbell", "label": "Barbell & Plates"},
    {"id": "squat_rack", "label": "Squat Rack/Stand"},
    {"id": "bench", "label": "Bench"},
    {"id": "pull_up_bar", "label": "Pull-up Bar"},
    {"id": "kettlebells", "label": "Kettlebells"},
    {"id": "resistance_bands", "label": "Resistance Bands"},
    {"id": "cables", "label": "Cable Machine"},
    {"id": "cardio", "label": "Cardio Equipment"},
    {"id": "trx", "label": "TRX/Suspension"},
    {"id": "rings", "label": "Gymnastic Rings"},
    {"id": "box", "label": "Plyo Box"},
    {"id": "medicine_ball", "label": "Medicine Ball"},
    {"id": "jump_rope", "label": "Jump Rope"},
    {"id": "foam_roller", "label": "Foam Roller"},
]
VALID_EQUIPMENT_IDS = {e["id"] for e in HOME_EQUIPMENT_OPTIONS} | {"full_gym"}

# Equipment that needs the weights follow-up step
WEIGHTED_EQUIPMENT = {"dumbbells", "barbell"}

OUTDOOR_EQUIPMENT = ["bodyweight", "resistance_bands"]
COMMERCIAL_EQUIPMENT = ["full_gym"]

GOAL_OPTIONS = [
    {"id": "weight_loss", "label": "Lose weight"},
    {"id": "muscle_gain", "label": "Build muscle"},
    {"id": "strength", "label": "Get stronger"},
    {"id": "endurance", "label": "Build endurance"},
    {"id": "athletic", "label": "Athletic performance"},
    {"id": "flexibility", "label": "Improve mobility"},
    {"id": "body_recomp", "label": "Body recomp"},
    {"id": "health", "label": "Overall health"},
    {"id": "energy", "label": "More energy"},
    {"id": "stress", "label": "Stress relief"},
]

FITNESS_LEVELS = ["beginner", "intermediate", "advanced", "elite"]

ACTIVITY_LEVELS = [
    {"id": "sedentary", "label": "Sedentary", "steps": 2500},
    {"id": "light", "label": "Lightly Active", "steps": 4500},
    {"id": "moderate", "label": "Moderately Active", "steps": 8000},
    {"id": "active", "label": "Very Active", "steps": 12000},
    {"id": "very_active", "label": "Extremely Active", "steps": 17000},
]

WORKOUT_STYLES = [
    {"id": "quick", "label": "Quick sessions", "avg_duration": 20},
    {"id": "standard", "label": "Standard sessions", "avg_duration": 50},
    {"id": "extended", "label": "Extended sessions", "avg_duration": 80},
    {"id": "varies", "label": "It varies", "avg_duration": 60},
]

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# PR units: time-like units are normalized to seconds at submission
TIME_UNITS = {"mm:ss", "hh:mm:ss", "ss.ms"}
PR_UNITS = TIME_UNITS | {"lbs", "kg", "reps", "rounds", "skill"}


# =============================================================================
# Nested Entry Models
# =============================================================================

class MaxEntry(BaseModel):
    """A PR or skill entry. Time-like values may still be strings ("7:30")."""
    exercise: str
    value: float | int | str
    unit: str
    is_custom: bool = False


class Limitation(BaseModel):
    body_part: str
    condition: str | None = None
    severity: Literal["mild", "moderate", "severe"] | None = None
    movements_to_avoid: list[str] = Field(default_factory=list)


class GymDetail(BaseModel):
    location_type: str
    name: str
    address: str | None = None
    lat: float | None = None
    lng: float | None = None


class Sport(BaseModel):
    id: str
    name: str
    icon: str | None = None


class ActivityLevel(BaseModel):
    job_type: Literal["sedentary", "light", "moderate", "active", "very_active"]
    daily_steps: int | None = None
    description: str | None = None


# =============================================================================
# Answer Schema
# =============================================================================

class OnboardingFields(BaseModel):
    """
    All answers a user can give during onboarding.

    Everything is optional: the wizard fills this in step by step, and the
    step registry decides which keys are required where. Unknown keys are
    allowed so newer clients can write fields older servers don't know yet.
    """

    model_config = ConfigDict(extra="allow")

    # Name + photo
    name: str | None = None
    profile_picture: str | None = None
    profile_photo_acknowledged: bool | None = None

    # Basics
    birth_month: int | None = Field(default=None, ge=1, le=12)
    birth_year: int | None = Field(default=None, ge=1900)
    age: int | None = Field(default=None, ge=0, le=120)  # Legacy clients
    gender: Literal["male", "female", "other"] | None = None
    height_feet: int | None = Field(default=None, ge=0, le=9)
    height_inches: int | None = Field(default=None, ge=0, le=11)
    weight: float | None = Field(default=None, gt=0)
    body_fat_percentage: float | None = Field(default=None, ge=0, le=100)
    target_weight: float | None = None

    # Goals
    primary_goal: str | None = None
    secondary_goals: list[str] | None = None
    primary_motivation: str | list[str] | None = None
    timeline: str | None = None

    # Fitness level + activity
    fitness_level: Literal["beginner", "intermediate", "advanced", "elite"] | None = None
    training_frequency: int | None = Field(default=None, ge=0, le=14)
    activity_level: ActivityLevel | None = None
    current_activity: str | None = None

    # Sports
    sports: list[Sport] | None = None
    sports_acknowledged: bool | None = None

    # PRs & skills
    current_maxes: list[MaxEntry] | None = None
    maxes_acknowledged: bool | None = None

    # Limitations
    limitations: list[Limitation] | None = None
    limitations_acknowledged: bool | None = None

    # Locations + equipment
    gym_locations: list[str] | None = None
    commercial_gym_details: list[GymDetail] | None = None
    gym_search_acknowledged: bool | None = None
    equipment_access: list[str] | None = None
    equipment_details: dict[str, Any] | None = None
    weights_acknowledged: bool | None = None

    # Schedule preferences
    workout_duration: int | None = Field(default=None, gt=0)
    workout_days: list[str] | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None

    # Free-text context
    personal_context: str | None = None
    personal_context_acknowledged: bool | None = None

    profile_visibility: Literal["public", "private"] | None = None

    @field_validator("gym_locations", mode="before")
    @classmethod
    def validate_locations(cls, v: list[str] | None) -> list[str] | None:
        """Normalize location ids, dropping unknown ones."""
        if not isinstance(v, list):
            return v
        validated = []
        for loc in v:
            if not isinstance(loc, str) or not loc.strip():
                continue
            loc_lower = loc.lower().strip()
            if loc_lower in VALID_LOCATION_IDS:
                if loc_lower not in validated:
                    validated.append(loc_lower)
            else:
                logger.info(f"Unknown gym location (ignored): {loc}")
        return validated

    @field_validator("equipment_access", mode="before")
    @classmethod
    def validate_equipment(cls, v: list[str] | None) -> list[str] | None:
        if not isinstance(v, list):
            return v
        validated = []
        for item in v:
            if isinstance(item, str) and item in VALID_EQUIPMENT_IDS:
                if item not in validated:
                    validated.append(item)
            else:
                logger.info(f"Unknown equipment (ignored): {item}")
        return validated

    @field_validator("workout_days", mode="before")
    @classmethod
    def validate_days(cls, v: list[str] | None) -> list[str] | None:
        if not isinstance(v, list):
            return v
        return [d.lower().strip() for d in v if isinstance(d, str) and d.lower().strip() in WEEKDAYS]


FIELD_KEYS: frozenset[str] = frozenset(OnboardingFields.model_fields)


def implied_equipment(locations: list[str], home_equipment: list[str] | None = None) -> list[str]:
    """
    Equipment list implied by the selected locations.

    Outdoor-only users get bodyweight + bands, commercial-type locations add a
    full gym, and home users keep whatever they picked.
    """
    has_home = "home" in locations
    has_commercial = any(loc in COMMERCIAL_LOCATION_TYPES for loc in locations)

    if has_home:
        equipment = list(home_equipment or [])
        if has_commercial and "full_gym" not in equipment:
            equipment.append("full_gym")
        return equipment
    if has_commercial:
        return list(COMMERCIAL_EQUIPMENT)
    if "outdoor" in locations:
        return list(OUTDOOR_EQUIPMENT)
    return []


def get_form_options() -> dict:
    """
    Get all option catalogs for frontend rendering.
    """
    return {
        "locations": LOCATION_TYPES,
        "commercial_location_types": COMMERCIAL_LOCATION_TYPES,
        "home_equipment": HOME_EQUIPMENT_OPTIONS,
        "goals": GOAL_OPTIONS,
        "fitness_levels": FITNESS_LEVELS,
        "activity_levels": ACTIVITY_LEVELS,
        "workout_styles": WORKOUT_STYLES,
        "weekdays": WEEKDAYS,
        "pr_units": sorted(PR_UNITS),
    }
