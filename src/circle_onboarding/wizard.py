"""
Onboarding Wizard.

One user's wizard session: the session store, its persistence, navigation
and submission wired together. This is what the API and tests drive.
"""

import logging
from typing import Any, Mapping

from supabase import Client

from .catalog import EquipmentCatalog
from .channels import (
    FileCache,
    LocalCache,
    RemoteProgress,
    SupabaseEquipmentLookup,
    SupabaseProgressStore,
)
from .fields import implied_equipment
from .navigation import NavigationController, Transition
from .payload import SubmissionAssembler, SubmissionResult
from .persistence import LoadResult, PersistenceCoordinator
from .progress import percent, step_progress
from .state import SessionStore
from .steps import (
    BRANCH_FIELDS,
    HOME_EQUIPMENT,
    LOCATIONS,
    StepDefinition,
    check_branch_fields,
    id_list,
    is_step_complete,
)

logger = logging.getLogger(__name__)


class WizardStateError(RuntimeError):
    """The wizard isn't in a state that allows the requested operation."""


class InvalidAnswerError(ValueError):
    """An answer has a shape the wizard can't branch on. Nothing was stored."""


class OnboardingWizard:
    """
    Facade over a single onboarding session.

    Call start() before anything else. After a successful submit() (or when
    start() finds onboarding already completed) the wizard is read-only.
    """

    def __init__(
        self,
        fast: LocalCache,
        durable: RemoteProgress,
        catalog: EquipmentCatalog | None = None,
        debounce_seconds: float | None = None,
    ):
        self.store = SessionStore()
        self.persistence = PersistenceCoordinator(fast, durable, debounce_seconds)
        self.navigation = NavigationController(self.store)
        self.catalog = catalog or EquipmentCatalog()
        self.assembler = SubmissionAssembler(durable, self.catalog, self.persistence)

        self.started = False
        self.completed = False
        self.closed = False

    @classmethod
    def for_user(cls, user_id: str, client: Client | None = None) -> "OnboardingWizard":
        """Wizard backed by a per-user FileCache and the Supabase tables."""
        from .config import settings

        return cls(
            fast=FileCache(user_id, settings.local_cache_dir),
            durable=SupabaseProgressStore(user_id, client=client),
            catalog=EquipmentCatalog(SupabaseEquipmentLookup(client=client)),
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> LoadResult:
        """Resume from the durable channel, then the local cache, else start fresh."""
        result = await self.persistence.load()
        self.store.hydrate(result.record)
        self.completed = result.completed
        if not result.completed:
            self.persistence.attach(self.store)
        self.started = True
        logger.info(f"Onboarding session loaded from {result.source} at step {self.store.step_index}")
        return result

    async def close(self) -> None:
        """Cancel any pending durable write and stop listening to the store."""
        self.persistence.close()
        self.closed = True

    def _require_active(self) -> None:
        if not self.started:
            raise WizardStateError("Wizard has not been started")
        if self.completed:
            raise WizardStateError("Onboarding is already completed")
        if self.closed:
            raise WizardStateError("Wizard is closed")

    # -------------------------------------------------------------------------
    # Answers
    # -------------------------------------------------------------------------

    def update(self, **fields: Any) -> None:
        self.update_data(fields)

    def update_data(self, partial: Mapping[str, Any]) -> None:
        """Merge answers; re-anchor the pointer if the branch shape may have changed."""
        self._require_active()
        try:
            check_branch_fields(partial)
        except ValueError as e:
            raise InvalidAnswerError(str(e))
        previous_step_id = self.navigation.current_step.id
        self.store.update(partial)
        if BRANCH_FIELDS.intersection(partial):
            self.navigation.reconcile(previous_step_id)

    def _apply_implied_equipment(self, step: StepDefinition) -> None:
        data = self.store.data
        locations = id_list(data.get("gym_locations"))
        current = id_list(data.get("equipment_access"))

        if step.id == LOCATIONS.id and "home" not in locations:
            equipment = implied_equipment(locations)
        elif step.id == HOME_EQUIPMENT.id:
            equipment = implied_equipment(locations, current)
        else:
            return

        if equipment != current:
            self.update_data({"equipment_access": equipment})

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    @property
    def current_step(self) -> StepDefinition:
        return self.navigation.current_step

    def advance(self) -> Transition:
        self._require_active()
        step = self.navigation.current_step
        if is_step_complete(step, dict(self.store.data)):
            self._apply_implied_equipment(step)
        return self.navigation.advance()

    def retreat(self) -> Transition:
        self._require_active()
        return self.navigation.retreat()

    def jump_to(self, index: int) -> Transition:
        self._require_active()
        return self.navigation.jump_to(index)

    def skip(self) -> Transition:
        self._require_active()
        return self.navigation.skip()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def progress(self) -> int:
        return percent(dict(self.store.data))

    def state(self) -> dict:
        """Serializable view of the session for the UI."""
        record = self.store.snapshot()
        if self.completed:
            return {
                "completed": True,
                "step_index": None,
                "step_id": None,
                "step_label": None,
                "sequence": [],
                "progress": 100,
                "steps": [],
                "data": {},
                "is_terminal": True,
                "last_persisted_at": None,
            }

        steps = self.navigation.steps
        index = self.navigation.current_index
        return {
            "completed": False,
            "step_index": index,
            "step_id": steps[index].id,
            "step_label": steps[index].label,
            "sequence": [s.id for s in steps],
            "progress": percent(record.data),
            "steps": [p.to_dict() for p in step_progress(record.data)],
            "data": record.data,
            "is_terminal": steps[index].is_terminal,
            "last_persisted_at": record.last_persisted_at,
        }

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit(self) -> SubmissionResult:
        """
        Submit from the review step.

        An incomplete session routes the pointer to the first incomplete step.
        SubmissionError propagates; the session is left as it was so the user
        can retry.
        """
        self._require_active()
        if not self.navigation.current_step.is_terminal:
            raise WizardStateError("Submission is only available from the review step")

        result = await self.assembler.submit(self.store.data)
        if result.status == "incomplete":
            self.navigation.route_to(result.incomplete_steps[0])
        elif result.status == "submitted":
            self.completed = True
            logger.info("Onboarding submitted")
        return result
