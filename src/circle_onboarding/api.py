"""
Onboarding API Endpoints.

Thin HTTP layer over OnboardingWizard. One wizard per user is kept in-process
and resumed from the durable channel / local cache on first use. It is
dropped once onboarding completes or after it sits idle.
"""

import asyncio
import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from .fields import get_form_options
from .navigation import Transition
from .payload import SubmissionError
from .wizard import InvalidAnswerError, OnboardingWizard, WizardStateError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])

# user_id -> live wizard
_wizards: dict[str, OnboardingWizard] = {}
# user_id -> monotonic time of the last request
_last_used: dict[str, float] = {}
_wizards_lock = asyncio.Lock()


# =============================================================================
# Auth
# =============================================================================

class AuthenticatedUser(BaseModel):
    """Authenticated user info from Supabase JWT."""
    id: str
    email: str | None
    access_token: str


async def get_current_user(authorization: str = Header(None)) -> AuthenticatedUser:
    """
    Validate Supabase JWT and extract user info.

    Expects: Authorization: Bearer <supabase_access_token>
    """
    from .db import get_service_client

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    token = authorization.replace("Bearer ", "")

    try:
        client = get_service_client()
        user_response = client.auth.get_user(token)

        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid token")

        return AuthenticatedUser(
            id=user_response.user.id,
            email=user_response.user.email,
            access_token=token,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Auth error: {e}")
        raise HTTPException(status_code=401, detail="Authentication failed")


# =============================================================================
# Request/Response Models
# =============================================================================

class DataUpdateRequest(BaseModel):
    """Partial answers to merge into the session."""
    data: dict[str, Any] = Field(default_factory=dict)


class JumpRequest(BaseModel):
    index: int


class StateResponse(BaseModel):
    """Current onboarding state."""
    completed: bool
    step_index: int | None = None
    step_id: str | None = None
    step_label: str | None = None
    sequence: list[str] = Field(default_factory=list)
    progress: int = 0
    steps: list[dict] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)
    is_terminal: bool = False
    last_persisted_at: str | None = None


class TransitionResponse(BaseModel):
    """Result of a navigation request, plus the state after it."""
    success: bool
    step_id: str
    index: int
    missing_fields: list[str] = Field(default_factory=list)
    reason: str = ""
    state: StateResponse


# =============================================================================
# Wizard Management
# =============================================================================

def build_wizard(user_id: str) -> OnboardingWizard:
    return OnboardingWizard.for_user(user_id)


async def get_wizard(user: AuthenticatedUser = Depends(get_current_user)) -> OnboardingWizard:
    """
    Live wizard for the user, loading it on first access.

    Completed sessions are not kept; every request re-reads the durable
    channel, which answers completed=true without touching the local cache.
    """
    async with _wizards_lock:
        await expire_idle_wizards()
        wizard = _wizards.get(user.id)
        if wizard is None:
            wizard = build_wizard(user.id)
            result = await wizard.start()
            if result.completed:
                await wizard.close()
                return wizard
            _wizards[user.id] = wizard
        _last_used[user.id] = time.monotonic()
    return wizard


async def drop_wizard(user_id: str, flush: bool = False) -> bool:
    """Forget a user's wizard. flush=True writes a pending durable update first."""
    wizard = _wizards.pop(user_id, None)
    _last_used.pop(user_id, None)
    if wizard is None:
        return False
    if flush:
        await wizard.persistence.flush()
    await wizard.close()
    return True


async def expire_idle_wizards(now: float | None = None) -> list[str]:
    """Drop wizards nobody has touched within the idle window."""
    from .config import settings

    now = time.monotonic() if now is None else now
    expired = [
        user_id for user_id, used_at in _last_used.items()
        if now - used_at > settings.wizard_idle_seconds
    ]
    for user_id in expired:
        logger.info(f"Dropping idle onboarding wizard for {user_id}")
        await drop_wizard(user_id, flush=True)
    return expired


def _transition_response(wizard: OnboardingWizard, transition: Transition) -> TransitionResponse:
    return TransitionResponse(
        success=transition.moved,
        step_id=transition.step_id,
        index=transition.index,
        missing_fields=transition.missing_fields,
        reason=transition.reason,
        state=StateResponse(**wizard.state()),
    )


# =============================================================================
# Endpoints: State
# =============================================================================

@router.get("/state", response_model=StateResponse)
async def get_onboarding_state(wizard: OnboardingWizard = Depends(get_wizard)) -> StateResponse:
    """Get current onboarding progress (completed=true once onboarding is done)."""
    return StateResponse(**wizard.state())


@router.patch("/data", response_model=StateResponse)
async def update_onboarding_data(
    request: DataUpdateRequest,
    wizard: OnboardingWizard = Depends(get_wizard),
) -> StateResponse:
    """Merge partial answers into the session."""
    try:
        wizard.update_data(request.data)
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidAnswerError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return StateResponse(**wizard.state())


@router.get("/options")
async def get_onboarding_options():
    """
    Get form options for every step.

    Returns locations, equipment, goals, levels and PR units with display
    metadata for frontend rendering.
    """
    return get_form_options()


# =============================================================================
# Endpoints: Navigation
# =============================================================================

@router.post("/advance", response_model=TransitionResponse)
async def advance_step(wizard: OnboardingWizard = Depends(get_wizard)) -> TransitionResponse:
    """Move to the next step if the current one is complete."""
    try:
        transition = wizard.advance()
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _transition_response(wizard, transition)


@router.post("/retreat", response_model=TransitionResponse)
async def retreat_step(wizard: OnboardingWizard = Depends(get_wizard)) -> TransitionResponse:
    """Go back one step."""
    try:
        transition = wizard.retreat()
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _transition_response(wizard, transition)


@router.post("/skip", response_model=TransitionResponse)
async def skip_step(wizard: OnboardingWizard = Depends(get_wizard)) -> TransitionResponse:
    """Skip the current step if skippable."""
    try:
        transition = wizard.skip()
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _transition_response(wizard, transition)


@router.post("/jump", response_model=TransitionResponse)
async def jump_to_step(
    request: JumpRequest,
    wizard: OnboardingWizard = Depends(get_wizard),
) -> TransitionResponse:
    """Jump to an earlier step or an already-completed later one."""
    try:
        transition = wizard.jump_to(request.index)
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _transition_response(wizard, transition)


# =============================================================================
# Endpoints: Completion
# =============================================================================

@router.post("/complete")
async def complete_onboarding(
    user: AuthenticatedUser = Depends(get_current_user),
    wizard: OnboardingWizard = Depends(get_wizard),
):
    """
    Finalize onboarding.

    1. Re-checks every step in the current sequence (400 lists what's missing)
    2. Normalizes answers into the payload (422 on bad PR entries)
    3. Writes the completion record (502 if that fails; safe to retry)
    """
    try:
        result = await wizard.submit()
    except WizardStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SubmissionError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if result.status == "incomplete":
        raise HTTPException(
            status_code=400,
            detail={"message": "Onboarding is incomplete", "incomplete_steps": result.incomplete_steps},
        )
    if result.status == "invalid":
        raise HTTPException(
            status_code=422,
            detail={"message": "Some answers are invalid", "steps": result.invalid_steps, "errors": result.errors},
        )
    if result.status == "duplicate":
        raise HTTPException(status_code=409, detail="Submission already in progress")

    await drop_wizard(user.id)
    return {
        "success": True,
        "message": "Onboarding complete!",
        "payload": result.payload,
    }


@router.delete("/session")
async def delete_session(user: AuthenticatedUser = Depends(get_current_user)):
    """Tear down the in-process wizard (pending durable writes are cancelled)."""
    dropped = await drop_wizard(user.id)
    return {"success": True, "dropped": dropped}
