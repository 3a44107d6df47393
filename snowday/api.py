"""HTTP API for the snow-day closure calculator."""

import hmac
from typing import Dict, Optional

import redis
from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from .config import settings
from .domain import (
    AlgorithmWeights,
    CalculationOutcome,
    CalculationState,
    CautionLevel,
    CommunityVote,
    PRESET_SCENARIOS,
    SchoolType,
    VoteChoice,
    WeatherSample,
)
from .errors import CalculationInProgress, InvalidWeights, MissingInput
from .orchestrator import SnowDayOrchestrator
from .session_manager import create_session, delete_session, get_session
from .store_manager import get_store
from .vote_store import VoteStore
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="snowday/api")

_redis_client = None
if settings.store_redis_url:
    try:
        _redis_client = redis.Redis.from_url(settings.store_redis_url)
        logger.info("API key checks will use Redis backend", extra={"redis_url": mask_url(settings.store_redis_url)})
    except (redis.RedisError, ValueError) as exc:
        logger.warning("Failed to configure Redis for API key checks; falling back to static key",
                       extra={"error": str(exc)})


def require_api_key(x_api_key: str | None = Header(default=None)):
    """Validate X-API-Key against the Redis key set (if any) or the static api_key setting."""
    if not settings.api_key and not _redis_client:
        return

    if not x_api_key:
        logger.debug("No API key provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if _redis_client:
        try:
            if _redis_client.sismember(settings.api_key_redis_set, x_api_key):
                return
        except redis.RedisError as e:
            logger.warning("Redis API key lookup error; falling back to static key",
                           extra={"error": str(e)})

    if settings.api_key and hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


router = APIRouter(dependencies=[Depends(require_api_key)])


class CalculateRequest(BaseModel):
    """Inputs for one calculate action; omitted fields keep the session's values."""
    location: Optional[str] = None
    school_type: Optional[SchoolType] = None
    caution_level: Optional[CautionLevel] = None
    manual_mode: Optional[bool] = None
    manual_sample: Optional[WeatherSample] = None
    scenario: Optional[str] = None
    weights: Optional[Dict[str, float]] = None


class WeightsRequest(BaseModel):
    """Partial weight overrides applied on top of the session's current draft."""
    overrides: Dict[str, float] = Field(default_factory=dict)
    reset: bool = False


class VoteRequest(BaseModel):
    choice: VoteChoice


class TallyResponse(BaseModel):
    """Tally plus derived consensus percentages."""
    location: str
    closes: int
    opens: int
    total: int
    close_percent: int
    open_percent: int


class SessionResponse(BaseModel):
    """Snapshot of a session after an action."""
    session_id: str
    state: CalculationState
    manual_mode: bool
    location: str
    school_type: SchoolType
    caution_level: CautionLevel
    weights: AlgorithmWeights
    outcome: CalculationOutcome


class VoteResponse(BaseModel):
    accepted: bool
    persisted: bool
    tally: TallyResponse


def _tally_response(location: str, tally: CommunityVote) -> TallyResponse:
    return TallyResponse(
        location=location,
        closes=tally.closes,
        opens=tally.opens,
        total=tally.total,
        close_percent=tally.close_percent,
        open_percent=tally.open_percent,
    )


def _session_response(session_id: str, orch: SnowDayOrchestrator) -> SessionResponse:
    return SessionResponse(
        session_id=session_id,
        state=orch.state,
        manual_mode=orch.manual_mode,
        location=orch.location,
        school_type=orch.school_type,
        caution_level=orch.caution,
        weights=orch.weights,
        outcome=orch.last_outcome,
    )


def _require_session(session_id: str) -> SnowDayOrchestrator:
    orch = get_session(session_id)
    if orch is None:
        raise HTTPException(status_code=404, detail="Unknown session ID")
    return orch


@router.post("/session/start", response_model=SessionResponse)
def start_session():
    """Create a session with default inputs and weights."""
    session_id, orch = create_session()
    return _session_response(session_id, orch)


@router.delete("/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def end_session(session_id: str):
    """Drop a session, cancelling any in-flight fetch."""
    _require_session(session_id)
    delete_session(session_id)


@router.get("/session/{session_id}", response_model=SessionResponse)
def read_session(session_id: str):
    return _session_response(session_id, _require_session(session_id))


@router.post("/session/{session_id}/calculate", response_model=SessionResponse)
def calculate(session_id: str, req: CalculateRequest):
    """Run a calculate action. Network failures come back as a FAILED outcome, not an HTTP error."""
    orch = _require_session(session_id)
    try:
        orch.calculate(
            req.location,
            school_type=req.school_type,
            caution=req.caution_level,
            manual_mode=req.manual_mode,
            manual_sample=req.manual_sample,
            weights=req.weights,
            scenario=req.scenario,
        )
    except (MissingInput, InvalidWeights) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message)
    except CalculationInProgress as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.user_message)
    return _session_response(session_id, orch)


@router.post("/session/{session_id}/cancel", response_model=SessionResponse)
def cancel_calculation(session_id: str):
    orch = _require_session(session_id)
    orch.cancel()
    return _session_response(session_id, orch)


@router.post("/session/{session_id}/reset", response_model=SessionResponse)
def reset_session(session_id: str):
    orch = _require_session(session_id)
    orch.reset()
    return _session_response(session_id, orch)


@router.put("/session/{session_id}/weights", response_model=AlgorithmWeights)
def update_weights(session_id: str, req: WeightsRequest):
    """Edit the session's weight draft; existing results are not recomputed."""
    orch = _require_session(session_id)
    if req.reset:
        orch.reset_weights()
    try:
        return orch.update_weights(req.overrides)
    except InvalidWeights as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message)


@router.post("/session/{session_id}/vote", response_model=VoteResponse)
def vote(session_id: str, req: VoteRequest):
    """Vote on the location of the session's last successful forecast."""
    orch = _require_session(session_id)
    try:
        result = orch.vote(req.choice)
    except MissingInput as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message)
    return VoteResponse(
        accepted=result.accepted,
        persisted=result.persisted,
        tally=_tally_response(orch.last_outcome.location or "", result.tally),
    )


@router.get("/votes/{location}", response_model=TallyResponse)
def read_tally(location: str):
    votes = VoteStore(get_store(), client_id=settings.client_id)
    return _tally_response(location, votes.get_tally(location))


@router.get("/weights/default", response_model=AlgorithmWeights)
def default_weights():
    return AlgorithmWeights()


@router.get("/scenarios", response_model=Dict[str, WeatherSample])
def list_scenarios():
    """Preset manual-mode samples."""
    return PRESET_SCENARIOS
