"""Scenario authoring API endpoints."""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel

from app.core.dependencies import get_scenario_repository, get_scenario_validator
from app.core.exceptions import MalformedScenario, ScenarioDefect, ScenarioNotFound
from app.services.scenario.graph import ScenarioGraph
from app.services.scenario.repository import ScenarioRepository
from app.services.scenario.validator import Defect, ScenarioValidator

router = APIRouter()
logger = logging.getLogger(__name__)


class DefectResponse(BaseModel):
    """Scenario defect response model."""
    kind: str
    description: str
    question_id: Optional[str] = None


class ScenarioResponse(BaseModel):
    """Scenario response model."""
    id: str
    name: str
    description: Optional[str] = None
    is_active: bool
    version: int
    scenario_data: Dict[str, Any]
    defects: List[DefectResponse] = []
    notes: List[str] = []


def _defects(defects: List[Defect]) -> List[DefectResponse]:
    return [DefectResponse(**defect.to_dict()) for defect in defects]


def _response(
    graph: ScenarioGraph,
    defects: Optional[List[Defect]] = None,
    notes: Optional[List[str]] = None,
) -> ScenarioResponse:
    return ScenarioResponse(
        id=graph.id,
        name=graph.name,
        description=graph.description,
        is_active=graph.is_active,
        version=graph.version,
        scenario_data=graph.data.model_dump(mode="json"),
        defects=_defects(defects or []),
        notes=notes or [],
    )


def _defect_error(e: ScenarioDefect) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "message": "Scenario has defects",
            "defects": [defect.to_dict() for defect in e.defects],
        },
    )


@router.post("/api/scenarios", response_model=ScenarioResponse)
async def create_scenario(
    payload: Dict[str, Any] = Body(...),
    repository: ScenarioRepository = Depends(get_scenario_repository),
    validator: ScenarioValidator = Depends(get_scenario_validator),
):
    """Create or update a scenario. Defects are reported, and block is_active=true."""
    try:
        graph = ScenarioGraph.from_dict(payload)
    except MalformedScenario as e:
        raise HTTPException(status_code=422, detail={"message": "Malformed scenario", "errors": e.errors})

    defects = validator.validate(graph)
    try:
        scenario_id = await repository.save_scenario(graph, defects)
    except ScenarioDefect as e:
        raise _defect_error(e)

    saved = await repository.get_scenario(scenario_id)
    notes = validator.activation_notes(saved) if saved.is_active else []
    logger.info(f"[SCENARIOS] Stored scenario {scenario_id} with {len(defects)} defect(s)")
    return _response(saved, defects, notes)


@router.get("/api/scenarios", response_model=List[ScenarioResponse])
async def list_scenarios(
    active_only: bool = False,
    repository: ScenarioRepository = Depends(get_scenario_repository),
):
    """List scenarios."""
    graphs = await repository.list_scenarios(active_only=active_only)
    return [_response(graph) for graph in graphs]


@router.get("/api/scenarios/{scenario_id}", response_model=ScenarioResponse)
async def get_scenario(
    scenario_id: str,
    repository: ScenarioRepository = Depends(get_scenario_repository),
    validator: ScenarioValidator = Depends(get_scenario_validator),
):
    """Get a scenario with its current defects."""
    graph = await repository.get_scenario(scenario_id)
    if graph is None:
        raise HTTPException(status_code=404, detail=f"Scenario not found: {scenario_id}")
    return _response(graph, validator.validate(graph))


@router.get("/api/scenarios/{scenario_id}/versions", response_model=List[int])
async def list_scenario_versions(
    scenario_id: str,
    repository: ScenarioRepository = Depends(get_scenario_repository),
):
    """List the saved version numbers of a scenario."""
    versions = await repository.list_versions(scenario_id)
    if not versions:
        raise HTTPException(status_code=404, detail=f"Scenario not found: {scenario_id}")
    return versions


@router.get("/api/scenarios/{scenario_id}/versions/{version}", response_model=ScenarioResponse)
async def get_scenario_version(
    scenario_id: str,
    version: int,
    repository: ScenarioRepository = Depends(get_scenario_repository),
):
    """Get a scenario as it was saved at one version."""
    graph = await repository.get_scenario_version(scenario_id, version)
    if graph is None:
        raise HTTPException(
            status_code=404, detail=f"Scenario version not found: {scenario_id} v{version}"
        )
    return _response(graph)


@router.post("/api/scenarios/{scenario_id}/validate", response_model=ScenarioResponse)
async def validate_scenario(
    scenario_id: str,
    repository: ScenarioRepository = Depends(get_scenario_repository),
    validator: ScenarioValidator = Depends(get_scenario_validator),
):
    """Report defects and runtime policy notes without changing the scenario."""
    graph = await repository.get_scenario(scenario_id)
    if graph is None:
        raise HTTPException(status_code=404, detail=f"Scenario not found: {scenario_id}")
    return _response(graph, validator.validate(graph), validator.activation_notes(graph))


@router.post("/api/scenarios/{scenario_id}/activate", response_model=ScenarioResponse)
async def activate_scenario(
    request: Request,
    scenario_id: str,
    repository: ScenarioRepository = Depends(get_scenario_repository),
):
    """Activate a scenario; rejected while it has defects."""
    logger.info(
        f"[SCENARIOS] Activation requested - Scenario: {scenario_id}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    try:
        graph, notes = await repository.activate(scenario_id)
    except ScenarioNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ScenarioDefect as e:
        logger.warning(f"[SCENARIOS] Activation rejected - Scenario: {scenario_id}: {e}")
        raise _defect_error(e)
    return _response(graph, notes=notes)


@router.post("/api/scenarios/{scenario_id}/deactivate", response_model=ScenarioResponse)
async def deactivate_scenario(
    scenario_id: str,
    repository: ScenarioRepository = Depends(get_scenario_repository),
):
    """Deactivate a scenario. Calls in progress keep running."""
    try:
        graph = await repository.deactivate(scenario_id)
    except ScenarioNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _response(graph)
