from fastapi import APIRouter, Depends, HTTPException, status

from validation_trainer.api.deps import get_llm_gateway
from validation_trainer.schemas.scenarios import (
    Scenario,
    ScenarioGenerateRequest,
    ScenarioGenerateResponse,
)
from validation_trainer.services.coach_service import generate_scenario
from validation_trainer.services.llm_gateway import LlmGateway
from validation_trainer.services.scenario_catalog import get_scenario, list_scenarios

router = APIRouter(prefix="/api/v1/scenarios", tags=["scenarios"])


@router.get("", response_model=list[Scenario])
def list_catalog_scenarios() -> list[Scenario]:
    return list_scenarios()


@router.post("/generate", response_model=ScenarioGenerateResponse)
async def generate_custom_scenario(
    payload: ScenarioGenerateRequest,
    gateway: LlmGateway = Depends(get_llm_gateway),
) -> ScenarioGenerateResponse:
    try:
        scenario = await generate_scenario(payload.partner_description, gateway)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ScenarioGenerateResponse(scenario=scenario)


@router.get("/{scenario_id}", response_model=Scenario)
def get_catalog_scenario(scenario_id: str) -> Scenario:
    scenario = get_scenario(scenario_id)
    if scenario is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="scenario not found")
    return scenario
