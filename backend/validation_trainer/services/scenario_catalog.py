from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

from validation_trainer.schemas.scenarios import Scenario

SCENARIOS_FILE = Path(__file__).resolve().parents[1] / "data" / "scenarios.json"


class ScenarioCatalog(BaseModel):
    scenarios: list[Scenario] = Field(default_factory=list)

    def get(self, scenario_id: str) -> Scenario | None:
        for scenario in self.scenarios:
            if scenario.id == scenario_id:
                return scenario
        return None


def load_scenario_catalog(path: Path = SCENARIOS_FILE) -> ScenarioCatalog:
    payload = json.loads(path.read_text(encoding="utf-8"))
    return ScenarioCatalog.model_validate(payload)


@lru_cache(maxsize=1)
def _bundled_catalog() -> ScenarioCatalog:
    return load_scenario_catalog()


def list_scenarios() -> list[Scenario]:
    return list(_bundled_catalog().scenarios)


def get_scenario(scenario_id: str) -> Scenario | None:
    return _bundled_catalog().get(scenario_id)
