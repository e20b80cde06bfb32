"""Eval runner - loads scenarios and evaluates them against the fixture collaborators."""

import asyncio
import sys
from pathlib import Path
from typing import Any

import yaml

from itinerary_core.collaborators.fixtures import FixtureGenerator, FixturePlaceSearch
from itinerary_core.models import BuildContext, GenerationResult
from itinerary_core.pipeline.orchestrator import generate_and_build

SCENARIOS_PATH = Path(__file__).parent / "scenarios.yaml"


def load_scenarios(path: Path = SCENARIOS_PATH) -> dict[str, Any]:
    """Load scenarios from YAML."""
    with open(path) as f:
        result: dict[str, Any] = yaml.safe_load(f)
        return result


def place_ids(result: GenerationResult) -> list[str]:
    """Place ids of every option in the built itinerary."""
    return [
        option.activity.place.place_id
        for day in result.build.itinerary.days
        for slot in day.slots
        for option in slot.options
        if option.activity.place and option.activity.place.place_id
    ]


async def run_scenario(context: BuildContext) -> GenerationResult:
    """Build a scenario with the curated generator and fixture place search."""
    return await generate_and_build(context, None, FixtureGenerator(), place_search=FixturePlaceSearch())


def evaluate_predicates(result: GenerationResult, predicates: list[dict[str, str]]) -> tuple[int, int]:
    """Evaluate predicates; return (passed, total)."""
    passed = 0
    total = len(predicates)
    env = {
        "__builtins__": {},
        "result": result,
        "itinerary": result.build.itinerary,
        "report": result.build.report,
        "validation": result.build.validation,
        "place_ids": place_ids(result),
        "len": len,
        "any": any,
        "all": all,
        "set": set,
    }

    for pred_data in predicates:
        predicate = pred_data["predicate"]
        description = pred_data.get("description", predicate)
        try:
            if eval(predicate, env):
                passed += 1
                print(f"  ✓ PASS: {description}")
            else:
                print(f"  ✗ FAIL: {description}")
        except Exception as e:
            print(f"  ✗ ERROR: {description} - {e}")

    return passed, total


def main() -> int:
    """Run eval scenarios."""
    scenarios = load_scenarios()["scenarios"]

    total_passed = 0
    total_predicates = 0

    for scenario in scenarios:
        print(f"\n=== Scenario: {scenario['scenario_id']} ===")
        print(f"Description: {scenario['description']}")

        context = BuildContext.model_validate(scenario["context"])
        result = asyncio.run(run_scenario(context))

        passed, total = evaluate_predicates(result, scenario["must_satisfy"])
        total_passed += passed
        total_predicates += total
        print(f"Result: {passed}/{total} predicates passed")

    print("\n=== Summary ===")
    print(f"Total: {total_passed}/{total_predicates} predicates passed")

    if total_passed < total_predicates:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
