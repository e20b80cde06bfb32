"""Export JSON schemas for the itinerary, build context and validation state."""

import json
from pathlib import Path

from itinerary_core.models import BuildContext, Itinerary, ValidationState


def main() -> None:
    """Export schemas to docs/schemas/."""
    schemas_dir = Path("docs/schemas")
    schemas_dir.mkdir(parents=True, exist_ok=True)

    for model in (Itinerary, BuildContext, ValidationState):
        path = schemas_dir / f"{model.__name__}.schema.json"
        with open(path, "w") as f:
            json.dump(model.model_json_schema(), f, indent=2)
        print(f"Exported {model.__name__} schema to {path}")


if __name__ == "__main__":
    main()
