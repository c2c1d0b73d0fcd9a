from __future__ import annotations

import argparse
import json
from pathlib import Path

from class_playlist.main import create_app

DEFAULT_SCHEMA_PATH = Path("openapi") / "class-playlist.json"


def write_schema(schema_path: Path) -> Path:
    schema_path.parent.mkdir(parents=True, exist_ok=True)
    schema = create_app().openapi()
    schema_path.write_text(json.dumps(schema, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return schema_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Export the class playlist OpenAPI schema.")
    parser.add_argument("--output", type=Path, default=DEFAULT_SCHEMA_PATH)
    args = parser.parse_args()
    print(f"Wrote OpenAPI schema to {write_schema(args.output)}")


if __name__ == "__main__":
    main()
