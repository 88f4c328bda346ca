#!/usr/bin/env python3
"""Dump the CineScan API's OpenAPI schema to YAML or JSON."""
from __future__ import annotations

import argparse
import json
from pathlib import Path

import yaml

from cinescan.api.routes import app


def generate_schema_dict() -> dict:
    """Return the OpenAPI schema dict from the FastAPI app."""
    return app.openapi()


def render_schema(schema: dict, fmt: str) -> str:
    if fmt == "yaml":
        return yaml.safe_dump(schema, sort_keys=False, allow_unicode=True)
    return json.dumps(schema, indent=2, ensure_ascii=False)


def write_output(schema: dict, out_path: Path, fmt: str) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(render_schema(schema, fmt), encoding="utf-8")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Generate OpenAPI schema from the CineScan API.")
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("openapi.yaml"),
        help="Output file path (default: openapi.yaml)",
    )
    parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Output format (default: yaml)",
    )
    args = parser.parse_args(argv)

    schema = generate_schema_dict()
    write_output(schema, args.out, args.format)
    print(f"OpenAPI schema written to {args.out} in {args.format.upper()} format")


if __name__ == "__main__":
    main()
