#!/usr/bin/env python3
"""
OpenAPI specification generator for the module contracts API.

This script generates the OpenAPI 3 specification from the AWS Lambda Powertools
event handler routes and attaches the JSON schema of every registered module's
input so clients can validate configurations before calling the API.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict

import yaml

from infra_modules.handlers.modules_handler import app
from infra_modules.logic import registry

OPERATION_SUMMARIES = {
    ("/health", "get"): ("healthCheck", "Health check endpoint"),
    ("/modules", "get"): ("listModules", "List registered module types"),
    ("/modules/{module_name}/schema", "get"): ("getModuleSchema", "JSON schema of a module's input"),
    ("/modules/{module_name}/validate", "post"): ("validateModule", "Validate a module configuration"),
    ("/modules/{module_name}/render", "post"): ("renderModule", "Render a module configuration"),
    ("/compositions/render", "post"): ("renderComposition", "Render a composition of module instances"),
}


def get_openapi_spec() -> Dict[str, Any]:
    """
    Generate the OpenAPI specification from the application.

    Returns:
        OpenAPI specification dictionary
    """
    spec = json.loads(app.get_openapi_json_schema())
    enhance_paths(spec)
    spec["x-module-schemas"] = {name: registry.module_schema(name) for name in sorted(registry.REGISTRY)}
    return spec


def enhance_paths(spec: Dict[str, Any]) -> None:
    """
    Add operation ids and summaries to the generated paths.

    Args:
        spec: OpenAPI specification to enhance
    """
    for path, operations in spec.get("paths", {}).items():
        for method, operation in operations.items():
            names = OPERATION_SUMMARIES.get((path, method))
            if names is not None:
                operation_id, summary = names
                operation.update({"operationId": operation_id, "summary": summary})


def validate_openapi_spec(spec: Dict[str, Any]) -> bool:
    """
    Validate the structure of the OpenAPI specification.

    Args:
        spec: OpenAPI specification to validate

    Returns:
        True if valid, False otherwise
    """
    for field in ("openapi", "info", "paths"):
        if field not in spec:
            print(f"Error: Missing required field '{field}' in OpenAPI spec", file=sys.stderr)
            return False

    for field in ("title", "version"):
        if field not in spec["info"]:
            print(f"Error: Missing required field 'info.{field}' in OpenAPI spec", file=sys.stderr)
            return False

    missing = [
        f"{method.upper()} {path}"
        for path, method in OPERATION_SUMMARIES
        if method not in spec["paths"].get(path, {})
    ]
    if missing:
        print(f"Error: Routes missing from OpenAPI spec: {', '.join(missing)}", file=sys.stderr)
        return False

    openapi_version = spec["openapi"]
    if not openapi_version.startswith("3."):
        print(f"Warning: OpenAPI version '{openapi_version}' is not 3.x", file=sys.stderr)

    print("✅ OpenAPI specification validation passed")
    return True


def main() -> int:
    """Main function for the OpenAPI generator script."""
    parser = argparse.ArgumentParser(
        description="Generate OpenAPI specification for the module contracts API"
    )
    parser.add_argument(
        "--format",
        choices=["json", "yaml"],
        default="yaml",
        help="Output format (default: yaml)"
    )
    parser.add_argument(
        "--out-destination",
        default=".",
        help="Output directory (default: current directory)"
    )
    parser.add_argument(
        "--out-filename",
        help="Output filename (default: openapi.{format})"
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate the generated specification"
    )
    args = parser.parse_args()

    spec = get_openapi_spec()
    if args.validate and not validate_openapi_spec(spec):
        return 1

    output_dir = Path(args.out_destination)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / (args.out_filename or f"openapi.{args.format}")

    with open(output_path, "w", encoding="utf-8") as f:
        if args.format == "json":
            json.dump(spec, f, indent=2)
        else:
            yaml.safe_dump(spec, f, sort_keys=False, allow_unicode=True)

    print(f"✅ OpenAPI specification generated: {output_path}")
    print(f"   Paths: {len(spec.get('paths', {}))}, module schemas: {len(spec['x-module-schemas'])}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
