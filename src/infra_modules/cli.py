"""
Command line renderer for module compositions.

Reads a YAML or JSON composition file, renders it for the AWS context given by
flags or environment variables, and writes the rendered declarations as JSON.
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from infra_modules.handlers.utils.errors import CompositionError, ModuleServiceError, field_errors_from
from infra_modules.logic import registry
from infra_modules.logic.composition import CompositionConfig, render_composition
from infra_modules.models.common import AwsContext

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_USAGE = 2


def load_document(path: Path) -> Dict[str, Any]:
    """
    Load a composition document.

    JSON files are parsed as JSON, anything else as YAML.

    Raises:
        ValueError: If the file does not hold a mapping
    """
    with open(path, encoding="utf-8") as f:
        if path.suffix == ".json":
            document = json.load(f)
        else:
            document = yaml.safe_load(f)
    if not isinstance(document, dict):
        raise ValueError(f"{path} must contain a mapping with a 'modules' list")
    return document


def build_context(args: argparse.Namespace, overrides: Optional[Dict[str, Any]] = None) -> AwsContext:
    """
    AWS context from flags, then the document's ``context`` section, then environment variables.

    Raises:
        pydantic.ValidationError: If the resulting context is invalid
    """
    overrides = overrides or {}
    if args.default_tags:
        default_tags = json.loads(args.default_tags)
    elif "default_tags" in overrides:
        default_tags = overrides["default_tags"]
    else:
        default_tags = json.loads(os.environ.get("DEFAULT_TAGS") or "{}")
    values = {
        "account_id": args.account_id or overrides.get("account_id") or os.environ.get("TARGET_ACCOUNT_ID"),
        "region": args.region or overrides.get("region") or os.environ.get("AWS_REGION", "us-east-1"),
        "partition": args.partition or overrides.get("partition") or os.environ.get("TARGET_PARTITION", "aws"),
        "default_tags": default_tags,
    }
    return AwsContext.model_validate(values)


def print_errors(message: str, field_errors: List[Dict[str, str]]) -> None:
    print(f"❌ {message}", file=sys.stderr)
    for error in field_errors:
        print(f"   {error['field']}: {error['message']}", file=sys.stderr)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Validate and render a composition of infrastructure modules"
    )
    parser.add_argument(
        "composition",
        nargs="?",
        help="YAML or JSON file with a 'modules' list"
    )
    parser.add_argument(
        "--output",
        "-o",
        help="Write rendered JSON to this file (default: stdout)"
    )
    parser.add_argument("--account-id", help="Target AWS account id (default: $TARGET_ACCOUNT_ID)")
    parser.add_argument("--region", help="Target AWS region (default: $AWS_REGION or us-east-1)")
    parser.add_argument("--partition", help="Target AWS partition (default: $TARGET_PARTITION or aws)")
    parser.add_argument("--default-tags", help="JSON object of tags applied to every module (default: $DEFAULT_TAGS)")
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate the composition without writing output"
    )
    parser.add_argument(
        "--list-modules",
        action="store_true",
        help="List registered module types and exit"
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty print the output"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function for the composition renderer."""
    args = parse_args(argv)

    if args.list_modules:
        for module in registry.list_modules():
            print(f"{module['module']}: {module['description']}")
        return EXIT_OK

    if not args.composition:
        print("❌ A composition file is required", file=sys.stderr)
        return EXIT_USAGE

    path = Path(args.composition)
    try:
        document = load_document(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"❌ Cannot read {path}: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        context = build_context(args, document.pop("context", None))
        composition = CompositionConfig.model_validate(document)
        rendered = render_composition(composition, context)
    except ValidationError as e:
        print_errors("Composition failed validation", field_errors_from(e))
        return EXIT_INVALID
    except json.JSONDecodeError as e:
        print(f"❌ Default tags are not valid JSON: {e.msg}", file=sys.stderr)
        return EXIT_USAGE
    except CompositionError as e:
        print_errors(e.message, e.field_errors)
        return EXIT_INVALID
    except ModuleServiceError as e:
        print_errors(e.message, [])
        return EXIT_INVALID

    if args.validate_only:
        print(f"✅ {len(rendered.modules)} modules are valid", file=sys.stderr)
        return EXIT_OK

    output = json.dumps(rendered.to_dict(), indent=2 if args.pretty else None, ensure_ascii=False)
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(output + "\n", encoding="utf-8")
        print(f"✅ Rendered {len(rendered.modules)} modules to: {output_path}", file=sys.stderr)
    else:
        print(output)
    return EXIT_OK
