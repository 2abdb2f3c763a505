"""Persist a JSON object graph described by a schema file.

Parses the entity schema, walks the JSON objects with the recursive
persister and a recording (fake) executor, and prints every submitted insert
as ``<id>\\t<sql>\\t<json args>``.

Usage:
    sqlgraft-persist schema.sgs data.json                 # root entity = first declared
    sqlgraft-persist schema.sgs data.json -e User         # explicit root entity
    sqlgraft-persist schema.sgs data.json --start-id 12   # first generated identifier
    sqlgraft-persist schema.sgs data.json -v              # debug logging on stderr
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from sqlgraft.errors import SqlGraftError
from sqlgraft.executor import IdentifierAllocator, RecordingExecutor
from sqlgraft.parsing import SchemaParser
from sqlgraft.persister import Persister

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging on stderr; DEBUG when verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate the inserts that persist a JSON object graph"
    )
    parser.add_argument("schema", help="Entity schema file")
    parser.add_argument("data", help="JSON file holding one object or a list of objects")
    parser.add_argument(
        "-e", "--entity", help="Entity of the root object(s) (default: first declared entity)"
    )
    parser.add_argument(
        "--start-id", type=int, default=1, help="First generated identifier (default: 1)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.verbose)

    schema_path = Path(args.schema)
    data_path = Path(args.data)
    for path in (schema_path, data_path):
        if not path.exists():
            print(f"Error: {path} not found", file=sys.stderr)
            return 1

    try:
        registry = SchemaParser().parse(schema_path.read_text())
    except (SyntaxError, SqlGraftError) as e:
        print(f"Error: Invalid schema in {schema_path}: {e}", file=sys.stderr)
        return 1

    entity = args.entity
    if entity is None:
        names = registry.list_entities()
        if not names:
            print(f"Error: {schema_path} declares no entities", file=sys.stderr)
            return 1
        entity = names[0]

    with open(data_path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            print(f"Error: Invalid JSON in {data_path}: {e}", file=sys.stderr)
            return 1

    roots = data if isinstance(data, list) else [data]
    executor = RecordingExecutor(IdentifierAllocator(args.start_id))
    persister = Persister(executor, registry=registry)

    try:
        for root in roots:
            persister.persist_tree(root, entity=entity)
    except SqlGraftError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        for submission in executor.submissions:
            print(f"{submission.identifier}\t{submission.sql}\t{json.dumps(submission.args)}")

    logger.debug("submitted %d inserts", len(executor.submissions))
    return 0


if __name__ == "__main__":
    sys.exit(main())
