#!/usr/bin/env python3
"""Import CSV files into, or export them from, a running PlanPulse API server.

Examples:
    python scripts/csv_sync.py import people people.csv --dry-run
    python scripts/csv_sync.py export allocations --cycle-id q1 -o allocations.csv
"""
import sys
import argparse
import logging
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from planpulse.common.config.config import get_config
from planpulse.common.api_client.client import PlanPulseClient
from planpulse.common.api_client.errors import PlanPulseAPIError

KINDS = ("people", "projects", "allocations", "skills", "person-skills")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def run_import(client: PlanPulseClient, args) -> int:
    content = Path(args.file).read_text(encoding="utf-8-sig")
    result = client.import_csv(args.kind, content, dry_run=args.dry_run)

    for warning in result.get("warnings", []):
        logger.warning(warning)
    for error in result.get("errors", []):
        logger.error(error)

    imported = ", ".join(f"{count} {name}" for name, count in result.get("imported", {}).items()) or "nothing"
    verb = "Would import" if result.get("dry_run") else "Imported"
    logger.info("%s %s from %s", verb, imported, args.file)
    return 1 if result.get("errors") else 0


def run_export(client: PlanPulseClient, args) -> int:
    content = client.export_csv(args.kind, cycle_id=args.cycle_id)
    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        logger.info("Wrote %s export to %s", args.kind, args.output)
    else:
        sys.stdout.write(content)
    return 0


def main() -> None:
    config = get_config()
    parser = argparse.ArgumentParser(description="CSV import/export against the PlanPulse API")
    parser.add_argument(
        "--api-url",
        default=config.api_base_url,
        help=f"API server URL (default: {config.api_base_url})",
    )
    parser.add_argument("--actor", help="Recorded in the audit log for imports")
    sub = parser.add_subparsers(dest="command", required=True)

    import_parser = sub.add_parser("import", help="Upload a CSV file")
    import_parser.add_argument("kind", choices=KINDS)
    import_parser.add_argument("file")
    import_parser.add_argument("--dry-run", action="store_true", help="Validate without writing")

    export_parser = sub.add_parser("export", help="Download a CSV export")
    export_parser.add_argument("kind", choices=KINDS)
    export_parser.add_argument("--cycle-id", help="Allocations only: limit to one quarter")
    export_parser.add_argument("-o", "--output", help="Write to this file instead of stdout")

    args = parser.parse_args()

    client = PlanPulseClient(
        base_url=args.api_url,
        timeout=config.api_timeout,
        circuit_breaker_threshold=config.api_circuit_breaker_threshold,
        circuit_breaker_timeout=config.api_circuit_breaker_timeout,
        actor=args.actor,
    )
    try:
        if args.command == "import":
            code = run_import(client, args)
        else:
            code = run_export(client, args)
    except PlanPulseAPIError as exc:
        logger.error("✗ API operation failed: %s", exc)
        code = 1
    except OSError as exc:
        logger.error("✗ File error: %s", exc)
        code = 1
    finally:
        client.close()
    sys.exit(code)


if __name__ == "__main__":
    main()
