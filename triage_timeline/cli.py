"""Summarize a FHIR Bundle file from the command line.

    triage-timeline --input bundle.json
    triage-timeline --input bundle.json --vital-recent-hours 12 --json
"""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from triage_timeline.config import LOG_LEVEL
from triage_timeline.services.ingestor import MalformedBundle
from triage_timeline.services.summarizer import summarize_bundle_json


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="triage-timeline",
        description="Build a critical overview and clinical timeline from a FHIR JSON bundle.",
    )
    parser.add_argument("-i", "--input", required=True, type=Path, help="Path to the FHIR Bundle JSON file.")
    parser.add_argument("--vital-recent-hours", type=float, help="Window for recent vital signs, in hours.")
    parser.add_argument("--clinical-event-days", type=float, help="Window for timeline events, in days.")
    parser.add_argument("--json", action="store_true", help="Print the full snapshot as JSON.")
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)

    try:
        data = args.input.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Cannot read {args.input}: {e}", file=sys.stderr)
        return 1

    config = {
        "vital_recent_hours": args.vital_recent_hours,
        "clinical_event_days": args.clinical_event_days,
    }
    try:
        snapshot = summarize_bundle_json(data, config)
    except MalformedBundle as e:
        print(f"Malformed bundle: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Invalid options: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(snapshot.model_dump_json(indent=2))
    else:
        print(f"Generated at: {snapshot.generated_at.isoformat()}")
        print(f"Critical alerts: {len(snapshot.critical.alerts)}")
        print(f"Timeline events: {len(snapshot.events)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
