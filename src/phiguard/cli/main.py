"""
CLI to screen documents and inspect the audit trail from the command line.
"""

import argparse
import io
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from phiguard import (
    AuditQuery,
    GateConfig,
    GateContext,
    PolicyGate,
    PolicyMode,
    SensitiveCategory,
    placeholder_for,
)
from phiguard.exceptions import ConfigurationError, StorageError


def build_parser():
    parser = argparse.ArgumentParser(
        prog="phiguard",
        description="Detect and redact sensitive health information, with an audit trail",
    )

    parser.add_argument(
        "files",
        type=Path,
        nargs="*",
        help="Documents to screen (.txt, .pdf, or any UTF-8 text file)",
    )
    parser.add_argument(
        "-a",
        "--actor",
        default="cli",
        help="Actor id recorded in the audit trail (default: cli)",
    )
    parser.add_argument(
        "-s",
        "--store",
        help="Audit store URL, e.g. sqlite:///audit.db (default: PHIGUARD_AUDIT_STORE_URL or memory://)",
    )
    parser.add_argument(
        "--policy",
        choices=[m.value for m in PolicyMode],
        help="Policy mode (default: PHIGUARD_POLICY_MODE or redact)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print a JSON verdict per file instead of sanitized text",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty print JSON output",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar while screening several files",
    )
    parser.add_argument(
        "--list-categories",
        action="store_true",
        help="List sensitive categories and their placeholders and exit",
    )

    audit = parser.add_argument_group("audit trail")
    audit.add_argument(
        "--query-audit",
        action="store_true",
        help="Print audit events matching the filters below and exit",
    )
    audit.add_argument("--filter-actor", help="Only events of this actor")
    audit.add_argument("--resource-type", help="Only events on this resource type")
    audit.add_argument("--resource-id", help="Only events on this resource id")
    audit.add_argument(
        "--since", type=datetime.fromisoformat, help="ISO-8601 lower bound (inclusive)"
    )
    audit.add_argument(
        "--until", type=datetime.fromisoformat, help="ISO-8601 upper bound (inclusive)"
    )
    audit.add_argument(
        "--verify",
        action="store_true",
        help="Verify the audit digest chains",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Debug logging",
    )

    return parser


def print_categories():
    """Print the category vocabulary with placeholders."""
    print("\nSensitive categories:")
    print("=" * 50)

    for category in SensitiveCategory:
        print(f"  {category.value:<28} {placeholder_for([category])}")

    print()


def read_document(path: Path):
    """Return document content: text for PDFs, raw bytes for everything else."""
    if path.suffix.lower() != ".pdf":
        return path.read_bytes()

    try:
        import pdfplumber
    except ImportError:
        raise ValueError("pdfplumber not installed. Install with: pip install phiguard[pdf]")

    text_parts = []
    with pdfplumber.open(io.BytesIO(path.read_bytes())) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)

    if not text_parts:
        raise ValueError("No text found in PDF (might need OCR)")

    return "\n\n".join(text_parts)


def build_config(args) -> GateConfig:
    overrides = {}
    if args.store:
        overrides["audit_store_url"] = args.store
    if args.policy:
        overrides["policy_mode"] = args.policy
    return GateConfig.from_env(**overrides)


def query_audit(gate: PolicyGate, args, indent: Optional[int]) -> int:
    audit_filter = AuditQuery(
        actor_id=args.filter_actor,
        resource_type=args.resource_type,
        resource_id=args.resource_id,
        since=args.since,
        until=args.until,
    )
    events = gate.query_audit(audit_filter)
    output = {"events": [e.to_record() for e in events]}

    exit_code = 0
    if args.verify:
        report = gate.verify_audit(args.filter_actor)
        output["verification"] = {
            "valid": report.valid,
            "checked": report.checked,
            "broken_event_ids": report.broken_event_ids,
            "message": report.message,
        }
        if not report.valid:
            exit_code = 1

    print(json.dumps(output, indent=indent, default=str))
    return exit_code


def screen_files(gate: PolicyGate, files: List[Path], args, indent: Optional[int]) -> int:
    iterator = files
    if args.progress and len(files) > 1:
        from tqdm import tqdm

        iterator = tqdm(files, desc="Screening documents", file=sys.stderr)

    denied = 0
    for path in iterator:
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            denied += 1
            continue

        try:
            content = read_document(path)
        except ValueError as e:
            print(f"Error: {path}: {e}", file=sys.stderr)
            denied += 1
            continue

        verdict = gate.submit(
            content,
            GateContext(actor_id=args.actor, resource_type="Document", resource_id=path.name),
        )
        if not verdict.allowed:
            denied += 1

        if args.json:
            payload = {
                "file": str(path),
                **verdict.to_summary(),
                "sanitized_content": verdict.sanitized_content,
            }
            print(json.dumps(payload, indent=indent, default=str))
        else:
            if len(files) > 1:
                print(f"==> {path} <==")
            if verdict.allowed:
                print(verdict.sanitized_content)
            else:
                print(f"Error: {path}: denied ({verdict.reason})", file=sys.stderr)

    return 1 if denied else 0


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_categories:
        print_categories()
        sys.exit(0)

    if not args.query_audit and not args.files:
        parser.error("at least one file is required")

    try:
        gate = PolicyGate(config=build_config(args))
    except (ConfigurationError, StorageError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    indent = 2 if args.pretty else None

    try:
        if args.query_audit:
            sys.exit(query_audit(gate, args, indent))
        sys.exit(screen_files(gate, args.files, args, indent))
    except StorageError as e:
        print(f"Error: audit store unavailable: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
