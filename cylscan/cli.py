from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path

from .matching import default_weights, match_serial, score_record
from .normalization import digits_only, normalize_serial
from .pipeline import run_scan
from .registry import Registry, default_registry
from .report import export_filename, write_csv
from .vision import QuotaExhaustedError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gas cylinder serial reconciliation against the cylinder registry")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    registry_option = argparse.ArgumentParser(add_help=False)
    registry_option.add_argument(
        "--registry-file",
        type=Path,
        default=None,
        help="Registry CSV file. Defaults to $CYLSCAN_REGISTRY_FILE or the bundled sample.",
    )

    match_parser = subparsers.add_parser(
        "match", parents=[registry_option], help="Reconcile an OCR fragment against the registry")
    match_parser.add_argument("text", help="OCR text read from the cylinder marking.")
    match_parser.add_argument(
        "--explain",
        action="store_true",
        help="Print the score breakdown for every registry record.",
    )

    scan_parser = subparsers.add_parser(
        "scan", parents=[registry_option], help="Read serials from images and reconcile them")
    scan_parser.add_argument("images", nargs="+", type=Path, help="Cylinder photographs.")
    scan_parser.add_argument(
        "--out-dir",
        type=Path,
        default=Path("out"),
        help="Directory that will receive the scan artefacts.",
    )
    scan_parser.add_argument(
        "--skip-analysis",
        action="store_true",
        help="Do not analyse cylinders that are missing from the registry.",
    )

    export_parser = subparsers.add_parser(
        "export", parents=[registry_option], help="Export the registry as CSV")
    export_parser.add_argument(
        "--out-dir",
        type=Path,
        default=Path("out"),
        help="Directory that will receive the registry export.",
    )

    return parser


def _registry(path: Path | None) -> Registry:
    return Registry.from_file(path) if path else default_registry()


def _run_match(args: argparse.Namespace) -> int:
    registry = _registry(args.registry_file)
    weights = default_weights()
    decision = match_serial(args.text, registry.records(), weights=weights)

    if args.explain:
        normalized = normalize_serial(args.text)
        digits = digits_only(normalized)
        for record in registry:
            breakdown = score_record(normalized, digits, record, weights)
            print(
                f"{record.cylinder_id:<12} {record.serial_number:<16} "
                f"numeric={breakdown.numeric:>4.0f} suffix={breakdown.suffix:>4.0f} "
                f"overlap={breakdown.overlap:>5.1f} total={breakdown.total:>5.1f}"
            )

    if decision.record is None:
        print(f"No registry match ({decision.confidence}, score {decision.score:.1f})")
        return 1
    print(
        f"{decision.record.cylinder_id} {decision.record.serial_number} "
        f"({decision.confidence}, score {decision.score:.1f})"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "match":
        return _run_match(args)

    if args.command == "scan":
        try:
            run_scan(
                args.images,
                registry=_registry(args.registry_file),
                out_dir=args.out_dir,
                analyse_unregistered=not args.skip_analysis,
            )
        except QuotaExhaustedError as exc:
            print(f"error: {exc}")
            return 2
        return 0

    if args.command == "export":
        registry = _registry(args.registry_file)
        write_csv(args.out_dir / export_filename(date.today()), registry.records())
        return 0

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover - exercised via CLI entry point
    raise SystemExit(main())
