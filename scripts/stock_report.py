#!/usr/bin/env python3
"""
Print the stock summary for a facility (or one depositor at it).

Connects using the active ledger configuration (tables and data must
already exist) and prints, per variety and bag size, the initial,
current and removed bag counts, followed by the conservation check.

Usage:
    python3 scripts/stock_report.py --facility <uuid>
    python3 scripts/stock_report.py --facility <uuid> --depositor <uuid>
    python3 scripts/stock_report.py --facility <uuid> --as-of 2025-03-31
    python3 scripts/stock_report.py --database-url postgresql://... --facility <uuid>

Exit status is 0 when the ledger is consistent, 1 when the conservation
check finds discrepancies or the database cannot be reached.
"""

import argparse
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cold-storage stock summary")
    parser.add_argument("--facility", type=UUID, required=True, help="Facility UUID")
    parser.add_argument("--depositor", type=UUID, default=None, help="Depositor UUID")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Replay stock as of this date (YYYY-MM-DD)",
    )
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML file")
    parser.add_argument("--database-url", default=None, help="Overrides the configured URL")
    return parser


def render_summary(summaries, title: str) -> str:
    """Format VarietySummary rows as a fixed-width table."""
    lines = [title, "=" * len(title)]
    if not summaries:
        lines.append("  (no stock)")
        return "\n".join(lines)

    header = f"  {'Variety':<16} {'Size':<14} {'Initial':>9} {'Current':>9} {'Removed':>9}"
    lines.append(header)
    lines.append("  " + "-" * (len(header) - 2))
    for summary in summaries:
        for size in summary.sizes:
            lines.append(
                f"  {summary.variety:<16} {size.size:<14} "
                f"{size.initial_quantity:>9} {size.current_quantity:>9} {size.quantity_removed:>9}"
            )
        lines.append(
            f"  {'':<16} {'total':<14} "
            f"{summary.initial_quantity:>9} {summary.current_quantity:>9} {summary.quantity_removed:>9}"
        )
    return "\n".join(lines)


def build_report(session, facility_id: UUID, depositor_id: UUID | None = None, as_of: date | None = None):
    """Return (report text, discrepancy count) for the given scope."""
    from coldstore_kernel.selectors.stock_selector import StockScope, StockSelector

    selector = StockSelector(session)
    scope = StockScope(facility_id=facility_id, depositor_id=depositor_id)

    if as_of is not None:
        summaries = selector.summarize_as_of(scope, as_of)
        title = f"Stock as of {as_of.isoformat()}"
    else:
        summaries = selector.summarize(scope)
        title = "Current stock"

    sections = [render_summary(summaries, title)]
    sections.append(
        f"Facility total on hand: {selector.current_total_stock(facility_id)} bags"
    )

    discrepancies = selector.conservation_discrepancies(scope)
    if discrepancies:
        sections.append("CONSERVATION CHECK FAILED:")
        for d in discrepancies:
            sections.append(
                f"  {d.variety}/{d.size}: initial {d.initial_quantity} - removed "
                f"{d.quantity_removed} != current {d.current_quantity} (off by {d.difference})"
            )
    else:
        sections.append("Conservation check: OK")
    return "\n\n".join(sections), len(discrepancies)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from coldstore_config import get_active_config, log_level, retry_options
    from coldstore_kernel.db.engine import init_engine_from_url, run_in_transaction
    from coldstore_kernel.logging_config import configure_logging

    settings = get_active_config(args.config)
    configure_logging(level=log_level(settings))
    url = args.database_url or settings.database.url

    try:
        init_engine_from_url(
            url,
            echo=settings.database.echo,
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_timeout=settings.database.pool_timeout,
        )
    except Exception as exc:
        print(f"  ERROR: Could not connect: {exc}", file=sys.stderr)
        return 1

    report, discrepancy_count = run_in_transaction(
        lambda session: build_report(session, args.facility, args.depositor, args.as_of),
        **retry_options(settings),
    )

    print(report)
    return 1 if discrepancy_count else 0


if __name__ == "__main__":
    sys.exit(main())
