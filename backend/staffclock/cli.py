from __future__ import annotations

import argparse
from datetime import date
from pathlib import Path

from staffclock.core.config import settings
from staffclock.core.errors import StaffClockError
from staffclock.core.logging import configure_logging, get_logger
from staffclock.db.session import Base, engine, session_scope
from staffclock.domains.exports.service import ExportService
from staffclock.models import Tenant, User
from staffclock.seed.seed_data import seed

logger = get_logger(__name__)


def parse_date(value: str) -> date:
    return date.fromisoformat(value)


def cmd_init_db(args: argparse.Namespace) -> None:
    Base.metadata.create_all(bind=engine)
    print("Database schema created")


def cmd_seed(args: argparse.Namespace) -> None:
    with session_scope() as session:
        tenant = seed(session)
        print(f"Seeded tenant {tenant.id} ({tenant.name}); PINs 1234, 2345, 3456")


def cmd_export(args: argparse.Namespace) -> None:
    with session_scope() as session:
        tenant = session.get(Tenant, args.tenant)
        if tenant is None:
            raise SystemExit(f"Unknown tenant {args.tenant}")
        actor = (
            session.query(User)
            .filter(User.tenant_id == tenant.id, User.role == "admin", User.is_active.is_(True))
            .order_by(User.id)
            .first()
        )
        if actor is None:
            raise SystemExit(f"Tenant {tenant.id} has no active administrator")

        exports = ExportService(session)
        try:
            if args.kind == "payroll":
                if not (args.start and args.end):
                    raise SystemExit("--start and --end are required for payroll exports")
                export = exports.export_payroll(actor, args.format, args.start, args.end)
            else:
                criteria = exports.reports.scoped_filter(actor, start_date=args.start, end_date=args.end)
                export = exports.export_time_entries(actor, args.format, criteria, include_details=args.details)
        except StaffClockError as exc:
            raise SystemExit(exc.message) from exc

    output = Path(args.output or export.filename)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(export.content)
    print(f"Wrote {output} ({len(export.content)} bytes)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="StaffClock management CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    init_db = sub.add_parser("init-db", help="Create database tables")
    init_db.set_defaults(func=cmd_init_db)

    seed_cmd = sub.add_parser("seed", help="Load the demo organization and users")
    seed_cmd.set_defaults(func=cmd_seed)

    export = sub.add_parser("export", help="Write a timesheet or payroll export to disk")
    export.add_argument("tenant", help="Tenant id")
    export.add_argument("--kind", choices=["timesheet", "payroll"], default="timesheet")
    export.add_argument("--format", choices=["csv", "excel", "pdf"], default="csv")
    export.add_argument("--start", type=parse_date)
    export.add_argument("--end", type=parse_date)
    export.add_argument("--details", action="store_true", help="Include pay and location columns")
    export.add_argument("--output")
    export.set_defaults(func=cmd_export)

    return parser


def main(argv: list[str] | None = None) -> None:
    configure_logging(settings.log_level)
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
