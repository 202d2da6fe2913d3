# backend/app/cli/__main__.py
from __future__ import annotations

import argparse

from app.cli.seed_demo import seed_demo
from app.db import SessionLocal
from app.logging_config import configure_logging
from app.services.expiry import sweep_expired


def _cmd_seed(args: argparse.Namespace) -> dict:
    out = seed_demo(
        title=args.title,
        duration_minutes=args.duration_minutes,
        create_work_order_row=(not args.no_work_order),
        create_tables=args.create_tables,
    )
    return {
        "ok": True,
        "operator_id": out.operator_id,
        "tenant_id": out.tenant_id,
        "contractor_id": out.contractor_id,
        "work_order_id": out.work_order_id,
    }


def _cmd_sweep(args: argparse.Namespace) -> dict:
    db = SessionLocal()
    try:
        res = sweep_expired(db)
    finally:
        db.close()
    return {"ok": True, "proposals_expired": res.proposals_expired, "counters_expired": res.counters_expired}


def main() -> None:
    configure_logging()

    p = argparse.ArgumentParser(prog="python -m app.cli")
    sub = p.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed-demo", help="demo operator/tenant/contractor and one New work order")
    seed.add_argument("--title", default="Leaking kitchen faucet")
    seed.add_argument("--duration-minutes", type=int, default=60)
    seed.add_argument("--no-work-order", action="store_true")
    seed.add_argument("--create-tables", action="store_true", help="create tables without alembic (local sqlite)")
    seed.set_defaults(func=_cmd_seed)

    sweep = sub.add_parser("sweep-expired", help="expire stale proposals and counter-proposals once")
    sweep.set_defaults(func=_cmd_sweep)

    args = p.parse_args()
    print(args.func(args))


if __name__ == "__main__":
    main()
