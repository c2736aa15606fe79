from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from datetime import date
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pydantic import BaseModel

from medclose.application.dto.closure_dto import ClosureAdjustRequest
from medclose.bootstrap.startup import initialize_database
from medclose.config import DB_FILE, LOG_DIR, settings
from medclose.container import Container, build_container
from medclose.domain.errors import MedcloseError
from medclose.domain.naive_clock import parse_date

ROOT_DIR = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


def _setup_logging() -> Path:
    log_path = LOG_DIR / "medclose.log"
    handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level, logging.INFO))
    root_logger.addHandler(handler)
    return log_path


def _install_exception_hook(log_path: Path) -> None:
    def _handle_exception(exc_type, exc, tb) -> None:
        logging.getLogger(__name__).error("Unhandled exception", exc_info=(exc_type, exc, tb))
        print(f"Ocurrió un error inesperado. Detalle: {log_path}", file=sys.stderr)
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _handle_exception


def _date_arg(value: str) -> date:
    try:
        return parse_date(value)
    except MedcloseError as exc:
        raise argparse.ArgumentTypeError(exc.user_message) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="medclose", description="Cierres mensuales de actos médicos")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Aplicar migraciones de la base de datos")

    closings = sub.add_parser("closings", help="Listar cierres próximos y pasados")
    closings.add_argument("--user-id", type=int, required=True)
    closings.add_argument("--today", type=_date_arg, default=None)

    pending = sub.add_parser("pending", help="Contar cierres pendientes de consolidar")
    pending.add_argument("--user-id", type=int, required=True)
    pending.add_argument("--today", type=_date_arg, default=None)

    breakdown = sub.add_parser("breakdown", help="Detalle de consolidación de un cierre")
    breakdown.add_argument("--user-id", type=int, required=True)
    breakdown.add_argument("--hospital-id", type=int, required=True)
    breakdown.add_argument("--closing-date", type=_date_arg, required=True)

    toggle = sub.add_parser("toggle", help="Alternar la consolidación de un grupo")
    toggle.add_argument("--status-id", type=int, required=True)

    adjust = sub.add_parser("adjust", help="Ajustar el período efectivo de un cierre")
    adjust.add_argument("--closure-id", type=int, required=True)
    adjust.add_argument("--start", required=True)
    adjust.add_argument("--end", required=True)
    adjust.add_argument("--reason", default=None)
    adjust.add_argument("--user-id", type=int, default=None)

    reset = sub.add_parser("reset", help="Restablecer el período calculado de un cierre")
    reset.add_argument("--closure-id", type=int, required=True)
    reset.add_argument("--user-id", type=int, default=None)
    return parser


def _emit(payload: BaseModel | dict) -> None:
    if isinstance(payload, BaseModel):
        print(payload.model_dump_json(indent=2))
    else:
        print(json.dumps(payload, ensure_ascii=False, indent=2))


def run_command(args: argparse.Namespace, container: Container) -> None:
    today = getattr(args, "today", None) or date.today()
    if args.command == "closings":
        _emit(container.closing_service.list_closings(args.user_id, today))
    elif args.command == "pending":
        count = container.closing_service.count_pending_consolidations(args.user_id, today)
        _emit({"pending": count})
    elif args.command == "breakdown":
        _emit(container.consolidation_service.load_breakdown(args.user_id, args.hospital_id, args.closing_date))
    elif args.command == "toggle":
        _emit(container.closure_service.toggle_consolidated(args.status_id))
    elif args.command == "adjust":
        request = ClosureAdjustRequest(period_start=args.start, period_end=args.end, reason=args.reason)
        _emit(container.closure_service.adjust_period(args.closure_id, request, user_id=args.user_id))
    elif args.command == "reset":
        _emit(container.closure_service.reset_period(args.closure_id, user_id=args.user_id))


def main(argv: Sequence[str] | None = None) -> int:
    log_path = _setup_logging()
    _install_exception_hook(log_path)
    args = build_parser().parse_args(argv)

    if not initialize_database(
        root_dir=ROOT_DIR,
        db_file=DB_FILE,
        database_url=settings.database_url,
        log_dir=LOG_DIR,
    ):
        print(f"No se pudo inicializar la base de datos. Detalle: {log_path}", file=sys.stderr)
        return 2
    if args.command == "init-db":
        return 0

    try:
        run_command(args, build_container())
    except MedcloseError as exc:
        logger.warning("Command %s failed: %s", args.command, exc)
        print(exc.user_message, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
