from __future__ import annotations

import argparse
import json
import logging

from fxsignals.config import Settings
from fxsignals.data.yfinance_provider import YFinanceProvider
from fxsignals.domain.models import SignalResult
from fxsignals.engine import SignalEngine, generate_mock_market_data
from fxsignals.errors import SignalNotFoundError
from fxsignals.logging_config import configure_logging
from fxsignals.scheduler import SignalScheduler
from fxsignals.storage import SignalStorage

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FX Signals CLI")
    parser.add_argument("--database-url", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("db-init", help="Initialize persistence schema")

    seed = subparsers.add_parser("seed", help="Insert synthetic market data for all pairs")
    seed.add_argument("--seed", type=int, default=None)

    fetch = subparsers.add_parser("fetch", help="Download FX candles into storage")
    fetch.add_argument("--pair", action="append", default=None)
    fetch.add_argument("--period", default="5d")
    fetch.add_argument("--interval", default="1h")

    subparsers.add_parser("generate", help="Run one signal-generation batch")

    signals_cmd = subparsers.add_parser("signals", help="List stored signals")
    signals_cmd.add_argument("--pair", default=None)
    signals_cmd.add_argument("--limit", type=int, default=50)

    subparsers.add_parser("accuracy", help="Win rate of closed signals per pair")

    settle = subparsers.add_parser("settle", help="Record the outcome of a signal")
    settle.add_argument("--signal-id", type=int, required=True)
    settle.add_argument(
        "--result",
        choices=[result.value for result in SignalResult],
        required=True,
    )

    subparsers.add_parser("schedule", help="Run the periodic signal scheduler")

    return parser


def _handle_db_init(storage: SignalStorage) -> int:
    storage.init_schema()
    print(json.dumps({"status": "ok"}))
    return 0


def _handle_seed(args: argparse.Namespace, settings: Settings, storage: SignalStorage) -> int:
    if args.seed is not None:
        settings = settings.model_copy(update={"mock_seed": args.seed})
    inserted = generate_mock_market_data(storage, settings)
    print(json.dumps({"inserted": inserted}))
    return 0


def _handle_fetch(args: argparse.Namespace, settings: Settings, storage: SignalStorage) -> int:
    provider = YFinanceProvider()
    pairs = args.pair or settings.pairs
    inserted: dict[str, int] = {}
    for pair in pairs:
        bars = provider.fetch_price_bars(pair, period=args.period, interval=args.interval)
        inserted[bars[0].pair if bars else pair] = storage.insert_market_data(bars)
        logger.info("Saved %s bars for pair=%s", len(bars), pair)
    print(json.dumps({"inserted": inserted}))
    return 0


def _handle_generate(settings: Settings, storage: SignalStorage) -> int:
    engine = SignalEngine(history=storage, sink=storage, settings=settings)
    report = engine.generate_signals()
    print(json.dumps(report.to_payload()))
    return 0


def _handle_signals(args: argparse.Namespace, storage: SignalStorage) -> int:
    if args.limit <= 0:
        raise SystemExit("limit must be greater than zero")
    if args.pair:
        rows = storage.list_signals_by_pair(args.pair.strip().upper(), limit=args.limit)
    else:
        rows = storage.list_active_signals(limit=args.limit)
    print(json.dumps({"signals": [row.to_payload() for row in rows]}))
    return 0


def _handle_accuracy(storage: SignalStorage) -> int:
    stats = storage.signal_accuracy_stats()
    payload = {
        "pairs": [
            {
                "pair": stat.pair,
                "total_signals": stat.total_signals,
                "accuracy": round(stat.accuracy, 2),
            }
            for stat in stats
        ]
    }
    print(json.dumps(payload))
    return 0


def _handle_settle(args: argparse.Namespace, storage: SignalStorage) -> int:
    try:
        signal = storage.update_signal_result(args.signal_id, SignalResult(args.result))
    except SignalNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    print(json.dumps(signal.to_payload()))
    return 0


def _handle_schedule(settings: Settings, storage: SignalStorage) -> int:
    engine = SignalEngine(history=storage, sink=storage, settings=settings)
    scheduler = SignalScheduler(
        engine,
        interval_seconds=settings.schedule_interval_seconds,
        initial_delay_seconds=settings.schedule_initial_delay_seconds,
    )
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted")
        scheduler.stop()
    return 0


def _require_storage(settings: Settings, override_database_url: str | None) -> SignalStorage:
    database_url = override_database_url or settings.database_url
    if not database_url:
        raise SystemExit("database-url is required (or set FXSIG_DATABASE_URL)")
    storage = SignalStorage(database_url, timeout_seconds=settings.io_timeout_seconds)
    storage.init_schema()
    return storage


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)

    parser = _build_parser()
    args = parser.parse_args()

    try:
        storage = _require_storage(settings, args.database_url)
        if args.command == "db-init":
            raise SystemExit(_handle_db_init(storage))
        if args.command == "seed":
            raise SystemExit(_handle_seed(args, settings, storage))
        if args.command == "fetch":
            raise SystemExit(_handle_fetch(args, settings, storage))
        if args.command == "generate":
            raise SystemExit(_handle_generate(settings, storage))
        if args.command == "signals":
            raise SystemExit(_handle_signals(args, storage))
        if args.command == "accuracy":
            raise SystemExit(_handle_accuracy(storage))
        if args.command == "settle":
            raise SystemExit(_handle_settle(args, storage))
        if args.command == "schedule":
            raise SystemExit(_handle_schedule(settings, storage))
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    raise SystemExit("Unknown command")


if __name__ == "__main__":
    main()
