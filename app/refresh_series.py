"""
Generate or update the stored risk series for configured instruments.

    risk-series generate NVDA TSLA
    risk-series update            # every configured instrument
"""
import argparse
import logging
import sys
from datetime import date, timedelta
from pathlib import Path

from instruments import CFG_PATH_DEFAULT, load_instruments, resolve_config
from log_config import setup_logging
from price_feed import fetch_prices
from risk_errors import RiskSeriesError
from series import assemble_series, extend_series, needs_update
from series_store import read_series, series_path, write_series
from settings import load_settings

logger = logging.getLogger(__name__)


def generate_symbol(symbol: str, data_dir: Path, history_start, config_path: str = CFG_PATH_DEFAULT,
                    as_of=None) -> dict:
    config = resolve_config(symbol, config_path)
    prices = fetch_prices(config.symbol, start=history_start)
    scored = assemble_series(prices, config, as_of)
    write_series(scored, series_path(data_dir, config.symbol))
    return {"symbol": config.symbol, "success": True, "message": "Generated full history",
            "points": len(scored)}


def update_symbol(symbol: str, data_dir: Path, history_start, lookback_days: int = 14,
                  config_path: str = CFG_PATH_DEFAULT, as_of=None) -> dict:
    config = resolve_config(symbol, config_path)
    path = series_path(data_dir, config.symbol)
    if not path.exists():
        logger.info("%s: no stored series at %s, generating", config.symbol, path)
        return generate_symbol(config.symbol, data_dir, history_start, config_path, as_of)

    existing = read_series(path)
    logger.info("%s: loaded %d stored points, last date %s", config.symbol, len(existing),
                existing["date"].iloc[-1].date() if len(existing) else None)
    recent = fetch_prices(config.symbol, start=date.today() - timedelta(days=lookback_days))

    if not needs_update(existing, recent):
        return {"symbol": config.symbol, "success": True, "message": "Already up to date",
                "points": len(existing)}

    scored = extend_series(existing, recent, config, as_of)
    write_series(scored, path)
    return {"symbol": config.symbol, "success": True,
            "message": f"Updated ({len(scored) - len(existing)} new points)", "points": len(scored)}


def run(command: str, symbols, settings: dict, config_path: str = CFG_PATH_DEFAULT) -> list:
    symbols = [s.upper() for s in symbols] or list(load_instruments(config_path))
    results = []
    for symbol in symbols:
        try:
            if command == "generate":
                res = generate_symbol(symbol, settings["data_dir"], settings["history_start"], config_path)
            else:
                res = update_symbol(symbol, settings["data_dir"], settings["history_start"],
                                    settings["update_lookback_days"], config_path)
        except (RiskSeriesError, OSError) as e:
            logger.error("%s: %s", symbol, e)
            res = {"symbol": symbol, "success": False, "error": str(e)}
        results.append(res)
    return results


def log_summary(results: list) -> None:
    ok = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    logger.info("Successfully processed %d instruments", len(ok))
    for r in ok:
        logger.info("  %s: %s (%d points)", r["symbol"], r["message"], r["points"])
    if failed:
        logger.error("Failed: %d instruments", len(failed))
        for r in failed:
            logger.error("  %s: %s", r["symbol"], r["error"])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="risk-series", description=__doc__.strip().splitlines()[0])
    parser.add_argument("command", choices=["generate", "update"])
    parser.add_argument("symbols", nargs="*", help="instrument symbols (default: all configured)")
    parser.add_argument("--data-dir", help="directory holding <SYMBOL>.csv files")
    parser.add_argument("--config", default=CFG_PATH_DEFAULT, help="instruments YAML file")
    parser.add_argument("--log-level", help="logging level (default from params.yaml)")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.data_dir:
        settings["data_dir"] = Path(args.data_dir)
    setup_logging(args.log_level or settings["log_level"])

    results = run(args.command, args.symbols, settings, args.config)
    log_summary(results)
    return 1 if any(not r["success"] for r in results) else 0


if __name__ == "__main__":
    sys.exit(main())
