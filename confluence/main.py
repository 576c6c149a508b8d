"""Confluence — application entry point.

Boots the FastAPI server and provides the CLI for one-off analyses of a
candle file (CSV or JSON) or of history fetched from the market data
service.
"""

import logging

import pandas as pd
from fastapi import FastAPI

from confluence.analysis.models import Candle
from confluence.api.routers import router

app = FastAPI(title="Confluence API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("confluence")

_CANDLE_COLUMNS = ("time", "open", "high", "low", "close")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


def load_candles(path: str) -> list[Candle]:
    """Read candles from a CSV or JSON file.

    Columns ``time, open, high, low, close`` are required and ``volume`` is
    optional.  ``time`` may be epoch seconds or any timestamp pandas can
    parse (read as UTC).  Rows are returned oldest first.

    Raises ``ValueError`` when a required column is missing.
    """
    if path.lower().endswith(".json"):
        frame = pd.read_json(path)
    else:
        frame = pd.read_csv(path)
    frame.columns = [str(c).strip().lower() for c in frame.columns]

    missing = [c for c in _CANDLE_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Candle file {path} is missing column(s): {', '.join(missing)}")

    if not pd.api.types.is_numeric_dtype(frame["time"]):
        stamps = pd.to_datetime(frame["time"], utc=True)
        frame["time"] = (stamps - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(seconds=1)
    if "volume" not in frame.columns:
        frame["volume"] = 0.0
    frame = frame.sort_values("time")

    return [
        Candle(
            time=int(row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and either serve the API or analyse once."""
    import argparse
    import asyncio
    import json

    from confluence.config import load_config

    parser = argparse.ArgumentParser(description="Confluence market-structure analysis")
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API")
    parser.add_argument("--port", type=int, help="API port (default: API_PORT or 8080)")
    parser.add_argument("--candles", help="CSV or JSON candle file to analyse")
    parser.add_argument("--context-candles", help="Higher-timeframe candle file for MTF bias")
    parser.add_argument("--symbol", help="Instrument symbol, e.g. EUR_USD")
    parser.add_argument("--timeframe", default="1h", help="Candle timeframe (default: 1h)")
    parser.add_argument("--limit", type=int, default=500, help="Candles to fetch when no file is given")
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.serve:
        import uvicorn

        from confluence.api.routers import configure_routers
        from confluence.orchestrator import build_analyzer

        configure_routers(build_analyzer(config))
        port = args.port or config.api_port
        logger.info("Serving Confluence API on port %d", port)
        uvicorn.run(app, host="0.0.0.0", port=port, log_level=config.log_level.lower())
        return

    if not args.symbol:
        parser.error("--symbol is required unless --serve is given")

    from confluence.api.routers import serialize_result
    from confluence.orchestrator import AnalysisOptions, build_analyzer, trader_profile

    async def _analyze() -> dict:
        context = load_candles(args.context_candles) if args.context_candles else None
        if args.candles:
            candles = load_candles(args.candles)
        elif config.market_data_url:
            from confluence.services.market_data import MarketDataClient

            client = MarketDataClient(config.market_data_url)
            candles = await client.fetch_history(args.symbol, args.timeframe, args.limit)
            if context is None:
                _, context_tf = trader_profile(args.timeframe)
                context = await client.fetch_history(args.symbol, context_tf, args.limit) or None
        else:
            parser.error("--candles is required when MARKET_DATA_URL is not set")

        analyzer = build_analyzer(config)
        result = await analyzer.analyze(
            candles, args.symbol, args.timeframe, AnalysisOptions(context_candles=context),
        )
        return serialize_result(result)

    print(json.dumps(asyncio.run(_analyze()), indent=2, default=str))


if __name__ == "__main__":
    _run_cli()
