"""CSV-backed MarketSeriesProvider.

Expected file layout: one file per symbol, ``{symbol}.csv`` inside a data
directory, with columns ``timestamp,open,high,low,close,volume``.
Timestamps are ISO 8601; naive values are treated as UTC.
"""

from __future__ import annotations

import csv
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

import structlog

from edgelab.errors import MarketDataError
from edgelab.market.types import Bar

log = structlog.get_logger()

_REQUIRED_COLUMNS = ("timestamp", "open", "high", "low", "close", "volume")


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class CsvSeriesProvider:
    """Loads bars from ``{data_dir}/{symbol}.csv``."""

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir)

    def fetch(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> list[Bar]:
        path = self._data_dir / f"{symbol}.csv"
        bars = load_csv_bars(path, symbol)
        start_utc, end_utc = _as_utc(start), _as_utc(end)
        selected = [b for b in bars if start_utc <= b.timestamp <= end_utc]
        log.info(
            "csv_bars_loaded",
            symbol=symbol,
            timeframe=timeframe,
            path=str(path),
            bar_count=len(selected),
        )
        return selected


def load_csv_bars(path: Path, symbol: str) -> list[Bar]:
    """Parse one CSV file into bars sorted by timestamp.

    Raises MarketDataError for a missing file, missing columns or a row
    that cannot be parsed. Rows are never skipped silently.
    """
    if not path.exists():
        raise MarketDataError(f"CSV file not found: {path}")

    bars: list[Bar] = []
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        missing = [c for c in _REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise MarketDataError(
                f"{path} is missing columns: {', '.join(missing)}"
            )
        for line_no, row in enumerate(reader, start=2):
            try:
                bars.append(Bar(
                    symbol=symbol,
                    timestamp=_as_utc(datetime.fromisoformat(row["timestamp"])),
                    open=Decimal(row["open"]),
                    high=Decimal(row["high"]),
                    low=Decimal(row["low"]),
                    close=Decimal(row["close"]),
                    volume=int(float(row["volume"])),
                ))
            except (ValueError, TypeError, InvalidOperation) as e:
                raise MarketDataError(f"{path}:{line_no}: {e}") from e

    bars.sort(key=lambda b: b.timestamp)
    return bars
