# scripts/replay_track.py
import argparse
import asyncio
import logging
from datetime import UTC
from pathlib import Path

import httpx
import pandas as pd
from dateutil import parser as dtp

from radarzone.core.config import Config, load_config
from radarzone.core.geofence import Coordinate
from radarzone.core.publisher import RecordPublisher
from radarzone.core.records import RecordStore
from radarzone.core.scheduler import VirtualScheduler
from radarzone.core.session import MonitoringSession
from radarzone.core.storage import KeyValueStore
from radarzone.utils.log import setup_logging

logger = logging.getLogger("replay_track")


def to_epoch_s(ts) -> float:
    """
    Any timestamp -> UTC epoch seconds.
    - Naive timestamp -> UTC assumed.
    - Aware timestamp -> converted to UTC.
    """
    dt = dtp.parse(str(ts))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).timestamp()


def read_track(src: Path) -> pd.DataFrame:
    suffix = src.suffix.lower()
    if suffix == ".parquet":
        df = pd.read_parquet(src)
    elif suffix in {".jsonl", ".ndjson"}:
        df = pd.read_json(src, lines=True)
    else:
        df = pd.read_csv(src)

    df = df.rename(columns={"latitude": "lat", "longitude": "lon"})
    for c in ["timestamp", "lat", "lon"]:
        if c not in df.columns:
            raise ValueError(f"Missing required column: {c}")

    df = df.dropna(subset=["timestamp", "lat", "lon"])
    df["t"] = df["timestamp"].map(to_epoch_s)
    return df.sort_values(by="t", kind="stable").reset_index(drop=True)


async def replay(df: pd.DataFrame, cfg: Config, store: KeyValueStore, publish: bool) -> list[int]:
    candidates: list[int] = []
    sched = VirtualScheduler(start=float(df["t"].iloc[0]) if len(df) else 0.0)

    async with httpx.AsyncClient(timeout=cfg.api_timeout_sec) as client:
        publisher = RecordPublisher(store, client, cfg.api_base_url) if publish else None
        records = RecordStore(store, publisher)
        records.load()
        session = MonitoringSession(
            cfg.zone(), records, sched, tick_sec=cfg.dwell_tick_sec, grace_ms=cfg.dwell_grace_ms
        )
        session.on_candidate = candidates.append

        for _, r in df.iterrows():
            sched.advance_to(float(r["t"]))
            session.feed(Coordinate(float(r["lat"]), float(r["lon"])))
            await session.drain()

        # let a trailing grace period run out
        sched.advance(cfg.dwell_grace_ms / 1000.0)
        await session.drain()
        session.stop()
        print(f"[OK] samples={len(df)} | candidates={candidates} | best={records.best_seconds}")
    return candidates


def main():
    ap = argparse.ArgumentParser(description="Replay a recorded track through the dwell timer")
    ap.add_argument("--track", required=True, help="CSV/Parquet/JSONL with timestamp, lat, lon")
    ap.add_argument("--config", default="configs/config.json")
    ap.add_argument("--storage", default=None, help="store file (default: from config)")
    ap.add_argument("--publish", action="store_true", help="send new records to the API")
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args()

    setup_logging(args.log_level)
    cfg_path = Path(args.config)
    cfg = load_config(cfg_path) if cfg_path.exists() else Config({})
    store = KeyValueStore(args.storage or cfg.storage_path)

    df = read_track(Path(args.track))
    asyncio.run(replay(df, cfg, store, args.publish))


if __name__ == "__main__":
    main()
