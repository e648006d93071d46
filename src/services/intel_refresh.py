"""
Run one intel refresh cycle and write the fused map snapshot to disk.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from src.services.config import load_config
from src.services.intel_extraction import IntelConfigurationError
from src.services.models import NEWS_SCOPES
from src.services.pipeline import build_pipeline

LOGGER = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = Path("datasets/intel")


async def run_refresh(
    output_dir: Path,
    mode: str,
    scope: str | None,
    target_count: int | None,
    persist_cache: bool = True,
) -> Path:
    config = load_config()
    if scope:
        config = replace(config, scope=scope)
    if target_count:
        config = replace(config, target_count=target_count)

    pipeline = build_pipeline(config, persist_cache=persist_cache)
    try:
        fresh = await pipeline.engine.refresh(pipeline.default_options(mode=mode))
        LOGGER.info("Fetched %s intel items; waiting for animation and verification", len(fresh))
        await pipeline.engine.wait_idle()
        snapshot = pipeline.engine.snapshot()
        snapshot["hotspots"] = [hotspot.to_serializable() for hotspot in pipeline.engine.hotspots()]
        snapshot["verifierStats"] = dict(pipeline.verifier.stats)
    finally:
        await pipeline.aclose()

    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    output_path = output_dir / f"intel_snapshot_{stamp}.json"
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(snapshot, handle, ensure_ascii=False, indent=2)
    LOGGER.info("Wrote snapshot with %s news items to %s", len(snapshot["news"]), output_path)
    return output_path


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch, extract and fuse one batch of intel news.")
    parser.add_argument(
        "--output-dir",
        default=DEFAULT_OUTPUT_DIR,
        type=Path,
        help="Directory to store snapshot JSON (default: datasets/intel).",
    )
    parser.add_argument(
        "--mode",
        choices=("initial", "refresh"),
        default="initial",
        help="RSS depth ladder and time budget to use (default: initial).",
    )
    parser.add_argument(
        "--scope",
        choices=NEWS_SCOPES,
        default=None,
        help="News scope (default: INTEL_NEWS_SCOPE or global).",
    )
    parser.add_argument(
        "--target-count",
        type=int,
        default=None,
        help="Number of articles to extract (default: INTEL_TARGET_COUNT or 10).",
    )
    parser.add_argument(
        "--no-geocode-cache",
        action="store_true",
        help="Keep geocode verification results in memory only.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )
    dotenv_loaded = load_dotenv(dotenv_path=Path(__file__).resolve().parents[2] / ".env")
    if dotenv_loaded:
        LOGGER.debug("Loaded environment variables from .env file.")

    try:
        asyncio.run(
            run_refresh(
                args.output_dir,
                mode=args.mode,
                scope=args.scope,
                target_count=args.target_count,
                persist_cache=not args.no_geocode_cache,
            )
        )
    except IntelConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 2
    except Exception:  # noqa: BLE001
        LOGGER.exception("Intel refresh failed.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
