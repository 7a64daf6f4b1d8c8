"""Command-line entry point for running one pipeline stage in-process."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import secrets
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from stance_pipeline.functions.cluster.core import ClusterLogic
from stance_pipeline.functions.generate.core import build_generate_logic
from stance_pipeline.functions.ingest.core import IngestLogic
from stance_pipeline.shared.runtime import STAGES, StageRuntime, StageSettings, get_stage
from stance_pipeline.shared.runtime.handler import SECRET_HEADER
from stance_pipeline.shared.utils.config_validator import ConfigurationError
from stance_pipeline.shared.utils.env import load_env
from stance_pipeline.shared.utils.logging import setup_logging

LOGIC_FACTORIES = {
    "ingest": IngestLogic.from_env,
    "cluster": ClusterLogic.from_env,
    "generate": build_generate_logic,
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one pipeline stage locally")
    parser.add_argument("--stage", required=True, choices=sorted(STAGES), help="Stage to run")
    parser.add_argument("--budget-ms", type=int, help="Override the stage budget in milliseconds")
    parser.add_argument("--concurrency", type=int, help="Override the stage concurrency")
    parser.add_argument("--body", help="JSON request body passed to the stage")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    if args.body:
        try:
            json.loads(args.body)
        except json.JSONDecodeError as exc:
            parser.error(f"--body is not valid JSON: {exc}")
    return args


def build_settings(args: argparse.Namespace) -> StageSettings:
    settings = StageSettings.from_env(get_stage(args.stage))
    overrides = {}
    if args.budget_ms is not None:
        overrides["budget_ms"] = args.budget_ms
    if args.concurrency is not None:
        overrides["concurrency"] = args.concurrency
    if not settings.cron_secret:
        overrides["cron_secret"] = secrets.token_hex(16)
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    if settings.budget_ms < 1 or settings.concurrency < 1:
        raise ConfigurationError("--budget-ms and --concurrency must be at least 1")
    return settings


def main() -> int:
    args = parse_args()
    load_env()
    setup_logging(level="DEBUG" if args.verbose else "INFO")

    settings = build_settings(args)
    runtime = StageRuntime(
        get_stage(args.stage),
        LOGIC_FACTORIES[args.stage],
        settings=settings,
    )
    response = asyncio.run(
        runtime.handle("POST", {SECRET_HEADER: settings.cron_secret}, args.body)
    )
    print(json.dumps(response.body, indent=2, ensure_ascii=False))
    return 0 if response.status == 200 else 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    try:
        sys.exit(main())
    except ConfigurationError as exc:
        logging.getLogger(__name__).error(str(exc))
        sys.exit(2)
    except KeyboardInterrupt:  # pragma: no cover - graceful exit
        sys.exit(130)
