#!/usr/bin/env python3
"""Run a Directory sync from a JSON config via the client and store registries."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from directorysync import (  # noqa: E402
    ConfigurationError,
    SyncConfigLoader,
    SyncOrchestrator,
    build_default_client_registry,
    build_default_store_registry,
    register_plugin_file,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronize a clinical store with the BBMRI-ERIC Directory")
    parser.add_argument("--config", required=True, help="Path to sync JSON config")
    parser.add_argument(
        "--plugins",
        help="Optional JSON file listing extra clients/stores ({'clients': [...], 'stores': [...]})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    client_registry = build_default_client_registry()
    store_registry = build_default_store_registry()
    try:
        config = SyncConfigLoader().load(args.config)
        if args.plugins:
            register_plugin_file(args.plugins, client_registry, store_registry)
    except ConfigurationError as exc:
        logging.getLogger("run_sync").error("%s", exc)
        return 2

    client = client_registry.create_from(config.directory_client, mock=config.mock)
    store = store_registry.create_from(config.clinical_store)

    report = SyncOrchestrator(config, store, client).run()

    payload = {
        "client": config.directory_client.name,
        "source": config.clinical_store.name,
        **report.as_dict(),
    }
    print(json.dumps(payload, indent=2))
    return 0 if report.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
