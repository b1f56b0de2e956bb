#!/usr/bin/env python3
"""
CLI entry point for translation memory administration.

Usage:
    python -m scripts.ttm_admin services                      # list configured services
    python -m scripts.ttm_admin health                        # service status
    python -m scripts.ttm_admin bootstrap --source units.json  # rebuild every writable service
    python -m scripts.ttm_admin bootstrap --source units.json --reindex --service primary
"""

import argparse
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def cmd_services(registry) -> int:
    for row in registry.describe():
        flags = []
        if row.get("default"):
            flags.append("default")
        if row.get("writable") is not None:
            flags.append(f"writable={row['writable']}")
        if row.get("public"):
            flags.append("public")
        if "error" in row:
            print(f"  {row['name']}: ERROR {row['error']}")
            continue
        caps = ", ".join(row.get("capabilities", []))
        print(f"  {row['name']} [{row.get('class')}] {caps} {' '.join(flags)}".rstrip())
        if row.get("mirrors"):
            print(f"      mirrors: {', '.join(row['mirrors'])}")
    return 0


def cmd_health(registry) -> int:
    from ttmserver.health import check_services, overall_status

    rows = check_services(registry)
    for row in rows:
        line = f"  {row['name']}: {row['status']}"
        if row.get("error"):
            line += f" ({row['error']})"
        print(line)
    status = overall_status(rows)
    print(f"\nOverall: {status}")
    return 0 if status == "healthy" else 1


def cmd_bootstrap(registry, settings, args) -> int:
    from ttmserver.bootstrap import BootstrapRunner
    from ttmserver.replication import InMemoryTranslationSource

    source = InMemoryTranslationSource.load_json(args.source, wiki=settings.wiki_id)
    runner = BootstrapRunner(
        registry,
        source,
        batch_size=args.batch_size or settings.ttm_bootstrap_batch_size,
        timeout=settings.ttm_bootstrap_timeout,
    )
    results = runner.run(reindex=args.reindex, services=args.service)
    if not results:
        print("Nothing bootstrapped")
        return 1

    for name, stats in results.items():
        print(
            f"  {name}: {stats.definitions} definitions, {stats.translations} translations "
            f"({stats.skipped} skipped) in {stats.batches} batch(es)"
        )
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Translation Memory - Administration")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("services", help="List configured translation memory services")
    sub.add_parser("health", help="Show the status of every service")

    boot = sub.add_parser("bootstrap", help="Rebuild writable services from an export")
    boot.add_argument("--source", type=Path, required=True, help="JSON array of translation records")
    boot.add_argument("--reindex", action="store_true", help="Recreate indexes/tables first")
    boot.add_argument("--service", action="append", help="Only this service (repeatable)")
    boot.add_argument("--batch-size", type=int, default=None, help="Units per batch")

    args = parser.parse_args(argv)

    from config.logging_config import setup_logging
    from config.settings import settings
    from ttmserver.exceptions import ConfigurationError, TTMServerError
    from ttmserver.registry import BackendRegistry

    setup_logging(args.log_level)
    registry = BackendRegistry.from_settings(settings)

    try:
        registry.validate()
        if args.command == "services":
            return cmd_services(registry)
        if args.command == "health":
            return cmd_health(registry)
        return cmd_bootstrap(registry, settings, args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except TTMServerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
