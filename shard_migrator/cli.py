"""Command line entry point for the shard migrator."""

import argparse
import asyncio
import os
import sys

from .core.config_loader import DEFAULT_CONFIG_FILE, MigratorConfig, load_config
from .core.exceptions import ConfigurationError, EnumerationError
from .core.logging_config import get_migrator_logger, setup_logging
from .services.migrator import DataMigrator
from .services.writer import ClusterWriter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Migrate series data from legacy LevelDB shards into a running cluster. "
            "No migration state is recorded: running it twice writes the data twice."
        )
    )
    parser.add_argument(
        "--config",
        default=os.getenv("MIGRATOR_CONFIG", DEFAULT_CONFIG_FILE),
        help="Configuration file path",
    )
    parser.add_argument("--base-dir", default=None, help="Data directory holding shard_db/")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--log-dir", default=os.getenv("LOG_DIR"), help="Directory for migration.log"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="List shards, databases and series without writing"
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )
    return parser.parse_args(argv)


async def run_migration(config: MigratorConfig, dry_run: bool = False) -> None:
    async with ClusterWriter(config.cluster.url) as writer:
        migrator = DataMigrator(config, writer, dry_run=dry_run)
        await migrator.migrate()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(log_dir=args.log_dir, log_level=args.log_level)
    logger = get_migrator_logger()

    try:
        config = load_config(args.config, base_dir=args.base_dir)
        config.cluster.resolve_migration_admin()
    except ConfigurationError as e:
        logger.error("Invalid configuration", config_file=args.config, error=str(e))
        return 2

    if args.validate_config:
        logger.info(
            "Configuration valid",
            shard_dir=str(config.shard_dir),
            databases=[database.name for database in config.cluster.get_databases()],
            cluster_url=config.cluster.url,
        )
        return 0

    try:
        asyncio.run(run_migration(config, dry_run=args.dry_run))
    except EnumerationError:
        return 1
    except KeyboardInterrupt:
        logger.warning("Migration interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
