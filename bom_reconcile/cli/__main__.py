from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from bom_reconcile.config.loader import ConfigError, load_config
from bom_reconcile.db.pg_store import PostgresRecordStore
from bom_reconcile.db.record_store import InMemoryRecordStore, RecordStore, RecordStoreError
from bom_reconcile.logging.init import log_summary, setup_logging
from bom_reconcile.models.config_models import RunConfig
from bom_reconcile.services.orchestrator import ProcessingError, load_classified_rows, reconcile_all
from bom_reconcile.services.summary import render_error_report, render_summary_line
from bom_reconcile.source.reader import SourceFileError

"""CLI entrypoint.

Flow:
- Load .env (override mode) so connection variables win over the shell
- Load and validate the run config
- Pick the record store: PostgreSQL, or in-memory for --dry-run /
  DISABLE_DB_CONNECT=1
- Reconcile, print the error report and one SUMMARY line, map to exit code
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/import.yml")
PG_ENV_VARS = ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")


def _resolve_dsn(cfg: RunConfig) -> str:
    """Build the connection string; the environment wins over the config.

    Precedence:
        1. DATABASE_URL, then PGDSN
        2. PG* variables, each missing one filled from the config block
        3. config database.dsn
        4. config database block fields (host, port, user, ...)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN")
    if dsn:
        return dsn
    if db_cfg.dsn and not any(os.getenv(var) for var in PG_ENV_VARS):
        return db_cfg.dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; a broken file only warns."""
    try:
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
    except (OSError, ValueError) as e:
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="bom-reconcile", description="Hierarchical BOM CSV -> record store reconciler")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Run config YAML (default: %(default)s)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--dry-run", action="store_true", help="Reconcile against an in-memory store")
    p.add_argument("--inspect-data", action="store_true", help="Print header & first classified rows then exit")
    return p.parse_args(argv)


def _inspect_data(cfg: RunConfig) -> int:
    try:
        source, rows = load_classified_rows(cfg)
    except SourceFileError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {source.path.name} columns={source.column_count} data_rows={len(source.rows)}")
    print(f"  HEADER: {source.header}")
    for row in rows[:5]:
        print(
            f"  row={row.row_number} key={row.hierarchy_key} id={row.natural_id} "
            f"kind={row.kind.value} parent={row.parent_key}"
        )
    composites = sum(1 for r in rows if r.is_composite)
    print(f"  usable_rows={len(rows)} leaves={len(rows) - composites} composites={composites}")
    return EXIT_SUCCESS_ALL


def _open_store(cfg: RunConfig, *, dry_run: bool, logger: logging.Logger) -> tuple[RecordStore, str]:
    if dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("in-memory record store (dry-run or DISABLE_DB_CONNECT=1)")
        return InMemoryRecordStore(), "memory"
    store = PostgresRecordStore(_resolve_dsn(cfg), max_conn=max(cfg.workers, 1) + 1)
    try:
        store.ensure_schema()
    except RecordStoreError:
        store.close()
        raise
    return store, "live"


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None only: an explicit [] must not pick up the test runner's argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    logger.info(f"Reconciling {cfg.source_file} namespace={cfg.namespace}")

    try:
        store, mode = _open_store(cfg, dry_run=args.dry_run, logger=logger)
    except (RecordStoreError, RuntimeError) as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    try:
        summary = reconcile_all(cfg, store)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    finally:
        store.close()

    logger.info(f"mode={mode} rows={summary.total_rows}")
    for line in render_error_report(summary):
        logger.error(line)

    summary_line = render_summary_line(summary)
    # log_summary adds the "SUMMARY " prefix itself
    log_summary(summary_line[len("SUMMARY "):])

    if summary.has_failures:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
