from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from time import perf_counter
from typing import Callable

from orasync.config import (
    OPTION_FILE_NAME,
    ConfigError,
    OracleConfig,
    normalize_identifier,
    write_option_file,
)
from orasync.diff.schema_diff import TableDiff, compute_diff
from orasync.fs.directory import Directory
from orasync.models import PullReport, SchemaSnapshot, Target
from orasync.normalize.ddl_normalizer import DdlNormalizer
from orasync.oracle.instance import DatabaseError, InstancePool
from orasync.oracle.staging import StagingError, TemporarySchema
from orasync.sync.applier import SchemaDiffApplier, UnsupportedDiffError
from orasync.sync.discovery import SchemaDiscovery
from orasync.sync.populate import SchemaDirPopulator

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_FATAL = 2

DiffEngine = Callable[[SchemaSnapshot, SchemaSnapshot], list[TableDiff]]


@dataclass(frozen=True)
class SyncRunResult:
    exit_code: int
    added_count: int
    modified_count: int
    deleted_count: int
    created_dirs_count: int
    deleted_dirs_count: int
    log_file: Path | None

    @classmethod
    def from_report(cls, exit_code: int, report: PullReport, log_file: Path | None) -> "SyncRunResult":
        return cls(
            exit_code=exit_code,
            added_count=len(report.added_files),
            modified_count=len(report.modified_files),
            deleted_count=len(report.deleted_files),
            created_dirs_count=len(report.created_dirs),
            deleted_dirs_count=len(report.deleted_dirs),
            log_file=log_file,
        )


def _setup_logger(log_file_path: Path | None) -> logging.Logger:
    logger = logging.getLogger("orasync")

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.INFO)
    logger.propagate = False

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file_path is not None:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def _purge_old_logs(logs_dir: Path, retention_days: int, logger: logging.Logger) -> int:
    if retention_days < 1 or not logs_dir.exists():
        return 0

    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    removed = 0
    for log_file in logs_dir.glob("orasync-*.log"):
        try:
            modified_at = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
            if modified_at < cutoff:
                log_file.unlink()
                removed += 1
        except OSError as exc:
            logger.warning("Failed to delete old log file: %s (%s)", log_file, exc)

    return removed


def _prepare_logging(log_dir: str | Path | None, retention_days: int) -> tuple[logging.Logger, Path | None]:
    if log_dir is None:
        return _setup_logger(None), None

    logs_dir = Path(log_dir).resolve()
    local_date = datetime.now().strftime("%Y%m%d")
    log_file = logs_dir / f"orasync-{local_date}.log"
    logger = _setup_logger(log_file)
    removed_logs = _purge_old_logs(logs_dir, retention_days, logger)
    if removed_logs:
        logger.info(
            "Log retention applied. removed=%s retention_days=%s",
            removed_logs,
            retention_days,
        )
    return logger, log_file


class PullPipeline:
    """Walks a definition tree and pulls live schema changes into it."""

    def __init__(
        self,
        instances: InstancePool,
        logger: logging.Logger | None = None,
        diff_engine: DiffEngine | None = None,
    ) -> None:
        self.instances = instances
        self.logger = logger or logging.getLogger("orasync")
        self.diff_engine = diff_engine or compute_diff
        self.report = PullReport()

    def _target(self, directory: Directory) -> Target:
        instance = self.instances.get(directory.oracle_config())
        schema = directory.declared_schema()
        return Target(
            instance=instance,
            schema_names=[schema] if schema else [],
            options=directory.sync_options(),
        )

    def run(self, root: Directory) -> int:
        seen: set[Path] = set()
        return self.pull(root, seen)

    def pull(self, directory: Directory, seen: set[Path]) -> int:
        seen.add(directory.canonical_path)
        try:
            is_leaf = directory.is_leaf()
        except ConfigError as exc:
            self.logger.error("Unable to read options of %s: %s", directory, exc)
            return EXIT_FAILURE
        if is_leaf:
            return self._pull_leaf(directory)

        try:
            subdirs = directory.subdirs()
            has_leaf_subdirs = directory.is_instance_with_leaf_subdirs(subdirs)
        except OSError as exc:
            self.logger.error("Unable to list subdirs of %s: %s", directory, exc)
            return EXIT_FAILURE
        except ConfigError as exc:
            self.logger.error("Unable to read options under %s: %s", directory, exc)
            return EXIT_FAILURE

        if has_leaf_subdirs:
            ret = self._discover(directory, subdirs)
            if ret != EXIT_OK:
                return ret

        for subdir in subdirs:
            if subdir.canonical_path in seen:
                continue
            ret = self.pull(subdir, seen)
            if ret != EXIT_OK:
                return ret
        return EXIT_OK

    def _discover(self, directory: Directory, subdirs: list[Directory]) -> int:
        try:
            target = self._target(directory)
        except ConfigError as exc:
            self.logger.error("Unable to resolve instance for %s: %s", directory, exc)
            return EXIT_FAILURE
        populator = SchemaDirPopulator(
            normalizer=DdlNormalizer(target.options.line_ending),
            report=self.report,
            logger=self.logger,
        )
        return SchemaDiscovery(populator, logger=self.logger).discover(directory, subdirs, target)

    def _pull_leaf(self, directory: Directory) -> int:
        self.logger.info("Updating %s...", directory)
        try:
            target = self._target(directory)
            to_schema = target.instance.schema(target.schema_names[0])
        except (ConfigError, DatabaseError) as exc:
            self.logger.error("Unable to read schema for %s: %s", directory, exc)
            return EXIT_FAILURE

        if to_schema is None:
            try:
                directory.delete()
            except OSError as exc:
                self.logger.error("Unable to delete directory %s: %s", directory, exc)
                return EXIT_FAILURE
            self.report.deleted_dirs.append(directory.path)
            self.logger.info("    Deleted directory %s -- schema no longer exists", directory)
            return EXIT_OK

        applier = SchemaDiffApplier(
            instance=target.instance,
            normalizer=DdlNormalizer(target.options.line_ending),
            report=self.report,
            logger=self.logger,
        )
        try:
            staging = TemporarySchema(
                instance=target.instance,
                name=target.options.temp_schema,
                sql_files=directory.sql_files(),
                tablespace=target.options.temp_tablespace,
                logger=self.logger,
            )
            with staging:
                from_schema = staging.snapshot()
                for diff in self.diff_engine(from_schema, to_schema):
                    ret = applier.apply(directory, diff, to_schema)
                    if ret != EXIT_OK:
                        return ret
        except OSError as exc:
            self.logger.error("Unable to list table files of %s: %s", directory, exc)
            return EXIT_FAILURE
        except StagingError as exc:
            self.logger.error("%s", exc)
            return EXIT_FAILURE
        return EXIT_OK


def run_pull(
    directory: str | Path = ".",
    log_dir: str | Path | None = None,
    retention_days: int = 30,
) -> SyncRunResult:
    logger, log_file = _prepare_logging(log_dir, retention_days)
    root = Directory.open(directory)

    started = perf_counter()
    logger.info("Pull started. dir=%s", root)
    pool = InstancePool(logger=logger)
    pipeline = PullPipeline(instances=pool, logger=logger)
    try:
        exit_code = pipeline.run(root)
    except UnsupportedDiffError as exc:
        logger.error("Fatal: %s", exc)
        exit_code = EXIT_FATAL
    finally:
        pool.close()

    report = pipeline.report
    logger.info(
        "Pull finished in %.2fs. exit_code=%s added=%s modified=%s deleted=%s created_dirs=%s deleted_dirs=%s",
        perf_counter() - started,
        exit_code,
        len(report.added_files),
        len(report.modified_files),
        len(report.deleted_files),
        len(report.created_dirs),
        len(report.deleted_dirs),
    )
    return SyncRunResult.from_report(exit_code, report, log_file)


def run_init(
    directory: str | Path,
    oracle_config: OracleConfig,
    schema: str | None = None,
    log_dir: str | Path | None = None,
    retention_days: int = 30,
) -> SyncRunResult:
    logger, log_file = _prepare_logging(log_dir, retention_days)

    path = Path(directory).absolute()
    option_file = path / OPTION_FILE_NAME
    if option_file.exists():
        raise ConfigError(f"{path} is already initialized ({OPTION_FILE_NAME} exists).")
    path.mkdir(parents=True, exist_ok=True)
    write_option_file(
        option_file,
        {
            "host": oracle_config.host,
            "port": oracle_config.port,
            "service_name": oracle_config.service_name,
            "username": oracle_config.username,
            "password": oracle_config.password,
        },
    )

    root = Directory.open(path)
    options = root.sync_options()
    report = PullReport()
    populator = SchemaDirPopulator(DdlNormalizer(options.line_ending), report, logger=logger)
    pool = InstancePool(logger=logger)
    exit_code = EXIT_OK
    try:
        instance = pool.get(oracle_config)
        if schema:
            snapshot = instance.schema(normalize_identifier(schema))
            if snapshot is None:
                logger.error("Schema %s does not exist on %s", schema, instance)
                exit_code = EXIT_FAILURE
            else:
                exit_code = populator.populate(snapshot, instance, root, as_subdirectory=False)
        else:
            for name in instance.schema_names():
                if not options.wants_schema(name):
                    continue
                snapshot = instance.schema(name)
                if snapshot is None:
                    continue
                exit_code = populator.populate(snapshot, instance, root, as_subdirectory=True)
                if exit_code != EXIT_OK:
                    break
    except DatabaseError as exc:
        logger.error("Unable to initialize %s: %s", path, exc)
        exit_code = EXIT_FAILURE
    finally:
        pool.close()

    logger.info(
        "Init finished. exit_code=%s dirs=%s files=%s",
        exit_code,
        len(report.created_dirs),
        len(report.added_files),
    )
    return SyncRunResult.from_report(exit_code, report, log_file)
