"""
Thin wrapper around the ``mysqldump`` executable.

Dump output is streamed by the child process straight into the target file,
never through Python memory, and only published once the dump succeeded.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Iterable, List

from sqlalchemy.engine import make_url

from idremap.helpers.errors import DumpError
from idremap.helpers.files import AtomicFileWriter
from idremap.services.remapping.schema import transform_schema
from idremap.services.remapping.settings import RemapSettings

logger = logging.getLogger(__name__)

COMMON_ARGS = ["--skip-lock-tables", "--no-tablespaces", "--set-gtid-purged=OFF"]
DATA_ARGS = ["--no-create-info", "--complete-insert", "--skip-extended-insert"]


class MysqlDumper:
    def __init__(self, database_url: str, settings: RemapSettings):
        url = make_url(database_url)
        self.host = url.host or "localhost"
        self.port = url.port or 3306
        self.user = url.username
        self.password = url.password
        self.database = settings.source_schema or url.database
        self.settings = settings

    def base_args(self) -> List[str]:
        args = [self.settings.mysqldump_bin, "-h", self.host, "-P", str(self.port)]
        if self.user:
            args += ["-u", self.user]
        return args + COMMON_ARGS

    def _env(self):
        env = dict(os.environ)
        if self.password:
            env["MYSQL_PWD"] = self.password
        return env

    def run(self, args: List[str], output_path) -> Path:
        output_path = Path(output_path)
        logger.debug(f"Running {' '.join(args)}")
        try:
            with AtomicFileWriter(output_path) as out:
                result = subprocess.run(
                    args, stdout=out, stderr=subprocess.PIPE, env=self._env()
                )
                if result.returncode != 0:
                    raise DumpError(
                        f"{args[0]} exited with {result.returncode}: "
                        f"{result.stderr.decode(errors='replace').strip()}",
                        returncode=result.returncode,
                    )
        except OSError as e:
            raise DumpError(f"Could not run {args[0]}: {e}") from e

        logger.info(
            f"Dumped {output_path.name} ({output_path.stat().st_size // 1024 // 1024} MB)"
        )
        return output_path

    def dump_schema(self, output_path) -> Path:
        return self.run(self.base_args() + ["--no-data", self.database], output_path)

    def dump_table(self, table_name: str, output_path) -> Path:
        return self.run(
            self.base_args() + DATA_ARGS + [self.database, table_name],
            output_path,
        )

    def dump_remaining(self, excluded_tables: Iterable[str], output_path) -> Path:
        ignore_args = [
            f"--ignore-table={self.database}.{table}" for table in excluded_tables
        ]
        return self.run(
            self.base_args() + DATA_ARGS + ignore_args + [self.database],
            output_path,
        )


def dump_and_transform_schema(dumper: MysqlDumper, settings: RemapSettings) -> int:
    raw_schema = settings.raw_schema_path
    dumper.dump_schema(raw_schema)
    try:
        return transform_schema(raw_schema, settings.schema_script_path, settings)
    finally:
        raw_schema.unlink(missing_ok=True)


def dump_data(dumper: MysqlDumper, settings: RemapSettings) -> List[Path]:
    """
    Dump each large table to its own file, then everything else to one batch
    file. A failed large table is logged and skipped, a failed batch aborts.
    """
    dumped = []
    large_tables = settings.large_tables
    for index, table in enumerate(large_tables, start=1):
        logger.info(f"[{index}/{len(large_tables)}] Dumping {table}")
        try:
            dumped.append(
                dumper.dump_table(table, settings.table_dump_path(table))
            )
        except DumpError as e:
            logger.error(f"Dump of {table} failed: {e.message}")

    logger.info("Dumping remaining tables")
    dumped.append(dumper.dump_remaining(large_tables, settings.batch_dump_path))
    return dumped
