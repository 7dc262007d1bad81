import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Tuple

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateIndex, CreateSchema, CreateTable

from idremap.helpers.errors import (
    InvalidConfigurationError,
    MappingStoreError,
    SchemaInspectionError,
)
from idremap.helpers.files import AtomicFileWriter
from idremap.models.id_mapping import id_mapping_table
from idremap.services.remapping.settings import RemapSettings

logger = logging.getLogger(__name__)

# Server-side generators for new ids, all returning non-negative 64-bit values
NEW_ID_EXPRESSIONS = {
    "mysql": "UUID_SHORT()",
    "postgresql": "(('x' || substr(md5(random()::text || clock_timestamp()::text), 1, 15))::bit(60)::bigint)",
    "sqlite": "(random() & 9223372036854775807)",
}

MYSQL_CREATE_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
  old_id VARCHAR({length}) PRIMARY KEY,
  new_id BIGINT UNSIGNED NOT NULL,
  INDEX idx_new_id (new_id)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"""


@dataclass(frozen=True)
class SourceColumn:
    table_name: str
    column_name: str

    def __str__(self):
        return f"{self.table_name}.{self.column_name}"


@dataclass
class GenerationReport:
    columns: List[SourceColumn] = field(default_factory=list)
    supplementary_count: int = 0
    mappings_before: int = 0
    mappings_after: int = 0

    @property
    def mappings_added(self) -> int:
        return self.mappings_after - self.mappings_before


class MappingGenerator:
    """
    Discovers every column able to hold an old identifier and fills the
    mapping table with one entry per distinct value.

    Inserts are insert-if-absent: a value seen in several columns, or seen
    again on a later run, keeps the new id it was first given.
    """

    def __init__(
        self,
        engine: sa.engine.Engine,
        settings: RemapSettings,
        mapping_table: sa.Table = None,
    ):
        self.engine = engine
        self.settings = settings
        self.mapping_table = (
            mapping_table
            if mapping_table is not None
            else id_mapping_table(
                sa.MetaData(),
                settings.identifier_length,
                name=settings.mapping_table,
                schema=settings.mapping_schema,
            )
        )
        self._name_pattern = (
            re.compile(settings.id_column_name_pattern)
            if settings.id_column_name_pattern
            else None
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def is_eligible(self, column: dict) -> bool:
        column_type = column["type"]
        if not isinstance(column_type, sa.String) or isinstance(
            column_type, (sa.Text, sa.Enum)
        ):
            return False
        if column_type.length != self.settings.identifier_length:
            return False
        if self._name_pattern and not self._name_pattern.fullmatch(
            column["name"]
        ):
            return False
        return True

    def _is_mapping_table(self, table_name: str) -> bool:
        return (
            table_name == self.mapping_table.name
            and self.settings.source_schema == self.mapping_table.schema
        )

    def discover_columns(self) -> List[SourceColumn]:
        schema = self.settings.source_schema
        columns = []
        try:
            inspector = sa.inspect(self.engine)
            for table_name in sorted(inspector.get_table_names(schema=schema)):
                if self._is_mapping_table(table_name):
                    continue
                for column in inspector.get_columns(table_name, schema=schema):
                    if self.is_eligible(column):
                        columns.append(
                            SourceColumn(table_name, column["name"])
                        )
        except SQLAlchemyError as e:
            raise SchemaInspectionError(
                f"Could not inspect schema {schema or '(default)'}: {e}"
            ) from e

        logger.info(
            f"Found {len(columns)} eligible columns in "
            f"{len({c.table_name for c in columns})} tables"
        )
        return columns

    def new_id_expression(self):
        expression = self.settings.new_id_sql_expression or NEW_ID_EXPRESSIONS.get(
            self.dialect_name
        )
        if expression is None:
            raise InvalidConfigurationError(
                f"No new id generator known for {self.dialect_name}, "
                f"set NEW_ID_SQL_EXPRESSION"
            )
        return sa.literal_column(expression, type_=sa.BigInteger())

    def _insert(self):
        if self.dialect_name == "postgresql":
            return postgresql.insert(self.mapping_table)
        return sa.insert(self.mapping_table)

    def _if_absent(self, statement):
        if self.dialect_name == "postgresql":
            return statement.on_conflict_do_nothing(index_elements=["old_id"])
        if self.dialect_name == "mysql":
            return statement.prefix_with("IGNORE")
        if self.dialect_name == "sqlite":
            return statement.prefix_with("OR IGNORE")
        raise InvalidConfigurationError(
            f"Insert-if-absent is not supported for {self.dialect_name}"
        )

    def column_statement(self, column: SourceColumn):
        source = sa.table(
            column.table_name,
            sa.column(column.column_name),
            schema=self.settings.source_schema,
        )
        source_column = source.c[column.column_name]
        distinct_values = (
            sa.select(source_column.label("value"))
            .where(source_column.isnot(None))
            .distinct()
            .subquery("distinct_values")
        )
        return self._if_absent(
            self._insert().from_select(
                ["old_id", "new_id"],
                sa.select(distinct_values.c.value, self.new_id_expression()),
            )
        )

    def literal_statement(self, identifier: str):
        return self._if_absent(
            self._insert().values(
                old_id=identifier, new_id=self.new_id_expression()
            )
        )

    def build_statements(
        self, columns: List[SourceColumn]
    ) -> List[Tuple[str, sa.sql.Executable]]:
        statements = [
            (str(column), self.column_statement(column)) for column in columns
        ]
        statements.extend(
            (f"literal {identifier}", self.literal_statement(identifier))
            for identifier in self.settings.supplementary_identifiers
        )
        return statements

    def count_mappings(self, connection) -> int:
        return connection.execute(
            sa.select(sa.func.count()).select_from(self.mapping_table)
        ).scalar()

    def _create_mapping_table(self, connection):
        if self.mapping_table.schema and self.dialect_name != "sqlite":
            connection.execute(
                CreateSchema(self.mapping_table.schema, if_not_exists=True)
            )
        self.mapping_table.create(connection, checkfirst=True)

    def generate(self) -> GenerationReport:
        columns = self.discover_columns()
        statements = self.build_statements(columns)
        report = GenerationReport(
            columns=columns,
            supplementary_count=len(self.settings.supplementary_identifiers),
        )

        try:
            with self.engine.begin() as connection:
                self._create_mapping_table(connection)
                report.mappings_before = self.count_mappings(connection)

            # One transaction per column: work already done survives a failure
            # and a re-run only adds what is missing
            for index, (label, statement) in enumerate(statements, start=1):
                with self.engine.begin() as connection:
                    result = connection.execute(statement)
                logger.info(
                    f"[{index}/{len(statements)}] {label}: {max(result.rowcount, 0):,} new mappings"
                )

            with self.engine.connect() as connection:
                report.mappings_after = self.count_mappings(connection)
        except SQLAlchemyError as e:
            raise MappingStoreError(
                f"Could not populate {self.mapping_table.fullname}: {e}"
            ) from e

        logger.info(
            f"Mapping generation done: {report.mappings_added:,} added, "
            f"{report.mappings_after:,} total"
        )
        return report

    def _compile(self, statement) -> str:
        return str(
            statement.compile(
                dialect=self.engine.dialect,
                compile_kwargs={"literal_binds": True},
            )
        ).strip()

    def _create_table_sql(self) -> List[str]:
        if self.dialect_name == "mysql":
            return [
                MYSQL_CREATE_TABLE.format(
                    table=self.mapping_table.fullname,
                    length=self.settings.identifier_length,
                )
            ]
        return [
            self._compile(CreateTable(self.mapping_table, if_not_exists=True))
        ] + [
            self._compile(CreateIndex(index, if_not_exists=True))
            for index in self.mapping_table.indexes
        ]

    def write_script(self, path, truncate: bool = False) -> GenerationReport:
        """
        Write the generation statements as a SQL script instead of running
        them, to be fed to the database client.
        """
        columns = self.discover_columns()
        statements = self.build_statements(columns)
        generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        with AtomicFileWriter(path) as out:
            out.write("-- Stage 1: ID Mapping Table\n")
            out.write(f"-- Generated: {generated_at} UTC\n\n")
            if self.mapping_table.schema and self.dialect_name == "mysql":
                out.write(
                    f"CREATE DATABASE IF NOT EXISTS {self.mapping_table.schema};\n\n"
                )
            for ddl in self._create_table_sql():
                out.write(f"{ddl};\n\n")
            if truncate:
                out.write(f"TRUNCATE TABLE {self.mapping_table.fullname};\n\n")
            out.write(
                f"-- Generating mappings for {len(columns)} columns "
                f"and {len(self.settings.supplementary_identifiers)} literals\n\n"
            )
            for label, statement in statements:
                out.write(f"-- {label}\n{self._compile(statement)};\n\n")

        logger.info(f"Generated: {path}")
        return GenerationReport(
            columns=columns,
            supplementary_count=len(self.settings.supplementary_identifiers),
        )
