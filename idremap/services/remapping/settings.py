import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from idremap.helpers.errors import InvalidConfigurationError

MAPPING_SCRIPT_NAME = "01_create_id_mapping.sql"
SCHEMA_SCRIPT_NAME = "02_schema_migration.sql"
RAW_SCHEMA_NAME = "temp_schema.sql"
BATCH_DUMP_NAME = "03_batch_tables.sql"
MAPPING_EXPORT_NAME = "id_mapping.tsv"
DUMP_PREFIX = "03_"
TRANSFORMED_PREFIX = "04_"
TRANSFORMED_SUFFIX = ".transformed.sql"


@dataclass(frozen=True)
class RemapSettings:
    """
    Immutable settings shared by every remapping component of a run.

    Built once from the application config at process start and passed down
    explicitly, so that the store, matchers and transformer never read global
    state.
    """

    identifier_length: int = 17
    identifier_alphabet: str = "0-9a-f"
    output_path: Path = Path("./migration-output")
    source_schema: Optional[str] = None
    mapping_schema: Optional[str] = None
    mapping_table: str = "id_mapping"
    id_column_name_pattern: Optional[str] = None
    schema_id_column_pattern: str = r"id|[a-z_]+_id"
    supplementary_identifiers: Tuple[str, ...] = ()
    path_actions: Tuple[str, ...] = ("view",)
    query_string_parameters: Tuple[str, ...] = ()
    new_id_sql_expression: Optional[str] = None
    progress_step_percent: int = 5
    large_tables: Tuple[str, ...] = ()
    mysqldump_bin: str = "mysqldump"

    def __post_init__(self):
        if self.identifier_length < 1:
            raise InvalidConfigurationError(
                f"Identifier length must be positive, got {self.identifier_length}"
            )
        try:
            re.compile(self.identifier_pattern)
            if self.id_column_name_pattern:
                re.compile(self.id_column_name_pattern)
            re.compile(self.schema_id_column_pattern)
        except re.error as e:
            raise InvalidConfigurationError(f"Invalid pattern: {e}") from e
        if not self.path_actions:
            raise InvalidConfigurationError("At least one path action needed")
        if not 1 <= self.progress_step_percent <= 100:
            raise InvalidConfigurationError(
                "Progress step must be between 1 and 100 percent"
            )
        invalid_literals = [
            literal
            for literal in self.supplementary_identifiers
            if not self.is_identifier(literal)
        ]
        if invalid_literals:
            raise InvalidConfigurationError(
                f"Supplementary identifiers do not have the identifier shape: "
                f"{', '.join(invalid_literals)}"
            )

    @property
    def identifier_pattern(self) -> str:
        return f"[{self.identifier_alphabet}]{{{self.identifier_length}}}"

    def is_identifier(self, value: str) -> bool:
        return re.fullmatch(self.identifier_pattern, value) is not None

    @property
    def mapping_script_path(self) -> Path:
        return self.output_path / MAPPING_SCRIPT_NAME

    @property
    def schema_script_path(self) -> Path:
        return self.output_path / SCHEMA_SCRIPT_NAME

    @property
    def raw_schema_path(self) -> Path:
        return self.output_path / RAW_SCHEMA_NAME

    @property
    def batch_dump_path(self) -> Path:
        return self.output_path / BATCH_DUMP_NAME

    @property
    def mapping_export_path(self) -> Path:
        return self.output_path / MAPPING_EXPORT_NAME

    def table_dump_path(self, table_name: str) -> Path:
        return self.output_path / f"{DUMP_PREFIX}{table_name}.sql"

    @classmethod
    def from_config(cls, config: Mapping) -> "RemapSettings":
        return cls(
            identifier_length=int(config["IDENTIFIER_LENGTH"]),
            identifier_alphabet=config["IDENTIFIER_ALPHABET"],
            output_path=Path(config["OUTPUT_PATH"]),
            source_schema=config.get("SOURCE_SCHEMA") or None,
            mapping_schema=config.get("MAPPING_SCHEMA") or None,
            mapping_table=config["MAPPING_TABLE"],
            id_column_name_pattern=config.get("ID_COLUMN_NAME_PATTERN")
            or None,
            schema_id_column_pattern=config["SCHEMA_ID_COLUMN_PATTERN"],
            supplementary_identifiers=tuple(
                config.get("SUPPLEMENTARY_IDENTIFIERS") or ()
            ),
            path_actions=tuple(config.get("PATH_ACTIONS") or ("view",)),
            query_string_parameters=tuple(
                config.get("QUERY_STRING_PARAMETERS") or ()
            ),
            new_id_sql_expression=config.get("NEW_ID_SQL_EXPRESSION") or None,
            progress_step_percent=int(config["PROGRESS_STEP_PERCENT"]),
            large_tables=tuple(config.get("LARGE_TABLES") or ()),
            mysqldump_bin=config.get("MYSQLDUMP_BIN") or "mysqldump",
        )
