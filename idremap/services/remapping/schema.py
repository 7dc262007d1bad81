import logging
import re

from idremap.helpers.errors import TransformError
from idremap.helpers.files import AtomicFileWriter, open_dump
from idremap.services.remapping.settings import RemapSettings

logger = logging.getLogger(__name__)

# Empty string defaults are not valid for a numeric column
DEFAULT_FIXES = (
    (
        re.compile(r"bigint unsigned NOT NULL DEFAULT ''"),
        "bigint unsigned NOT NULL DEFAULT 0",
    ),
    (
        re.compile(r"bigint unsigned DEFAULT ''"),
        "bigint unsigned DEFAULT NULL",
    ),
)


def column_type_pattern(settings: RemapSettings) -> re.Pattern:
    return re.compile(
        rf"`({settings.schema_id_column_pattern})` "
        rf"varchar\({settings.identifier_length}\)"
        r"( CHARACTER SET \S+ COLLATE [^\s,]+)?"
    )


def transform_schema_line(line: str, pattern: re.Pattern):
    line, count = pattern.subn(r"`\1` bigint unsigned", line)
    if count:
        for fix, replacement in DEFAULT_FIXES:
            line = fix.sub(replacement, line)
    return line, count


def transform_schema(input_path, output_path, settings: RemapSettings) -> int:
    """
    Rewrite a schema-only dump so identifier columns become ``bigint unsigned``.

    Returns the number of converted columns.
    """
    pattern = column_type_pattern(settings)
    converted = 0
    try:
        with AtomicFileWriter(output_path) as out, open_dump(
            input_path
        ) as source:
            for line in source:
                line, count = transform_schema_line(line, pattern)
                converted += count
                out.write(line)
    except OSError as e:
        raise TransformError(
            f"Schema transform of {input_path} failed: {e}", path=input_path
        ) from e

    logger.info(f"Transformed {converted} columns into {output_path}")
    return converted
