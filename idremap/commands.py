import sys
from dataclasses import replace
from pathlib import Path

import click

from idremap import app, db
from idremap.helpers.errors import IdRemapError
from idremap.models import IdMapping
from idremap.services.dumps import (
    MysqlDumper,
    dump_and_transform_schema,
    dump_data,
)
from idremap.services.remapping import (
    DatabaseMappingSource,
    IdMappingStore,
    MappingGenerator,
    RemapSettings,
    TsvMappingSource,
    export_mapping,
    reconcile_transformed,
    transform_dumps,
)

STAGES = [
    ("generate_mapping", "Generate ID mapping"),
    ("dump_schema", "Dump and transform schema"),
    ("dump_data", "Dump data (large tables + batch)"),
    ("transform_dumps", "Transform dumps"),
    ("patch_transformed", "Patch transformed files with the complete mapping"),
    ("run_all", "Run all stages"),
]

workers_option = click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of files processed in parallel (default: TRANSFORM_WORKERS)",
)
mapping_file_option = click.option(
    "--mapping-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Load the mapping from a TSV export instead of the database",
)
output_path_option = click.option(
    "--output-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Override OUTPUT_PATH",
)


def _settings(output_path=None) -> RemapSettings:
    settings = RemapSettings.from_config(app.config)
    if output_path is not None:
        settings = replace(settings, output_path=output_path)
    return settings


def _load_store(mapping_file=None) -> IdMappingStore:
    if mapping_file:
        source = TsvMappingSource(mapping_file)
    else:
        source = DatabaseMappingSource(db.engine, IdMapping.__table__)
    return IdMappingStore(source).load()


def _run_stage(name, stage, output_path=None, **kwargs) -> int:
    app.logger.info(f"=== {name} ===")
    try:
        succeeded = stage(_settings(output_path), **kwargs)
    except IdRemapError as e:
        app.logger.exception(e)
        click.echo(f"ERROR: {e.message}", err=True)
        return 1
    return 0 if succeeded else 1


def _generate_mapping(settings, script_only=False, truncate=False):
    generator = MappingGenerator(db.engine, settings, IdMapping.__table__)
    if script_only:
        generator.write_script(settings.mapping_script_path, truncate=truncate)
        click.echo(f"Generated: {settings.mapping_script_path}")
        return True
    report = generator.generate()
    click.echo(
        f"{len(report.columns)} columns, {report.mappings_added:,} mappings added, "
        f"{report.mappings_after:,} total"
    )
    return True


def _dump_schema(settings):
    dumper = MysqlDumper(app.config["SQLALCHEMY_DATABASE_URI"], settings)
    count = dump_and_transform_schema(dumper, settings)
    click.echo(f"Transformed {count} columns: {settings.schema_script_path}")
    return True


def _dump_data(settings):
    dumper = MysqlDumper(app.config["SQLALCHEMY_DATABASE_URI"], settings)
    dumped = dump_data(dumper, settings)
    click.echo(f"{len(dumped)} dump files written to {settings.output_path}")
    return True


def _export_mapping(settings, path=None):
    source = DatabaseMappingSource(db.engine, IdMapping.__table__)
    count = export_mapping(source, path or settings.mapping_export_path)
    click.echo(f"{count:,} mappings exported")
    return True


def _echo_report(report):
    for run in report.runs:
        click.echo(run.summary())
    click.echo(
        f"{report.replaced_count:,} replaced, {report.unmapped_count:,} unmapped, "
        f"{len(report.failed_runs)} failed"
    )


def _transform(settings, workers=None, mapping_file=None):
    store = _load_store(mapping_file)
    report = transform_dumps(
        settings, store, workers or app.config["TRANSFORM_WORKERS"]
    )
    _echo_report(report)
    return report.succeeded


def _patch(settings, workers=None, mapping_file=None):
    store = _load_store(mapping_file)
    report = reconcile_transformed(
        settings, store, workers or app.config["TRANSFORM_WORKERS"]
    )
    _echo_report(report)
    return report.succeeded


@app.cli.command("generate_mapping", with_appcontext=True)
@click.option(
    "--script-only",
    is_flag=True,
    help="Write the SQL script instead of running it",
)
@click.option(
    "--truncate",
    is_flag=True,
    help="Start the script by emptying the mapping table",
)
def generate_mapping(script_only, truncate):
    """
    Build the identifier mapping from every eligible column of the source
    schema, plus the configured supplementary identifiers.
    """
    sys.exit(
        _run_stage(
            "Stage 1: ID mapping",
            _generate_mapping,
            script_only=script_only,
            truncate=truncate,
        )
    )


@app.cli.command("export_mapping", with_appcontext=True)
@click.argument(
    "path", type=click.Path(dir_okay=False, path_type=Path), required=False
)
def export_mapping_command(path):
    """Export the mapping table as old_id<TAB>new_id lines."""
    sys.exit(_run_stage("Export mapping", _export_mapping, path=path))


@app.cli.command("dump_schema", with_appcontext=True)
@output_path_option
def dump_schema(output_path):
    """Dump the schema and convert identifier columns to bigint."""
    sys.exit(
        _run_stage("Stage 2: Schema migration", _dump_schema, output_path)
    )


@app.cli.command("dump_data", with_appcontext=True)
@output_path_option
def dump_data_command(output_path):
    """Dump the large tables one by one, then the remaining tables."""
    sys.exit(_run_stage("Stage 3: Data dumps", _dump_data, output_path))


@app.cli.command("transform_dumps", with_appcontext=True)
@workers_option
@mapping_file_option
@output_path_option
def transform_dumps_command(workers, mapping_file, output_path):
    """Rewrite every raw dump into its .transformed.sql counterpart."""
    sys.exit(
        _run_stage(
            "Stage 4: Transform dumps",
            _transform,
            output_path,
            workers=workers,
            mapping_file=mapping_file,
        )
    )


@app.cli.command("patch_transformed", with_appcontext=True)
@workers_option
@mapping_file_option
@output_path_option
def patch_transformed(workers, mapping_file, output_path):
    """
    Patch already transformed files in place with the current mapping.

    Safe to run any number of times: files with nothing left to replace are
    not rewritten.
    """
    sys.exit(
        _run_stage(
            "Patch: transformed files",
            _patch,
            output_path,
            workers=workers,
            mapping_file=mapping_file,
        )
    )


@app.cli.command("run_all", with_appcontext=True)
@workers_option
@output_path_option
def run_all(workers, output_path):
    """Generate the mapping, dump schema and data, then transform the dumps."""
    for name, stage, kwargs in [
        ("Stage 1: ID mapping", _generate_mapping, {}),
        ("Stage 2: Schema migration", _dump_schema, {}),
        ("Stage 3: Data dumps", _dump_data, {}),
        ("Stage 4: Transform dumps", _transform, {"workers": workers}),
    ]:
        exit_code = _run_stage(name, stage, output_path, **kwargs)
        if exit_code != 0:
            sys.exit(exit_code)
    sys.exit(0)


@app.cli.command("menu", with_appcontext=True)
@click.pass_context
def menu(ctx):
    """Pick a stage interactively."""
    click.echo("ID Migration Tool")
    click.echo("=================\n")
    click.echo(f"Output: {app.config['OUTPUT_PATH']}\n")
    click.echo("Stages:")
    for index, (_, label) in enumerate(STAGES, start=1):
        click.echo(f"  {index}. {label}")
    click.echo()
    choice = click.prompt(
        f"Select (1-{len(STAGES)})", type=click.IntRange(1, len(STAGES))
    )
    command_name = STAGES[choice - 1][0]
    ctx.invoke(app.cli.get_command(ctx, command_name))
