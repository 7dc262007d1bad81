import subprocess
from unittest.mock import patch

from idremap.helpers.errors import DumpError
from idremap.services.dumps import (
    MysqlDumper,
    dump_and_transform_schema,
    dump_data,
)
from idremap.tests import BaseTest

DATABASE_URL = "mysql+pymysql://migration:secret@db:3307/espocrm"


def fake_mysqldump(content=b"", returncode=0, failing_tables=()):
    def run(args, stdout, stderr, env):
        if any(table in args for table in failing_tables):
            return subprocess.CompletedProcess(args, 2, stderr=b"Access denied")
        stdout.write(content.decode())
        return subprocess.CompletedProcess(args, returncode, stderr=b"")

    return run


class TestMysqlDumper(BaseTest):
    def setUp(self):
        super().setUp()
        self.settings = self.with_settings(
            source_schema="espocrm", large_tables=("email", "note")
        )
        self.dumper = MysqlDumper(DATABASE_URL, self.settings)

    def test_arguments_and_password(self):
        with patch(
            "idremap.services.dumps.subprocess.run",
            side_effect=fake_mysqldump(b"-- schema\n"),
        ) as run:
            self.dumper.dump_schema(self.output_path / "schema.sql")

        args = run.call_args[0][0]
        self.assertEqual(
            ["mysqldump", "-h", "db", "-P", "3307", "-u", "migration"], args[:7]
        )
        self.assertEqual(["--no-data", "espocrm"], args[-2:])
        self.assertNotIn("secret", " ".join(args))
        self.assertEqual("secret", run.call_args[1]["env"]["MYSQL_PWD"])
        self.assertEqual(
            "-- schema\n", (self.output_path / "schema.sql").read_text()
        )

    def test_failed_dump_leaves_no_file(self):
        with patch(
            "idremap.services.dumps.subprocess.run",
            side_effect=fake_mysqldump(b"partial", returncode=2),
        ):
            with self.assertRaises(DumpError) as context:
                self.dumper.dump_table("note", self.output_path / "03_note.sql")

        self.assertEqual(2, context.exception.returncode)
        self.assertEqual([], list(self.output_path.iterdir()))

    def test_missing_executable(self):
        with patch(
            "idremap.services.dumps.subprocess.run",
            side_effect=FileNotFoundError("mysqldump"),
        ):
            with self.assertRaises(DumpError):
                self.dumper.dump_table("note", self.output_path / "03_note.sql")

    def test_dump_data_skips_failed_large_table(self):
        with patch(
            "idremap.services.dumps.subprocess.run",
            side_effect=fake_mysqldump(b"INSERT;\n", failing_tables=("email",)),
        ) as run:
            dumped = dump_data(self.dumper, self.settings)

        self.assertEqual(
            ["03_note.sql", "03_batch_tables.sql"], [p.name for p in dumped]
        )
        batch_args = run.call_args[0][0]
        self.assertIn("--ignore-table=espocrm.email", batch_args)
        self.assertIn("--ignore-table=espocrm.note", batch_args)

    def test_dump_and_transform_schema(self):
        schema = b"  `id` varchar(17) NOT NULL DEFAULT '',\n"
        with patch(
            "idremap.services.dumps.subprocess.run",
            side_effect=fake_mysqldump(schema),
        ):
            count = dump_and_transform_schema(self.dumper, self.settings)

        self.assertEqual(1, count)
        self.assertFalse(self.settings.raw_schema_path.exists())
        self.assertEqual(
            "  `id` bigint unsigned NOT NULL DEFAULT 0,\n",
            self.settings.schema_script_path.read_text(),
        )
