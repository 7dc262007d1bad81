import shutil
import tempfile
from dataclasses import replace
from pathlib import Path
from unittest import TestCase

from idremap import app
from idremap.services.remapping import IdMappingStore, RemapSettings
from config import TestConfig

OLD_ID_A = "a1b2c3d4e5f60718a"
OLD_ID_B = "0123456789abcdef0"
OLD_ID_C = "fedcba98765432100"
NEW_ID_A = 9001
NEW_ID_B = 9002


class BaseTest(TestCase):
    def setUp(self):
        app.config.from_object(TestConfig)
        app.testing = True
        self.output_path = Path(tempfile.mkdtemp(prefix="idremap-test-"))
        self.settings = RemapSettings(output_path=self.output_path)
        self.store = IdMappingStore.from_dict(
            {OLD_ID_A: NEW_ID_A, OLD_ID_B: NEW_ID_B}
        )

    def tearDown(self):
        shutil.rmtree(self.output_path, ignore_errors=True)

    def with_settings(self, **kwargs) -> RemapSettings:
        return replace(self.settings, **kwargs)

    def write_file(self, name, content, binary=False) -> Path:
        path = self.output_path / name
        if binary:
            path.write_bytes(content)
        else:
            path.write_bytes(content.encode("utf-8"))
        return path
