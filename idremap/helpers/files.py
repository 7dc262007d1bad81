import os
import tempfile
from pathlib import Path

# surrogateescape lets undecodable bytes round-trip unchanged
DUMP_ENCODING = "utf-8"
DUMP_ERRORS = "surrogateescape"

_COUNT_CHUNK_SIZE = 1024 * 1024


def open_dump(path, mode="r"):
    return open(
        path, mode, encoding=DUMP_ENCODING, errors=DUMP_ERRORS, newline=""
    )


def count_lines(path) -> int:
    """Count lines the way iterating over the file would yield them.

    A final line without a trailing newline still counts as a line.
    """
    count = 0
    last_chunk = b""
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_COUNT_CHUNK_SIZE)
            if not chunk:
                break
            count += chunk.count(b"\n")
            last_chunk = chunk
    if last_chunk and not last_chunk.endswith(b"\n"):
        count += 1
    return count


class AtomicFileWriter:
    """
    Text writer that only publishes its content at ``path`` once fully written.

    Content goes to a temporary file in the target directory, which is renamed
    over ``path`` when the block exits cleanly. On exception, or when
    ``discard()`` was called, the temporary file is removed and ``path`` is
    left untouched.
    """

    def __init__(self, path):
        self.path = Path(path)
        self.tmp_path = None
        self._file = None
        self._discarded = False

    def __enter__(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        self.tmp_path = Path(tmp_path)
        self._file = os.fdopen(
            fd, "w", encoding=DUMP_ENCODING, errors=DUMP_ERRORS, newline=""
        )
        return self

    def write(self, data):
        self._file.write(data)

    def fileno(self):
        return self._file.fileno()

    def discard(self):
        self._discarded = True

    def __exit__(self, exc_type, exc_value, tb):
        try:
            if exc_type is None and not self._discarded:
                self._file.flush()
                os.fsync(self._file.fileno())
            self._file.close()
        except BaseException:
            self.tmp_path.unlink(missing_ok=True)
            raise

        if exc_type is not None or self._discarded:
            self.tmp_path.unlink(missing_ok=True)
            return False

        try:
            _copy_mode(self.path, self.tmp_path)
            os.replace(self.tmp_path, self.path)
        except BaseException:
            self.tmp_path.unlink(missing_ok=True)
            raise
        return False


def _copy_mode(original, replacement):
    # mkstemp creates 0600 files; keep the permissions of the file we replace
    if original.exists():
        os.chmod(replacement, original.stat().st_mode & 0o7777)
    else:
        os.chmod(replacement, 0o644)
