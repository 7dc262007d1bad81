"""
In-memory identifier mapping store.

The store is filled by a single bulk read from a mapping source and is then
only read from. Reloading builds a new dictionary and swaps it in once
complete, so lookups never observe a partially loaded mapping.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterator, Mapping, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from idremap.helpers.errors import MappingStoreError
from idremap.helpers.files import AtomicFileWriter

logger = logging.getLogger(__name__)

DATABASE_FETCH_SIZE = 50_000


class MappingSource(ABC):
    name = "mapping source"

    @abstractmethod
    def iter_mappings(self) -> Iterator[Tuple[str, int]]:
        pass


class DatabaseMappingSource(MappingSource):
    def __init__(self, engine: sa.engine.Engine, table: sa.Table):
        self.engine = engine
        self.table = table
        self.name = f"table {table.fullname}"

    def iter_mappings(self):
        query = sa.select(self.table.c.old_id, self.table.c.new_id)
        try:
            with self.engine.connect() as connection:
                result = connection.execution_options(
                    yield_per=DATABASE_FETCH_SIZE
                ).execute(query)
                for old_id, new_id in result:
                    yield old_id, int(new_id)
        except SQLAlchemyError as e:
            raise MappingStoreError(
                f"Could not read mappings from {self.name}: {e}"
            ) from e


class TsvMappingSource(MappingSource):
    """Tab separated ``old_id<TAB>new_id`` lines, as exported by ``export_mapping``."""

    def __init__(self, path):
        self.path = path
        self.name = f"file {path}"

    def iter_mappings(self):
        try:
            with open(self.path, encoding="utf-8") as f:
                for line_number, line in enumerate(f, start=1):
                    line = line.rstrip("\r\n")
                    if not line:
                        continue
                    parts = line.split("\t")
                    if len(parts) != 2 or not parts[1].isdigit():
                        raise MappingStoreError(
                            f"Malformed mapping at {self.path}:{line_number}: {line!r}"
                        )
                    yield parts[0], int(parts[1])
        except OSError as e:
            raise MappingStoreError(
                f"Could not read mappings from {self.name}: {e}"
            ) from e


class DictMappingSource(MappingSource):
    name = "in-memory mapping"

    def __init__(self, mapping: Mapping[str, int]):
        self.mapping = mapping

    def iter_mappings(self):
        yield from self.mapping.items()


class IdMappingStore:
    def __init__(self, source: MappingSource):
        self.source = source
        self._mapping: Dict[str, int] = {}
        self.loaded = False

    @classmethod
    def from_dict(cls, mapping: Mapping[str, int]) -> "IdMappingStore":
        return cls(DictMappingSource(mapping)).load()

    @classmethod
    def wrap(cls, mapping: Dict[str, int]) -> "IdMappingStore":
        """Store over an already loaded mapping, shared rather than copied."""
        store = cls(DictMappingSource(mapping))
        store._mapping = mapping
        store.loaded = True
        return store

    def load(self) -> "IdMappingStore":
        logger.info(f"Loading identifier mapping from {self.source.name}")
        mapping = {}
        for old_id, new_id in self.source.iter_mappings():
            # First occurrence wins, same as the persisted table
            mapping.setdefault(old_id, new_id)
        self._mapping = mapping
        self.loaded = True
        logger.info(f"Loaded {len(mapping):,} mappings")
        return self

    def reload(self) -> "IdMappingStore":
        previous_count = len(self._mapping)
        self.load()
        logger.info(
            f"Reloaded mapping: {len(self._mapping) - previous_count:+,} entries since previous load"
        )
        return self

    def lookup(self, old_id: str) -> Tuple[Optional[int], bool]:
        new_id = self._mapping.get(old_id)
        return new_id, new_id is not None

    def get(self, old_id: str) -> Optional[int]:
        return self._mapping.get(old_id)

    def as_dict(self) -> Dict[str, int]:
        return self._mapping

    def __contains__(self, old_id):
        return old_id in self._mapping

    def __len__(self):
        return len(self._mapping)


def export_mapping(source: MappingSource, path) -> int:
    count = 0
    with AtomicFileWriter(path) as out:
        for old_id, new_id in source.iter_mappings():
            out.write(f"{old_id}\t{new_id}\n")
            count += 1
    logger.info(f"Exported {count:,} mappings to {path}")
    return count
