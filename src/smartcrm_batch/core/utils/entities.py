# -*- coding: utf-8 -*-

"""
Entity stores for contacts and deals.

The engine reads entities before submission (`get_many`) and routing
handlers write results back (`update`). Two stores are provided: an
in-memory one and a file-backed one reading JSONL, CSV or Parquet through
polars.
"""

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import polars as pl

from .misc import mask_path, read_jsonl, write_jsonl

SUPPORTED_SUFFIXES = ('.jsonl', '.csv', '.parquet')


class EntityStore:
    """Interface for the CRM entity collaborators."""

    def get_many(self, ids: Iterable[str]) -> List[dict]:
        """Return the entities found for `ids`, each a dict with an 'id' key."""
        raise NotImplementedError

    def update(self, entity_id: str, fields: dict) -> None:
        """Merge `fields` into the entity `entity_id`."""
        raise NotImplementedError


class InMemoryEntityStore(EntityStore):
    """Thread-safe dict-backed entity store."""

    def __init__(self, entities: Optional[Iterable[dict]] = None):
        self._lock = threading.Lock()
        self._entities: Dict[str, dict] = {}
        for entity in entities or []:
            if 'id' not in entity:
                raise KeyError(f"Entity without 'id' key: {entity}")
            self._entities[str(entity['id'])] = dict(entity, id=str(entity['id']))

    def get_many(self, ids: Iterable[str]) -> List[dict]:
        with self._lock:
            return [copy.deepcopy(self._entities[i]) for i in ids if i in self._entities]

    def get(self, entity_id: str) -> Optional[dict]:
        with self._lock:
            entity = self._entities.get(entity_id)
            return copy.deepcopy(entity) if entity is not None else None

    def update(self, entity_id: str, fields: dict) -> None:
        with self._lock:
            if entity_id not in self._entities:
                raise KeyError(f"Unknown entity id: {entity_id}")
            self._entities[entity_id].update(fields)

    def all(self) -> List[dict]:
        with self._lock:
            return [copy.deepcopy(e) for e in self._entities.values()]


class TabularEntityStore(InMemoryEntityStore):
    """
    Entity store loaded from a JSONL, CSV or Parquet file with an 'id'
    column. Updates stay in memory until `save()` is called.

    JSONL files are rewritten as JSONL, keeping nested values as they are.
    CSV and Parquet files are written back through polars, with nested
    values serialized to JSON strings.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(read_entities(self.path))
        logging.info(f"Loaded {len(self.all())} entities from {mask_path(self.path)}")

    def save(self, path: Optional[str | Path] = None) -> Path:
        path = Path(path) if path is not None else self.path
        write_entities(self.all(), path)
        logging.info(f"Saved {len(self.all())} entities to {mask_path(path)}")
        return path


def read_entities(path: str | Path) -> List[dict]:
    """Read entities from a JSONL, CSV or Parquet file."""
    path = Path(path)
    if path.suffix == '.jsonl':
        entities = read_jsonl(path)
    elif path.suffix == '.csv':
        entities = pl.read_csv(path, infer_schema_length=0).to_dicts()
    elif path.suffix == '.parquet':
        entities = pl.read_parquet(path).to_dicts()
    else:
        raise ValueError(f"Entity file must be one of {', '.join(SUPPORTED_SUFFIXES)}: {path}")

    for i, entity in enumerate(entities):
        if entity.get('id') is None:
            raise KeyError(f"Expected 'id' key not found in row {i} of {path}.")
    return entities


def write_entities(entities: List[dict], path: str | Path) -> None:
    """Write entities to a JSONL, CSV or Parquet file."""
    path = Path(path)
    if path.suffix == '.jsonl':
        write_jsonl(entities, path)
        return
    if path.suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Entity file must be one of {', '.join(SUPPORTED_SUFFIXES)}: {path}")

    as_text = path.suffix == ".csv"
    rows = [_flatten_for_table(e, as_text) for e in entities]
    df = pl.DataFrame(rows, infer_schema_length=None)
    if as_text:
        df.write_csv(path)
    else:
        df.write_parquet(path)


def _flatten_for_table(entity: dict, as_text: bool = False) -> dict:
    row = {}
    for key, value in entity.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        elif as_text and value is not None:
            value = str(value)
        row[key] = value
    return row
