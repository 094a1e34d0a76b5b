"""Bidirectional entity-id and source-location index for one file batch."""

import os
from typing import Dict, Iterable, Iterator, Optional, Tuple

from .graph_builder import entity_node_id
from .graph_model import Entity, FileEntities

Location = Tuple[str, int]


def normalize_path(path: str) -> str:
    return os.path.normcase(os.path.normpath(path))


class EntityIndex:
    """Maps entity ids to ``(file, line)`` and back.

    Built once per batch. Both the selection line and the start line of an
    entity resolve to it; the first entity registered at a location wins.
    """

    def __init__(self) -> None:
        self._by_id: Dict[str, Tuple[str, Entity]] = {}
        self._by_location: Dict[Location, str] = {}

    @classmethod
    def build(cls, files: Iterable[FileEntities]) -> "EntityIndex":
        index = cls()
        for file_entities in files:
            for entity in file_entities.entities:
                index._register(file_entities.path, entity)
        return index

    def _register(self, path: str, entity: Entity) -> None:
        entity_id = entity_node_id(path, entity)
        self._by_id.setdefault(entity_id, (path, entity))
        file_key = normalize_path(path)
        self._by_location.setdefault((file_key, entity.anchor_line), entity_id)
        self._by_location.setdefault((file_key, entity.start_line), entity_id)
        for child in entity.children:
            self._register(path, child)

    def id_for(self, path: str, entity: Entity) -> str:
        return entity_node_id(path, entity)

    def id_at(self, path: str, line: int) -> Optional[str]:
        return self._by_location.get((normalize_path(path), int(line)))

    def location_of(self, entity_id: str) -> Optional[Location]:
        entry = self._by_id.get(entity_id)
        if entry is None:
            return None
        path, entity = entry
        return path, entity.anchor_line

    def entity(self, entity_id: str) -> Optional[Entity]:
        entry = self._by_id.get(entity_id)
        return entry[1] if entry else None

    def items(self) -> Iterator[Tuple[str, str, Entity]]:
        for entity_id, (path, entity) in self._by_id.items():
            yield entity_id, path, entity

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._by_id
