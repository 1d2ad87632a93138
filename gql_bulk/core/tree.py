"""Rebuild nested objects from the flat JSONL output of a bulk query.

Bulk query results flatten connections: every nested node becomes its own
line carrying ``__typename`` and a ``__parentId`` pointing at the ``id`` of
its parent. ``flat_to_tree`` moves children back under their parents,
grouped by a pluralized, lower camel cased typename:

    [{"id": "1", "__typename": "Product"},
     {"id": "2", "__typename": "Metafield", "__parentId": "1"}]

becomes

    [{"id": "1", "__typename": "Product",
      "metafields": [{"id": "2", "__typename": "Metafield"}]}]
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

TYPENAME_KEY = "__typename"
PARENT_ID_KEY = "__parentId"
UNKNOWN_TYPENAME = "Unknown"
CHILDREN_KEY = "children"


def array_key(typename: str | None) -> str:
    """Collection key for children of a type, e.g. 'ProductVariant' -> 'productVariants'."""
    if not typename:
        return CHILDREN_KEY
    return typename[0].lower() + typename[1:] + "s"


@dataclass(frozen=True)
class FlatRecord:
    """One line of bulk query output.

    ``fields`` holds the record without ``__parentId``, keys in their
    original order, so unknown fields pass through untouched.
    """
    id: Any
    typename: str | None
    parent_id: str | None
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FlatRecord":
        return cls(
            id=data.get("id"),
            typename=data.get(TYPENAME_KEY),
            parent_id=data.get(PARENT_ID_KEY),
            fields={k: v for k, v in data.items() if k != PARENT_ID_KEY},
        )

    @property
    def type_group(self) -> str:
        return self.typename or UNKNOWN_TYPENAME

    def to_tree_node(self) -> dict[str, Any]:
        return dict(self.fields)


def _build_parent_index(records: list[FlatRecord]) -> dict[Any, int]:
    """Map each id to the position of the record that owns it.

    Records are grouped by type first; when two types share an id the type
    seen first wins.
    """
    by_type: dict[str, dict[Any, int]] = {}
    for position, record in enumerate(records):
        if record.id is None:
            continue
        by_type.setdefault(record.type_group, {}).setdefault(record.id, position)

    index: dict[Any, int] = {}
    for group in by_type.values():
        for record_id, position in group.items():
            index.setdefault(record_id, position)
    return index


def flat_to_tree(records: Iterable[Mapping[str, Any] | FlatRecord]) -> list[dict[str, Any]]:
    """Nest flat bulk query records under their parents.

    Records without ``__parentId`` are returned as roots in input order.
    Children are appended to their parent in input order. A child whose
    parent is not in the input is dropped.
    """
    flat = [r if isinstance(r, FlatRecord) else FlatRecord.from_dict(r) for r in records]
    nodes = [record.to_tree_node() for record in flat]
    index = _build_parent_index(flat)
    keys: dict[str | None, str] = {}

    roots: list[dict[str, Any]] = []
    for position, record in enumerate(flat):
        node = nodes[position]
        if not record.parent_id:
            roots.append(node)
            continue

        parent_position = index.get(record.parent_id)
        if parent_position is None or parent_position == position:
            logger.debug(f"Dropping {record.type_group} {record.id}: parent {record.parent_id} not found")
            continue

        if record.typename not in keys:
            keys[record.typename] = array_key(record.typename)
        nodes[parent_position].setdefault(keys[record.typename], []).append(node)

    return roots


def _is_child_collection(key: str, value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    return all(
        isinstance(item, dict) and array_key(item.get(TYPENAME_KEY)) == key for item in value
    )


def tree_to_flat(forest: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Flatten a forest produced by ``flat_to_tree`` back into records.

    Parents come before their children, as in bulk query output.
    """
    flat: list[dict[str, Any]] = []

    def visit(node: Mapping[str, Any], parent_id: Any) -> None:
        record: dict[str, Any] = {}
        collections = []
        for key, value in node.items():
            if _is_child_collection(key, value):
                collections.append(value)
            else:
                record[key] = value
        if parent_id is not None:
            record[PARENT_ID_KEY] = parent_id
        flat.append(record)

        for collection in collections:
            for child in collection:
                visit(child, node.get("id"))

    for root in forest:
        visit(root, None)
    return flat
