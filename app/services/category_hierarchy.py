"""
In-memory operations over a snapshot of the category table.

Nothing in this module touches the database: callers load the category rows
(ORM ``Category`` objects or anything exposing the same attributes) and pass
them in. The rows are indexed into an arena of ``HierarchyEntry`` objects keyed
by id, with children stored as id lists, and every walk over that arena is
iterative so deep catalogs cannot exhaust the interpreter stack.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..exceptions import CategoryIntegrityError
from ..schemas.category import CategoryTreeNode, FlatCategory


@dataclass
class HierarchyEntry:
    id: int
    parent_id: Optional[int]
    children: List[int] = field(default_factory=list)


def sibling_sort_key(record):
    """Siblings are shown by sort_order, then name ignoring case; id keeps ties deterministic"""
    return (record.sort_order or 0, record.name.casefold(), record.name, record.id)


class CategoryIndex:
    """
    Arena view of a flat category list.

    ``roots`` holds real roots (``parent_id is None``) and synthetic roots, i.e.
    records whose parent is missing from the snapshot. The ids of the latter
    are kept in ``dangling_ids`` so callers can report them.
    """

    def __init__(self, records: Iterable):
        self.records: Dict[int, object] = {}
        self.entries: Dict[int, HierarchyEntry] = {}
        for record in records:
            self.records[record.id] = record
            self.entries[record.id] = HierarchyEntry(id=record.id, parent_id=record.parent_id)

        self.roots: List[int] = []
        self.dangling_ids: List[int] = []
        for entry in self.entries.values():
            if entry.parent_id is None:
                self.roots.append(entry.id)
            elif entry.parent_id in self.entries:
                self.entries[entry.parent_id].children.append(entry.id)
            else:
                self.roots.append(entry.id)
                self.dangling_ids.append(entry.id)

        order = self._order_key
        self.roots.sort(key=order)
        for entry in self.entries.values():
            entry.children.sort(key=order)

    def _order_key(self, category_id: int):
        return sibling_sort_key(self.records[category_id])

    def __len__(self):
        return len(self.entries)

    def __contains__(self, category_id):
        return category_id in self.entries

    @property
    def parent_of(self) -> Dict[int, Optional[int]]:
        return {entry.id: entry.parent_id for entry in self.entries.values()}

    @property
    def children_of(self) -> Dict[int, List[int]]:
        return {entry.id: entry.children for entry in self.entries.values()}

    def children(self, category_id: int) -> List:
        return [self.records[child_id] for child_id in self.entries[category_id].children]

    def reachable_ids(self) -> List[int]:
        """Ids reachable from the roots, in pre-order"""
        seen = set()
        ordered = []
        stack = list(reversed(self.roots))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            ordered.append(current)
            stack.extend(reversed(self.entries[current].children))
        return ordered

    def checked_reachable_ids(self) -> List[int]:
        """
        Like ``reachable_ids``, but raises CategoryIntegrityError when some
        category cannot be reached from any root (its parent chain is a cycle).
        """
        reachable = self.reachable_ids()
        if len(reachable) != len(self.entries):
            lost = sorted(set(self.entries) - set(reachable))
            raise CategoryIntegrityError(
                f"Categories {lost} are not reachable from any root; the parent chain contains a cycle",
                category_id=lost[0],
            )
        return reachable

    def subtree_totals(self, counts: Mapping[int, int]) -> Dict[int, int]:
        """Sum ``counts`` over every subtree"""
        totals: Dict[int, int] = {}
        for category_id in reversed(self.checked_reachable_ids()):
            totals[category_id] = counts.get(category_id, 0) + sum(
                totals.get(child_id, 0) for child_id in self.entries[category_id].children
            )
        return totals

    def build_tree(self, product_counts: Optional[Mapping[int, int]] = None) -> List[CategoryTreeNode]:
        self.checked_reachable_ids()

        nodes: Dict[int, CategoryTreeNode] = {}
        for category_id, record in self.records.items():
            nodes[category_id] = _tree_node(
                record,
                None if product_counts is None else product_counts.get(category_id, 0),
            )

        for entry in self.entries.values():
            nodes[entry.id].children = [nodes[child_id] for child_id in entry.children]

        return [nodes[root_id] for root_id in self.roots]


def _tree_node(record, product_count: Optional[int]) -> CategoryTreeNode:
    return CategoryTreeNode(
        id=record.id,
        name=record.name,
        slug=record.slug,
        description=getattr(record, "description", None),
        image_url=getattr(record, "image_url", None),
        sort_order=record.sort_order or 0,
        parent_id=record.parent_id,
        created_at=getattr(record, "created_at", None),
        updated_at=getattr(record, "updated_at", None),
        children=[],
        product_count=product_count,
    )


def build_category_tree(records: Iterable, product_counts: Optional[Mapping[int, int]] = None) -> List[CategoryTreeNode]:
    """
    Turn a flat list of category records into a sorted forest.

    Every record appears exactly once in the result. A record whose parent is
    not in ``records`` is returned as a root instead of being dropped. Raises
    CategoryIntegrityError when the records contain a parent cycle.
    """
    return CategoryIndex(records).build_tree(product_counts)


def flatten_category_tree(roots: Sequence[CategoryTreeNode]) -> List[FlatCategory]:
    """Pre-order listing of a forest with the depth of every node"""
    flat: List[FlatCategory] = []
    stack = [(root, 0) for root in reversed(roots)]
    while stack:
        node, depth = stack.pop()
        data = node.model_dump(exclude={"children"})
        flat.append(FlatCategory(**data, depth=depth, has_children=bool(node.children)))
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return flat


def would_create_cycle(
    category_id: int,
    proposed_parent_id: Optional[int],
    parent_of: Mapping[int, Optional[int]],
) -> bool:
    """
    Return True when making ``proposed_parent_id`` the parent of ``category_id``
    would put ``category_id`` among its own ancestors.

    ``parent_of`` maps every category id to its current parent id. The ascent
    from the proposed parent is bounded by the number of categories; running
    past that bound means the stored hierarchy already has a cycle and raises
    CategoryIntegrityError.
    """
    if proposed_parent_id is None:
        return False
    if proposed_parent_id == category_id:
        return True

    max_hops = len(parent_of) + 1
    hops = 0
    current: Optional[int] = proposed_parent_id
    while current is not None:
        if current == category_id:
            return True
        hops += 1
        if hops > max_hops:
            raise CategoryIntegrityError(
                f"Parent chain above category {proposed_parent_id} does not reach a root",
                category_id=proposed_parent_id,
            )
        current = parent_of.get(current)

    return False


def resolve_category_path(category_id: int, records_by_id: Mapping[int, object]) -> List:
    """
    Ancestors of ``category_id`` from the root down to the category itself.

    Raises KeyError for an unknown id and CategoryIntegrityError if an id repeats
    while ascending. A parent missing from ``records_by_id`` ends the path, the
    same way the tree builder treats such a record as a root.
    """
    if category_id not in records_by_id:
        raise KeyError(category_id)

    path = []
    visited = set()
    current: Optional[int] = category_id
    while current is not None:
        if current in visited:
            raise CategoryIntegrityError(
                f"Category {current} appears twice in the ancestry of category {category_id}",
                category_id=category_id,
            )
        record = records_by_id.get(current)
        if record is None:
            break
        visited.add(current)
        path.append(record)
        current = record.parent_id

    path.reverse()
    return path


def collect_descendant_ids(category_id: int, children_of: Mapping[int, Sequence[int]]) -> List[int]:
    """All strict descendants of ``category_id``, each id at most once"""
    descendants: List[int] = []
    visited = {category_id}
    stack = list(children_of.get(category_id, ()))
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        descendants.append(current)
        stack.extend(children_of.get(current, ()))
    return descendants
