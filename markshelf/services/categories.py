from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from markshelf.services.common import normalize_folder_path
from markshelf.services.errors import CategoryCreateFailed

CreateCategories = Callable[[list[dict]], Mapping[str, int]]
RecoverCategories = Callable[[list[str]], Mapping[str, int]]


@dataclass
class CategoryRecord:
    user_id: int
    name: str
    path: str
    parent_id: int | None

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "path": self.path,
            "parent_id": self.parent_id,
        }


def ancestor_paths(path: str) -> list[str]:
    """``"A/B/C"`` -> ``["A", "A/B", "A/B/C"]``."""
    parts = path.split("/")
    return ["/".join(parts[: depth + 1]) for depth in range(len(parts))]


def group_paths_by_depth(paths: Iterable[str]) -> dict[int, list[str]]:
    by_depth: dict[int, dict[str, None]] = {}
    for raw in paths:
        path = normalize_folder_path(raw)
        if not path:
            continue
        for depth, prefix in enumerate(ancestor_paths(path), start=1):
            by_depth.setdefault(depth, {})[prefix] = None
    return {depth: list(found) for depth, found in sorted(by_depth.items())}


def _parent_path(path: str) -> str:
    return path.rpartition("/")[0]


def ensure_categories(
    user_id: int,
    paths: Iterable[str],
    existing: Mapping[str, int],
    create: CreateCategories,
    recover: RecoverCategories | None = None,
) -> tuple[dict[str, int], list[str]]:
    """Make sure every path in ``paths`` (and all its ancestors) has a category.

    Missing categories are created one depth level at a time with a single
    ``create`` call per level, so a child always sees its parent's id. A level
    that fails is retried as a lookup through ``recover`` (another request may
    have created the same paths). Descendants of a path that stays unresolved
    are skipped, never created without their parent.

    Returns the resolved ``path -> id`` map and the error messages collected
    along the way. ``existing`` is left untouched.
    """
    resolved = dict(existing)
    errors: list[str] = []
    blocked: set[str] = set()

    for depth, level_paths in group_paths_by_depth(paths).items():
        records: list[CategoryRecord] = []
        for path in level_paths:
            if path in resolved:
                continue
            parent_path = _parent_path(path)
            if parent_path and parent_path not in resolved:
                if parent_path not in blocked:
                    errors.append(
                        f"Skipped category {path}: parent {parent_path} is missing"
                    )
                blocked.add(path)
                continue
            records.append(
                CategoryRecord(
                    user_id=user_id,
                    name=path.rpartition("/")[2],
                    path=path,
                    parent_id=resolved.get(parent_path) if parent_path else None,
                )
            )

        if not records:
            continue

        try:
            created = create([record.as_dict() for record in records])
        except Exception as exc:
            error = _recover_level(records, resolved, exc, create, recover)
            missing = [record.path for record in records if record.path not in resolved]
            if missing:
                errors.append(f"Category creation failed at depth {depth}: {error}")
                blocked.update(missing)
            continue

        resolved.update(created)

    return resolved, errors


def _recover_level(
    records: list[CategoryRecord],
    resolved: dict[str, int],
    error: Exception,
    create: CreateCategories,
    recover: RecoverCategories | None,
) -> Exception:
    """Pick up paths another request created, then retry the rest once.

    A single conflicting path fails the whole batch, so the paths nobody
    else created get one more ``create`` call on their own.
    """
    if recover is None:
        return error
    try:
        resolved.update(recover([record.path for record in records]))
    except Exception as exc:
        return exc

    remaining = [record for record in records if record.path not in resolved]
    if not remaining or len(remaining) == len(records):
        return error
    try:
        resolved.update(create([record.as_dict() for record in remaining]))
    except Exception as exc:
        return exc
    return error


def ensure_category_path(user_id: int, path: str, store) -> tuple[int, str]:
    """Resolve one folder path to its leaf category id, creating what is missing."""
    normalized = normalize_folder_path(path)
    if not normalized:
        raise CategoryCreateFailed(path or "", "Path is required")

    resolved, errors = ensure_categories(
        user_id,
        [normalized],
        store.load_category_map(user_id),
        store.insert_categories,
        recover=lambda missing: store.find_categories_by_path(user_id, missing),
    )
    category_id = resolved.get(normalized)
    if category_id is None:
        message = errors[-1] if errors else "Failed to ensure category"
        raise CategoryCreateFailed(normalized, message)
    return category_id, normalized


def build_category_tree(categories) -> list[dict]:
    nodes: dict[int, dict] = {}
    ordered = sorted(categories, key=lambda category: category.path)
    for category in ordered:
        nodes[category.id] = {**category.as_dict(), "children": []}

    roots: list[dict] = []
    for category in ordered:
        node = nodes[category.id]
        parent = nodes.get(category.parent_id) if category.parent_id else None
        if parent is not None:
            parent["children"].append(node)
        else:
            roots.append(node)
    return roots
