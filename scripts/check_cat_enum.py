"""Fail when code under src/ctl_fill uses a Cat.* member the enum does not define."""
from __future__ import annotations

import ast
import sys
from pathlib import Path

PKG_ROOT = Path("src/ctl_fill")


def _cat_members(inst_path: Path) -> set[str]:
    mod = ast.parse(inst_path.read_text(encoding="utf-8"))
    for node in mod.body:
        if isinstance(node, ast.ClassDef) and node.name == "Cat":
            return {
                stmt.targets[0].id
                for stmt in node.body
                if isinstance(stmt, ast.Assign)
                and len(stmt.targets) == 1
                and isinstance(stmt.targets[0], ast.Name)
            }
    return set()


def _cat_usage(root: Path) -> dict[str, list[tuple[Path, int]]]:
    used: dict[str, list[tuple[Path, int]]] = {}
    for path in sorted(root.rglob("*.py")):
        for node in ast.walk(ast.parse(path.read_text(encoding="utf-8"))):
            if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name) and node.value.id == "Cat":
                used.setdefault(node.attr, []).append((path, node.lineno))
    return used


def main(root: Path = PKG_ROOT) -> int:
    inst_path = root / "instrumentation.py"
    if not inst_path.exists():
        print(f"ERROR: {inst_path} not found")
        return 2

    members = _cat_members(inst_path)
    used = _cat_usage(root)
    missing = sorted(name for name in used if name not in members)
    unused = sorted(members - set(used))

    if unused:
        print("note: Cat members never referenced: " + ", ".join(unused))

    if not missing:
        print("OK: All Cat.* references are present in the Cat enum.")
        return 0

    print("ERROR: Missing Cat enum entries:")
    for name in missing:
        for path, line in used[name]:
            print(f"  {name}: {path}:{line}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main(Path(sys.argv[1]) if len(sys.argv) > 1 else PKG_ROOT))
