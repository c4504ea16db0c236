#!/usr/bin/env python3
"""Size/complexity gate for agent_browser: file LOC, function LOC, cyclomatic complexity."""

from __future__ import annotations

import ast
import sys
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Limits:
    max_file_loc: int
    max_func_loc: int
    max_cc: int


REPO_ROOT = Path(__file__).resolve().parents[1]
PACKAGE = "agent_browser"

# The healing core stays small and flat.
CORE_LIMITS = Limits(max_file_loc=400, max_func_loc=80, max_cc=25)
DEFAULT_LIMITS = Limits(max_file_loc=500, max_func_loc=120, max_cc=30)

SKIP_DIRS = {".git", ".venv", ".pytest_cache", "__pycache__", "build", "dist"}

# One decision point per node of these types.
_BRANCH_NODES = (ast.If, ast.For, ast.AsyncFor, ast.While, ast.With, ast.AsyncWith, ast.IfExp, ast.ExceptHandler)


def iter_python_files(root: Path) -> list[Path]:
    return [p for p in sorted(root.rglob("*.py")) if not any(part in SKIP_DIRS for part in p.parts)]


def limits_for(rel: str) -> Limits:
    return CORE_LIMITS if rel.startswith(f"{PACKAGE}/heal/") else DEFAULT_LIMITS


def cyclomatic(node: ast.AST) -> int:
    cc = 1
    for child in ast.walk(node):
        if isinstance(child, _BRANCH_NODES):
            cc += 1
        elif isinstance(child, ast.BoolOp):
            cc += max(0, len(child.values) - 1)
        elif isinstance(child, ast.comprehension):
            cc += 1 + len(child.ifs)
        elif isinstance(child, ast.Match):
            cc += len(child.cases)
    return cc


def node_loc(node: ast.AST) -> int:
    start = getattr(node, "lineno", None)
    end = getattr(node, "end_lineno", None)
    if isinstance(start, int) and isinstance(end, int) and end >= start:
        return end - start + 1
    return 0


def check_file(path: Path, rel: str) -> list[str]:
    limits = limits_for(rel)
    errors: list[str] = []
    source = path.read_text(encoding="utf-8")
    loc = len(source.splitlines())
    if loc > limits.max_file_loc:
        errors.append(f"{rel}: file too large (loc={loc}, max={limits.max_file_loc})")
    try:
        tree = ast.parse(source, filename=rel)
    except SyntaxError as exc:
        return [*errors, f"{rel}: syntax error ({exc})"]
    for node in ast.walk(tree):
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        where = f"{rel}:{node.lineno} {node.name}"
        fn_loc = node_loc(node)
        if fn_loc > limits.max_func_loc:
            errors.append(f"{where}: function too large (loc={fn_loc}, max={limits.max_func_loc})")
        cc = cyclomatic(node)
        if cc > limits.max_cc:
            errors.append(f"{where}: cyclomatic too high (cc={cc}, max={limits.max_cc})")
    return errors


def main(root: Path = REPO_ROOT) -> int:
    errors: list[str] = []
    for path in iter_python_files(root / PACKAGE):
        errors += check_file(path, path.relative_to(root).as_posix())

    if errors:
        print("== structure gate errors ==", file=sys.stderr)
        for e in errors:
            print(f"- {e}", file=sys.stderr)
        print(f"\nFAIL: structure gate ({len(errors)} error(s)).", file=sys.stderr)
        return 2

    print("OK: structure gate")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
