"""Manifest parsing and search-text assembly for repository context.

Each parser takes the decoded text of one manifest and returns the declared
package names in file order. Unparseable content yields an empty list.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
import tomllib
from typing import Any, Callable, Iterable, Optional

README_LIMIT = 4000

# PEP 508: name, optional [extras], then anything else
_PEP508_RE = re.compile(r"^([A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?)(\[[^\]]*\])?\s*(.*)?$")

_PACKAGE_JSON_SECTIONS = ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies")
_PIPFILE_SECTIONS = ("packages", "dev-packages")
_CARGO_SECTIONS = ("dependencies", "dev-dependencies")

_WHITESPACE_RE = re.compile(r"\s+")


def decode_content(data: Any) -> str:
    """Decode a ``/contents`` or ``/readme`` payload into text."""

    if not isinstance(data, dict) or not data.get("content"):
        return ""
    encoding = data.get("encoding") or "base64"
    content = data["content"]
    if encoding != "base64":
        return content if isinstance(content, str) else ""
    try:
        return base64.b64decode(content).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError, TypeError):
        return ""


def _unique(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(name for name in names if name))


def _pep508_name(requirement: str) -> Optional[str]:
    match = _PEP508_RE.match(requirement.strip())
    return match.group(1) if match else None


def parse_package_json(content: str) -> list[str]:
    try:
        manifest = json.loads(content)
    except ValueError:
        return []
    if not isinstance(manifest, dict):
        return []

    names: list[str] = []
    for section in _PACKAGE_JSON_SECTIONS:
        deps = manifest.get(section)
        if isinstance(deps, dict):
            names.extend(deps)
    return _unique(names)


def parse_requirements(content: str) -> list[str]:
    names: list[str] = []
    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or line.startswith(("-r", "-c", "-e", "--")):
            continue
        name = _pep508_name(line)
        if name:
            names.append(name)
    return _unique(names)


def parse_pyproject(content: str) -> list[str]:
    """PEP 621 ``project.dependencies`` plus Poetry dependency tables."""

    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError:
        return []

    names: list[str] = []
    project = data.get("project")
    if isinstance(project, dict):
        for requirement in project.get("dependencies") or []:
            if isinstance(requirement, str):
                names.append(_pep508_name(requirement) or "")

    poetry = data.get("tool", {}).get("poetry", {})
    deps = poetry.get("dependencies") if isinstance(poetry, dict) else None
    if isinstance(deps, dict):
        names.extend(name for name in deps if name.lower() != "python")
    return _unique(names)


def parse_pipfile(content: str) -> list[str]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError:
        return []

    names: list[str] = []
    for section in _PIPFILE_SECTIONS:
        deps = data.get(section)
        if isinstance(deps, dict):
            names.extend(deps)
    return _unique(names)


def parse_go_mod(content: str) -> list[str]:
    names: list[str] = []
    in_block = False

    for raw_line in content.splitlines():
        line = raw_line.split("//", 1)[0].strip()
        if line.startswith("require ("):
            in_block = True
            continue
        if in_block and line.startswith(")"):
            in_block = False
            continue
        if line.startswith("require "):
            line = line[len("require "):]
        elif not in_block:
            continue
        if line:
            names.append(line.split()[0])
    return _unique(names)


def parse_cargo_toml(content: str) -> list[str]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError:
        return []

    names: list[str] = []
    for section in _CARGO_SECTIONS:
        deps = data.get(section)
        if isinstance(deps, dict):
            names.extend(deps)
    return _unique(names)


# Fetched in this order; names merge first-seen.
MANIFEST_PARSERS: tuple[tuple[str, Callable[[str], list[str]]], ...] = (
    ("package.json", parse_package_json),
    ("requirements.txt", parse_requirements),
    ("pyproject.toml", parse_pyproject),
    ("Pipfile", parse_pipfile),
    ("go.mod", parse_go_mod),
    ("Cargo.toml", parse_cargo_toml),
)


def merge_dependencies(groups: Iterable[Iterable[str]]) -> list[str]:
    return _unique(name for group in groups for name in group)


def build_context_text(
    full_name: str,
    description: str,
    language: str,
    dependencies: list[str],
    readme: str,
) -> str:
    """Single-line search text: name, description, language, deps, readme head."""

    blocks = [full_name, description, language, " ".join(dependencies), readme[:README_LIMIT]]
    return _WHITESPACE_RE.sub(" ", "\n".join(block for block in blocks if block)).strip()
