from __future__ import annotations

import logging
import re
from collections.abc import Container
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import yaml

from promptsmith.errors import NotFoundError

logger = logging.getLogger(__name__)

PROMPT_SUFFIX = ".prompt"
TAGS_FILE = "tags.yaml"


@dataclass(frozen=True)
class ResolvedContent:
    name: str
    version: str
    content: str


class ContentResolver(Protocol):
    def resolve(self, name: str, version: str | None = None) -> ResolvedContent:
        """Return the requested version (label or tag) of a prompt, or the latest one.

        Raises NotFoundError when the prompt or version does not exist.
        """
        ...


def version_key(label: str) -> tuple:
    """Sort key ordering ``1.10.0`` after ``1.9.0``; text parts sort after numbers."""
    parts = re.split(r"[.\-+]", label.lstrip("vV"))
    return tuple((0, int(p), "") if p.isdecimal() else (1, 0, p) for p in parts)


def _select(
    name: str,
    versions: Container[str],
    tags: dict[str, str],
    ref: str | None,
    latest: str | None,
) -> str:
    if ref is None:
        if latest is None:
            raise NotFoundError(f"no versions found for prompt '{name}'")
        return latest
    if ref in versions:
        return ref
    tagged = tags.get(ref)
    if tagged is not None and tagged in versions:
        return tagged
    raise NotFoundError(f"version '{ref}' not found for prompt '{name}'")


class InMemoryContentResolver:
    """Dictionary-backed store; the most recently added version is the latest."""

    def __init__(self) -> None:
        self._versions: dict[str, dict[str, str]] = {}
        self._tags: dict[str, dict[str, str]] = {}

    def add_prompt(self, name: str) -> None:
        self._versions.setdefault(name, {})

    def add(self, name: str, version: str, content: str) -> None:
        versions = self._versions.setdefault(name, {})
        versions.pop(version, None)
        versions[version] = content

    def tag(self, name: str, tag: str, version: str) -> None:
        if version not in self._versions.get(name, {}):
            raise NotFoundError(f"version '{version}' not found for prompt '{name}'")
        self._tags.setdefault(name, {})[tag] = version

    def resolve(self, name: str, version: str | None = None) -> ResolvedContent:
        versions = self._versions.get(name)
        if versions is None:
            raise NotFoundError(f"prompt '{name}' not found")
        latest = next(reversed(versions), None)
        selected = _select(name, versions, self._tags.get(name, {}), version, latest)
        return ResolvedContent(name=name, version=selected, content=versions[selected])


class DirectoryContentResolver:
    """Prompts stored on disk as ``<root>/<name>/<version>.prompt``.

    An optional ``<root>/<name>/tags.yaml`` maps tag names to version labels.
    The latest version is the highest label by ``version_key``.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _prompt_dir(self, name: str) -> Path:
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise NotFoundError(f"prompt '{name}' not found")
        prompt_dir = self.root / name
        if not prompt_dir.is_dir():
            raise NotFoundError(f"prompt '{name}' not found")
        return prompt_dir

    def _tags(self, prompt_dir: Path) -> dict[str, str]:
        path = prompt_dir / TAGS_FILE
        if not path.exists():
            return {}
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a mapping of tag to version", path)
            return {}
        return {str(tag): str(version) for tag, version in data.items()}

    def resolve(self, name: str, version: str | None = None) -> ResolvedContent:
        prompt_dir = self._prompt_dir(name)
        files = {p.stem: p for p in prompt_dir.glob(f"*{PROMPT_SUFFIX}") if p.is_file()}
        latest = max(files, key=version_key) if files else None
        tags = self._tags(prompt_dir) if version is not None else {}
        selected = _select(name, files, tags, version, latest)
        logger.debug("Resolved %s@%s from %s", name, selected, prompt_dir)
        return ResolvedContent(name=name, version=selected, content=files[selected].read_text())
