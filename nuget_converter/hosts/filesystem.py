"""Solution and project model backed by files on disk."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Set

from nuget_converter.conversion.host import PACKAGES_CONFIG, PROJECT_JSON
from nuget_converter.conversion.msbuild import ProjectDocument

logger = logging.getLogger(__name__)

PROJECT_LINE = re.compile(
  r'^Project\("\{(?P<type>[^}]+)\}"\)\s*=\s*"(?P<name>[^"]+)"\s*,\s*"(?P<path>[^"]+)"\s*,\s*"\{(?P<guid>[^}]+)\}"',
  re.MULTILINE
)

PROJECT_EXTENSIONS = {'.csproj', '.vbproj', '.fsproj'}

ITEM_NAMES = (PACKAGES_CONFIG, PROJECT_JSON)


class SolutionError(Exception):
  """Raised when a solution file cannot be read."""


class FileProjectItem:
  def __init__(self, project: 'FileProject', path: Path) -> None:
    self.project = project
    self.path = path
    self.name = path.name

  @property
  def file_names(self) -> List[str]:
    return [str(self.path)]

  def delete(self) -> None:
    if self.path.exists():
      self.path.unlink()
    self.project.pending_removals.add(self.name)


class FileProject:
  def __init__(self, name: str, path: Path) -> None:
    self.name = name
    self.path = path
    self.pending_removals: Set[str] = set()

  @property
  def directory(self) -> Path:
    return self.path.parent

  @property
  def full_name(self) -> str:
    if not self.path.is_file():
      raise FileNotFoundError(f'Project file {self.path} does not exist')
    return str(self.path)

  def items(self) -> List[FileProjectItem]:
    items = []
    for name in ITEM_NAMES:
      candidate = self.find_file(name)
      if candidate is not None:
        items.append(FileProjectItem(self, candidate))
    return items

  def find_file(self, name: str) -> Optional[Path]:
    if not self.directory.is_dir():
      return None
    for entry in self.directory.iterdir():
      if entry.is_file() and entry.name.lower() == name.lower():
        return entry
    return None

  def save(self) -> None:
    """Drop ``Include`` entries for items deleted since the last save."""
    if not self.pending_removals or not self.path.is_file():
      self.pending_removals.clear()
      return
    document = ProjectDocument.load(self.path)
    removed = 0
    names = {name.lower() for name in self.pending_removals}
    for group in list(document.iter('ItemGroup')):
      for element in list(group):
        include = element.get('Include') if isinstance(element.tag, str) else None
        if include and Path(include.replace('\\', '/')).name.lower() in names:
          document.remove(group, element)
          removed += 1
    if removed:
      document.save()
      logger.debug('Removed %s item entries from %s', removed, self.path)
    self.pending_removals.clear()

  def __repr__(self) -> str:
    return f'FileProject({self.name!r}, {str(self.path)!r})'


class FileSolution:
  def __init__(self, path: Path | str) -> None:
    self._path = Path(path).expanduser().resolve()
    self._projects: Optional[List[FileProject]] = None
    self.open(str(self._path))

  @property
  def full_name(self) -> str:
    return str(self._path)

  @property
  def directory(self) -> Path:
    return self._path.parent

  @property
  def packages_dir(self) -> Path:
    return self.directory / 'packages'

  @property
  def is_open(self) -> bool:
    return self._projects is not None

  def projects(self) -> List[FileProject]:
    if self._projects is None:
      raise SolutionError(f'Solution {self._path.name} is closed')
    return list(self._projects)

  def close(self) -> None:
    self._projects = None

  def open(self, path: str) -> None:
    solution_path = Path(path).expanduser().resolve()
    try:
      content = solution_path.read_text(encoding='utf-8-sig')
    except (OSError, UnicodeDecodeError) as exc:
      raise SolutionError(f'Cannot read solution {solution_path}: {exc}') from exc
    self._path = solution_path
    self._projects = self._parse_projects(content)
    logger.debug('Opened %s with %s projects', solution_path, len(self._projects))

  def _parse_projects(self, content: str) -> List[FileProject]:
    projects: List[FileProject] = []
    for match in PROJECT_LINE.finditer(content):
      relative = match.group('path').replace('\\', '/')
      if Path(relative).suffix.lower() not in PROJECT_EXTENSIONS:
        continue
      projects.append(FileProject(match.group('name'), (self.directory / relative).resolve()))
    return projects
