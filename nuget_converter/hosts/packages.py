"""Package manager operations over packages.config / project.json files."""
from __future__ import annotations

import json
import logging
import shutil
import subprocess
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import psutil

from nuget_converter.conversion.host import PACKAGES_CONFIG, PROJECT_JSON
from nuget_converter.conversion.models import UninstallResult
from nuget_converter.conversion.msbuild import ProjectDocument
from nuget_converter.conversion.orchestrator import PackageServices
from nuget_converter.hosts.filesystem import FileProject, FileSolution

logger = logging.getLogger(__name__)


class FilePackageManager:
  """Query, install, uninstall and restore packages for file-backed projects.

  Uninstalling a package that another installed package still depends on is
  refused with an invalid-operation result, mirroring the IDE package manager.
  Dependencies are read from the ``.nuspec`` of each package in the solution
  ``packages`` folder; packages without one are treated as having none.
  """

  def __init__(self, packages_dir: Optional[Path] = None, nuget_exe: Optional[str] = None) -> None:
    self.packages_dir = packages_dir
    self.nuget_exe = nuget_exe
    self._dependency_cache: Dict[Tuple[str, str], Set[str]] = {}

  def installed_packages(self, project: FileProject) -> List[Tuple[str, str]]:
    config = project.find_file(PACKAGES_CONFIG)
    if config is not None:
      return self._read_packages_config(config)
    project_json = project.find_file(PROJECT_JSON)
    if project_json is not None:
      return list(self._read_project_json(project_json).items())
    return []

  def _read_packages_config(self, path: Path) -> List[Tuple[str, str]]:
    root = ET.parse(path).getroot()
    packages = []
    for entry in root.findall('package'):
      package_id = entry.get('id')
      if package_id:
        packages.append((package_id, entry.get('version', '')))
    return packages

  def _read_project_json(self, path: Path) -> Dict[str, str]:
    data = json.loads(path.read_text(encoding='utf-8-sig') or '{}')
    dependencies: Dict[str, str] = {}
    for name, requirement in (data.get('dependencies') or {}).items():
      if isinstance(requirement, dict):
        dependencies[name] = str(requirement.get('version', ''))
      else:
        dependencies[name] = str(requirement)
    return dependencies

  def uninstall(self, project: FileProject, package_id: str) -> UninstallResult:
    installed = self.installed_packages(project)
    match = next((entry for entry in installed if entry[0].lower() == package_id.lower()), None)
    if match is None:
      return UninstallResult.failed(f'{package_id} is not installed in {project.name}')

    dependents = [
      other_id
      for other_id, other_version in installed
      if other_id.lower() != package_id.lower()
      and package_id.lower() in self._dependencies_of(other_id, other_version)
    ]
    if dependents:
      return UninstallResult.invalid_operation(
        f'{package_id} is required by {", ".join(sorted(dependents))}'
      )

    config = project.find_file(PACKAGES_CONFIG)
    try:
      if config is not None:
        self._remove_from_packages_config(config, package_id)
      else:
        self._remove_from_project_json(project.find_file(PROJECT_JSON), package_id)
    except (OSError, ET.ParseError, ValueError) as exc:
      return UninstallResult.failed(str(exc))
    logger.debug('Uninstalled %s from %s', package_id, project.name)
    return UninstallResult.removed()

  def _remove_from_packages_config(self, path: Path, package_id: str) -> None:
    document = ProjectDocument.load(path)
    for entry in list(document.root):
      if isinstance(entry.tag, str) and entry.tag == 'package' and (entry.get('id') or '').lower() == package_id.lower():
        document.remove(document.root, entry)
    document.save()

  def _remove_from_project_json(self, path: Optional[Path], package_id: str) -> None:
    if path is None:
      raise ValueError('project.json disappeared')
    data = json.loads(path.read_text(encoding='utf-8-sig') or '{}')
    dependencies = data.get('dependencies') or {}
    data['dependencies'] = {
      name: requirement for name, requirement in dependencies.items() if name.lower() != package_id.lower()
    }
    path.write_text(json.dumps(data, indent=2) + '\n', encoding='utf-8')

  def _dependencies_of(self, package_id: str, version: str) -> Set[str]:
    key = (package_id.lower(), version)
    if key not in self._dependency_cache:
      self._dependency_cache[key] = self._read_nuspec_dependencies(package_id, version)
    return self._dependency_cache[key]

  def _read_nuspec_dependencies(self, package_id: str, version: str) -> Set[str]:
    if self.packages_dir is None:
      return set()
    folder = self.packages_dir / f'{package_id}.{version}'
    if not folder.is_dir():
      return set()
    try:
      content = self._nuspec_content(folder, package_id, version)
    except (OSError, zipfile.BadZipFile) as exc:
      logger.debug('Cannot read nuspec for %s %s: %s', package_id, version, exc)
      return set()
    if content is None:
      return set()
    try:
      root = ET.fromstring(content)
    except ET.ParseError:
      return set()
    return {
      dependency.get('id', '').lower()
      for dependency in root.findall('.//{*}dependency')
      if dependency.get('id')
    }

  def _nuspec_content(self, folder: Path, package_id: str, version: str) -> Optional[bytes]:
    nuspec = next((path for path in folder.glob('*.nuspec')), None)
    if nuspec is not None:
      return nuspec.read_bytes()
    nupkg = folder / f'{package_id}.{version}.nupkg'
    if not nupkg.is_file():
      return None
    with zipfile.ZipFile(nupkg) as archive:
      name = next((entry for entry in archive.namelist() if entry.lower().endswith('.nuspec') and '/' not in entry), None)
      return archive.read(name) if name else None

  def install(self, project: FileProject, package_id: str, version: str) -> None:
    document = ProjectDocument.load(project.full_name)
    for reference in document.iter('PackageReference'):
      if (reference.get('Include') or '').lower() == package_id.lower():
        reference.set('Version', version)
        document.save()
        return

    group = next(
      (group for group in document.iter('ItemGroup') if group.find(document.tag('PackageReference')) is not None),
      None
    )
    reference = ET.Element(document.tag('PackageReference'), {'Include': package_id, 'Version': version})
    if group is None:
      group = ET.Element(document.tag('ItemGroup'))
      group.text = '\n    '
      reference.tail = '\n  '
      group.append(reference)
      document.append_child(document.root, group)
    else:
      document.append_child(group, reference)
    document.save()
    logger.debug('Added PackageReference %s %s to %s', package_id, version, project.name)

  def restore(self, project: FileProject) -> None:
    executable = self.nuget_exe or shutil.which('nuget')
    if not executable:
      logger.info("nuget not found on PATH; skipping restore for '%s'", project.name)
      return
    command = [executable, 'restore', project.full_name, '-NonInteractive']
    if self.packages_dir is not None:
      command.extend(['-PackagesDirectory', str(self.packages_dir)])
    process = psutil.Popen(
      command,
      cwd=str(project.directory),
      stdout=subprocess.PIPE,
      stderr=subprocess.PIPE,
      text=True
    )
    stdout, stderr = process.communicate()
    if process.returncode:
      raise RuntimeError(f'nuget restore exited with {process.returncode}: {(stderr or stdout).strip()}')


def open_solution(path: Path | str, nuget_exe: Optional[str] = None) -> Tuple[FileSolution, PackageServices]:
  """Open a solution on disk together with package services bound to it."""
  solution = FileSolution(path)
  manager = FilePackageManager(packages_dir=solution.packages_dir, nuget_exe=nuget_exe)
  services = PackageServices(query=manager, installer=manager, uninstaller=manager, restorer=manager)
  return solution, services
