"""
Shared test fixtures: an in-memory host model and on-disk solution builders.
"""

import os
import tempfile
import textwrap
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

os.environ.setdefault('CONVERTER_DATA_DIR', tempfile.mkdtemp(prefix='nuget-converter-tests-'))

import pytest

from nuget_converter.conversion.models import UninstallResult
from nuget_converter.conversion.orchestrator import PackageServices

MSBUILD_NS = 'http://schemas.microsoft.com/developer/msbuild/2003'

LEGACY_CSPROJ = textwrap.dedent("""\
    <?xml version="1.0" encoding="utf-8"?>
    <Project ToolsVersion="15.0" DefaultTargets="Build" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
      <!-- legacy project -->
      <PropertyGroup>
        <OutputType>Library</OutputType>
        <RootNamespace>{name}</RootNamespace>
      </PropertyGroup>
      <PropertyGroup Condition=" '$(Configuration)' == 'Debug' ">
        <DebugSymbols>true</DebugSymbols>
      </PropertyGroup>
      <ItemGroup>
        <Compile Include="Class1.cs" />
        <None Include="packages.config" />
      </ItemGroup>
    </Project>
    """)

NO_PROPERTY_GROUP_CSPROJ = textwrap.dedent("""\
    <?xml version="1.0" encoding="utf-8"?>
    <Project ToolsVersion="15.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
      <ItemGroup>
        <Compile Include="Class1.cs" />
      </ItemGroup>
    </Project>
    """)


class FakeItem:
  def __init__(self, project: 'FakeProject', name: str, file_names: Iterable[str] = ()) -> None:
    self.project = project
    self.name = name
    self.file_names = list(file_names)

  def delete(self) -> None:
    self.project.item_list.remove(self)
    self.project.deleted.append(self.name)


class FakeProject:
  def __init__(self, name: str, full_name: Optional[str] = None, items: Iterable[str] = ()) -> None:
    self.name = name
    self._full_name = full_name
    self.item_list: List[FakeItem] = [FakeItem(self, item) for item in items]
    self.deleted: List[str] = []
    self.saved = 0

  @property
  def full_name(self) -> str:
    if self._full_name is None:
      raise RuntimeError(f'{self.name} has no full name')
    return self._full_name

  def items(self) -> List[FakeItem]:
    return list(self.item_list)

  def save(self) -> None:
    self.saved += 1


class FakeSolution:
  def __init__(self, projects: Iterable[FakeProject], full_name: str = 'C:/src/App.sln') -> None:
    self._projects = list(projects)
    self.full_name = full_name
    self.events: List[object] = []

  def projects(self) -> List[FakeProject]:
    return list(self._projects)

  def close(self) -> None:
    self.events.append('close')

  def open(self, path: str) -> None:
    self.events.append(('open', path))


class FakePackageHost:
  """Package query/install/uninstall/restore double keyed by project name.

  ``failures`` maps a package id to the number of uninstall attempts that fail
  before it succeeds, or None to fail forever. ``dependencies`` maps a package
  id to the ids it depends on; a package cannot be uninstalled while another
  installed package depends on it.
  """

  def __init__(
    self,
    packages: Optional[Dict[str, List[Tuple[str, str]]]] = None,
    dependencies: Optional[Dict[str, Set[str]]] = None
  ) -> None:
    self.packages = {name: list(entries) for name, entries in (packages or {}).items()}
    self.dependencies = dependencies or {}
    self.failures: Dict[str, Optional[int]] = {}
    self.uninstall_calls: List[Tuple[str, str]] = []
    self.installs: List[Tuple[str, str, str]] = []
    self.install_errors: Set[str] = set()
    self.restored: List[str] = []
    self.restore_errors: Set[str] = set()
    self.on_uninstall = None

  @property
  def services(self) -> PackageServices:
    return PackageServices(query=self, installer=self, uninstaller=self, restorer=self)

  def installed_packages(self, project) -> List[Tuple[str, str]]:
    return list(self.packages.get(project.name, []))

  def uninstall(self, project, package_id: str) -> UninstallResult:
    self.uninstall_calls.append((project.name, package_id))
    if self.on_uninstall:
      self.on_uninstall(project, package_id)
    if package_id in self.failures:
      remaining = self.failures[package_id]
      if remaining is None:
        return UninstallResult.failed('permanently broken')
      if remaining > 0:
        self.failures[package_id] = remaining - 1
        return UninstallResult.failed('file in use')
    installed = self.packages.get(project.name, [])
    dependents = [
      other for other, _ in installed
      if other != package_id and package_id in self.dependencies.get(other, set())
    ]
    if dependents:
      return UninstallResult.invalid_operation(f'{package_id} is required by {dependents}')
    self.packages[project.name] = [entry for entry in installed if entry[0] != package_id]
    return UninstallResult.removed()

  def install(self, project, package_id: str, version: str) -> None:
    if package_id in self.install_errors:
      raise RuntimeError(f'{package_id} not found in feed')
    self.installs.append((project.name, package_id, version))

  def restore(self, project) -> None:
    self.restored.append(project.name)
    if project.name in self.restore_errors:
      raise RuntimeError('restore failed')


@pytest.fixture
def fake_host() -> FakePackageHost:
  return FakePackageHost()


@pytest.fixture
def no_nuget(monkeypatch):
  """Pretend nuget is not installed so restore is a no-op."""
  monkeypatch.setattr('nuget_converter.hosts.packages.shutil.which', lambda name: None)
  monkeypatch.setattr('nuget_converter.config.settings.nuget_exe', None)


@pytest.fixture
def write_csproj(tmp_path: Path):
  """Write a legacy project file and return its path."""

  def _write(name: str, content: Optional[str] = None) -> Path:
    folder = tmp_path / name
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f'{name}.csproj'
    path.write_text(content if content is not None else LEGACY_CSPROJ.format(name=name), encoding='utf-8')
    return path

  return _write


def _nuspec(package_id: str, version: str, dependencies: Iterable[str]) -> str:
  deps = ''.join(f'<dependency id="{dep}" version="1.0" />' for dep in dependencies)
  return (
    '<?xml version="1.0"?>'
    '<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">'
    f'<metadata><id>{package_id}</id><version>{version}</version>'
    f'<dependencies>{deps}</dependencies></metadata></package>'
  )


@pytest.fixture
def disk_solution(tmp_path: Path):
  """Build a .sln with legacy projects on disk and return its path.

  ``projects`` maps a project name to its packages.config entries. Packages
  listed in ``dependencies`` get a nuspec in the solution packages folder.
  Projects named in ``missing`` get a packages.config but no project file.
  """

  def _build(
    projects: Dict[str, List[Tuple[str, str]]],
    dependencies: Optional[Dict[str, List[str]]] = None,
    missing: Iterable[str] = ()
  ) -> Path:
    lines = ['Microsoft Visual Studio Solution File, Format Version 12.00']
    lines.append(
      'Project("{2150E333-8FDC-42A3-9474-1A3956D46DE8}") = "Solution Items", "Solution Items", '
      '"{5D3C1F3A-0000-0000-0000-000000000001}"'
    )
    lines.append('EndProject')
    for index, (name, packages) in enumerate(projects.items()):
      lines.append(
        f'Project("{{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}}") = "{name}", "{name}\\{name}.csproj", '
        f'"{{5D3C1F3A-0000-0000-0000-00000000001{index}}}"'
      )
      lines.append('EndProject')
      folder = tmp_path / name
      folder.mkdir(parents=True, exist_ok=True)
      if name not in missing:
        (folder / f'{name}.csproj').write_text(LEGACY_CSPROJ.format(name=name), encoding='utf-8')
      entries = ''.join(
        f'  <package id="{package_id}" version="{version}" targetFramework="net472" />\n'
        for package_id, version in packages
      )
      (folder / 'packages.config').write_text(
        f'<?xml version="1.0" encoding="utf-8"?>\n<packages>\n{entries}</packages>\n',
        encoding='utf-8'
      )
      for package_id, version in packages:
        deps = (dependencies or {}).get(package_id)
        if deps is None:
          continue
        package_dir = tmp_path / 'packages' / f'{package_id}.{version}'
        package_dir.mkdir(parents=True, exist_ok=True)
        (package_dir / f'{package_id}.nuspec').write_text(_nuspec(package_id, version, deps), encoding='utf-8')
    solution = tmp_path / 'App.sln'
    solution.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return solution

  return _build
