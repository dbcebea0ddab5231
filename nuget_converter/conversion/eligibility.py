from __future__ import annotations

from typing import List

from nuget_converter.conversion.host import Project, Solution, get_packages_config, get_project_json


def has_packages_config(project: Project) -> bool:
  return get_packages_config(project) is not None


def has_project_json(project: Project) -> bool:
  return get_project_json(project) is not None


def is_eligible(project: Project) -> bool:
  return has_packages_config(project) or has_project_json(project)


def eligible_projects(solution: Solution) -> List[Project]:
  return [project for project in solution.projects() if is_eligible(project)]


def needs_conversion(solution: Solution) -> bool:
  """True when any project still declares packages through a legacy manifest."""
  return any(is_eligible(project) for project in solution.projects())
