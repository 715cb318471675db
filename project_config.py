"""
Per-directory project settings (.tmporc) and automatic project detection
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

import config


class ProjectConfigError(Exception):
    pass


@dataclass
class ProjectConfig:
    project_name: str
    hourly_rate: Optional[float] = None
    description: Optional[str] = None
    path: Optional[Path] = None


def find_project_file(start: Optional[Path] = None) -> Optional[Path]:
    """Nearest .tmporc in ``start`` or any of its parents."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / config.PROJECT_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def find_git_root(start: Optional[Path] = None) -> Optional[Path]:
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / ".git").exists():
            return directory
    return None


def _parse_rate(raw: Optional[str], path: Path) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    try:
        rate = float(raw)
    except ValueError:
        raise ProjectConfigError(f"Invalid HOURLY_RATE '{raw}' in {path}")
    if rate < 0:
        raise ProjectConfigError(f"HOURLY_RATE cannot be negative in {path}")
    return rate


def load_project_file(path: Path) -> ProjectConfig:
    values = dotenv_values(path, interpolate=False)
    name = (values.get("PROJECT_NAME") or "").strip()
    if not name:
        # A .tmporc without a name still scopes the directory it lives in.
        name = path.parent.name
    return ProjectConfig(
        project_name=name,
        hourly_rate=_parse_rate(values.get("HOURLY_RATE"), path),
        description=(values.get("DESCRIPTION") or "").strip() or None,
        path=path,
    )


def detect_project(start: Optional[Path] = None) -> ProjectConfig:
    """Resolve the project for the working directory.

    Order: nearest .tmporc, then the enclosing git repository's name, then the
    directory name itself.
    """
    start = (start or Path.cwd()).resolve()

    project_file = find_project_file(start)
    if project_file is not None:
        return load_project_file(project_file)

    git_root = find_git_root(start)
    if git_root is not None:
        return ProjectConfig(project_name=git_root.name)

    return ProjectConfig(project_name=start.name or str(start))


def hourly_rates(start: Optional[Path] = None) -> Dict[str, float]:
    """Rates known from the .tmporc governing ``start``, keyed by project."""
    project_file = find_project_file(start)
    if project_file is None:
        return {}
    project = load_project_file(project_file)
    if project.hourly_rate is None:
        return {}
    return {project.project_name: project.hourly_rate}


def write_project_file(
    directory: Path,
    project_name: str,
    hourly_rate: Optional[float] = None,
    description: Optional[str] = None,
    force: bool = False,
) -> Path:
    path = directory / config.PROJECT_FILE_NAME
    if path.exists() and not force:
        raise ProjectConfigError(f"{path} already exists (use --force to overwrite)")

    project_name = project_name.strip()
    if not project_name:
        raise ProjectConfigError("Project name cannot be empty")

    lines = [f'PROJECT_NAME="{_escape(project_name)}"']
    if hourly_rate is not None:
        if hourly_rate < 0:
            raise ProjectConfigError("Hourly rate cannot be negative")
        lines.append(f"HOURLY_RATE={hourly_rate:g}")
    if description:
        lines.append(f'DESCRIPTION="{_escape(description)}"')

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')
