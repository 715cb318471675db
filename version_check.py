"""
Release lookup used by ``tmpo --version``
"""

import re
from typing import Optional, Tuple

import requests

import config
from display import debug

__version__ = "0.4.0"


def latest_version(url: Optional[str] = None, timeout: float = 5) -> Optional[str]:
    """Fetch the newest published release tag, without a leading ``v``.

    Returns None when the lookup fails for any network, HTTP or payload
    reason; an update check never breaks the command that asked for it.
    """
    url = url or config.releases_url()
    try:
        response = requests.get(url, timeout=timeout, headers={"Accept": "application/vnd.github+json"})
        response.raise_for_status()
        tag = response.json().get("tag_name")
    except requests.exceptions.RequestException as e:
        debug(f"update check failed: {e}")
        return None
    except (ValueError, AttributeError) as e:
        debug(f"update check returned an unexpected payload: {e}")
        return None

    if not isinstance(tag, str) or not tag.strip():
        return None
    return tag.strip().lstrip("vV")


def _version_tuple(version: str) -> Optional[Tuple[int, ...]]:
    match = re.match(r"^v?(\d+(?:\.\d+)*)", version.strip())
    if not match:
        return None
    return tuple(int(part) for part in match.group(1).split("."))


def is_newer(latest: str, current: str) -> bool:
    """True when ``latest`` is a strictly higher release than ``current``.

    Development builds and unparsable versions are never reported as outdated.
    """
    latest_parts = _version_tuple(latest)
    current_parts = _version_tuple(current)
    if latest_parts is None or current_parts is None:
        return False
    width = max(len(latest_parts), len(current_parts))
    latest_parts += (0,) * (width - len(latest_parts))
    current_parts += (0,) * (width - len(current_parts))
    return latest_parts > current_parts
