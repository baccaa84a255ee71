"""Top-level project resolution over the TeamCity project tree.

Each build is attributed to the project directly below ``_Root`` that
contains it. Parent links are fetched lazily and remembered in a memo owned by
a single scrape, so builds sharing ancestors cost one request per distinct
project.
"""

from __future__ import annotations

import logging
from typing import Dict, Set

from .errors import DataValidationError
from .teamcity_client import TeamCityClient

logger = logging.getLogger(__name__)

ROOT_PROJECT_ID = "_Root"


def resolve_top_project(client: TeamCityClient, project_id: str, memo: Dict[str, str]) -> str:
    """Return the ancestor of ``project_id`` whose parent is the root project.

    ``memo`` maps project identifiers to their direct parent and is filled in
    as unseen projects are fetched; existing entries are never overwritten.
    Callers only pass build-owned project identifiers, which are never the
    root project itself.

    Raises:
        ApiError: If fetching an unseen project fails.
        DataValidationError: If the parent links loop back on themselves.
    """
    current = project_id
    visited: Set[str] = set()

    while True:
        if current in visited:
            raise DataValidationError(f"Project ancestry of '{project_id}' contains a cycle at '{current}'")
        visited.add(current)

        parent = memo.get(current)
        if parent is None:
            project = client.get_project(current)
            parent = project.parent_project_id
            memo.setdefault(current, parent)
            logger.debug("Fetched project parent", extra={"project_id": current, "parent_id": parent})

        if parent == ROOT_PROJECT_ID:
            return current
        current = parent
