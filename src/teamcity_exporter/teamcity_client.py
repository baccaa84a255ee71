"""TeamCity REST API client for queue and agent data retrieval."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import requests
from requests.auth import HTTPBasicAuth

from .config import Config
from .errors import ApiError, DataValidationError
from .models import Agent, BuildType, Pool, Project, QueuedBuild, RunningBuild, ServerInfo

logger = logging.getLogger(__name__)

_AGENT_FIELDS = "id,href,name,enabled,authorized,connected,pool:(id,name),properties:(property:(name,value))"


class TeamCityClient:
    """Small, typed client for the TeamCity REST API.

    Every call issues exactly one GET. Failures are never retried; they are
    raised as ``ApiError`` and left to the caller to scope.
    """

    SERVER_ROUTE = "app/rest/server"
    BUILD_QUEUE_ROUTE = (
        "app/rest/buildQueue?fields=count,href,"
        "build:(id,waitReason,href,buildType:(id,href,name,projectName,projectId))"
    )
    QUEUED_BUILD_ROUTE = "app/rest/buildQueue/id:{build_id}"
    COMPATIBLE_AGENTS_ROUTE = "app/rest/agents?locator=compatible:(build:(id:{build_id}))&fields=agent:(" + _AGENT_FIELDS + ")"
    PROJECT_ROUTE = "app/rest/projects/id:{project_id}"
    AGENTS_ROUTE = (
        "app/rest/agents?locator=authorized:any,enabled:any,connected:any"
        "&fields=agent:(" + _AGENT_FIELDS + ")"
    )
    RUNNING_BUILDS_ROUTE = (
        "app/rest/builds?locator=running:true,defaultFilter:false"
        "&fields=build:(id,buildType:(id,name,projectId),agent:(id,name))"
    )

    def __init__(self, config: Config) -> None:
        """Initialize an authenticated TeamCity API client.

        Args:
            config: Validated runtime configuration including base URL and credentials.
        """
        self._config = config
        self._base_url = config.api_url
        self._timeout_seconds = config.timeout_seconds

        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(config.api_login, config.api_password)
        self._session.headers.update({"Accept": "application/json"})

    def _build_url(self, route: str) -> str:
        """Resolve a route, which may carry its own query string, against the base URL."""
        return urljoin(self._base_url, route)

    def _get_json(self, route: str) -> Dict[str, Any]:
        """Execute a single GET request and decode its JSON body.

        Raises:
            ApiError: If the request fails or times out, returns anything other
                than HTTP 200, or does not return a JSON object.
        """
        url = self._build_url(route)
        logger.debug("Requesting TeamCity endpoint", extra={"url": url})

        try:
            response = self._session.get(url, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise ApiError(f"TeamCity request failed: GET {url} ({exc})") from exc

        if response.status_code != 200:
            raise ApiError(
                f"Error requesting url: {url} ({response.status_code} {response.reason})"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(f"TeamCity API returned invalid JSON: GET {url}") from exc

        if not isinstance(payload, dict):
            raise ApiError(f"TeamCity API returned unexpected payload shape: GET {url}")

        return payload

    def _parse_build_type(self, item: Optional[Dict[str, Any]]) -> Optional[BuildType]:
        if not item or not item.get("projectId"):
            return None
        return BuildType(
            id=str(item.get("id", "")),
            project_id=str(item["projectId"]),
            name=str(item.get("name", "")),
        )

    def _parse_queued_build(self, item: Dict[str, Any]) -> QueuedBuild:
        build_id = item.get("id")
        if build_id is None:
            raise DataValidationError(f"TeamCity queued build payload is missing 'id': {item}")
        return QueuedBuild(
            id=int(build_id),
            wait_reason=str(item.get("waitReason") or ""),
            build_type=self._parse_build_type(item.get("buildType")),
        )

    def _parse_agent(self, item: Dict[str, Any]) -> Agent:
        agent_id = item.get("id")
        if agent_id is None:
            raise DataValidationError(f"TeamCity agent payload is missing 'id': {item}")

        pool_item = item.get("pool") or {}
        pool = None
        if pool_item:
            pool_id = pool_item.get("id")
            pool = Pool(
                id=int(pool_id) if pool_id is not None else None,
                name=str(pool_item.get("name") or ""),
            )

        properties: Dict[str, str] = {}
        for prop in (item.get("properties") or {}).get("property", []):
            name = prop.get("name")
            if name:
                properties[str(name)] = str(prop.get("value", ""))

        return Agent(
            id=int(agent_id),
            name=str(item.get("name", "")),
            pool=pool,
            enabled=bool(item.get("enabled", False)),
            authorized=bool(item.get("authorized", False)),
            connected=bool(item.get("connected", False)),
            properties=properties,
        )

    def get_server_info(self) -> ServerInfo:
        """Fetch server information; used as the per-scrape reachability probe."""
        payload = self._get_json(self.SERVER_ROUTE)
        return ServerInfo(
            version=str(payload.get("version", "")),
            start_time=str(payload.get("startTime", "")),
        )

    def get_build_queue(self) -> Tuple[int, List[QueuedBuild]]:
        """List queued builds with build type and project inlined.

        Returns:
            The reported queue size and the queued builds.
        """
        payload = self._get_json(self.BUILD_QUEUE_ROUTE)
        builds = [self._parse_queued_build(item) for item in payload.get("build", [])]
        count = payload.get("count")
        return (int(count) if count is not None else len(builds)), builds

    def get_queued_build(self, build_id: int) -> QueuedBuild:
        """Fetch a single queued build, used when the listing did not inline its build type."""
        payload = self._get_json(self.QUEUED_BUILD_ROUTE.format(build_id=build_id))
        return self._parse_queued_build(payload)

    def get_compatible_agents(self, build_id: int) -> List[Agent]:
        """List agents TeamCity reports as able to run the given queued build."""
        payload = self._get_json(self.COMPATIBLE_AGENTS_ROUTE.format(build_id=build_id))
        return [self._parse_agent(item) for item in payload.get("agent", [])]

    def get_project(self, project_id: str) -> Project:
        """Fetch a project and its direct parent identifier."""
        payload = self._get_json(self.PROJECT_ROUTE.format(project_id=project_id))
        parent_id = payload.get("parentProjectId")
        if not parent_id:
            raise DataValidationError(
                f"TeamCity project payload is missing 'parentProjectId': project_id={project_id}"
            )
        return Project(id=str(payload.get("id", project_id)), parent_project_id=str(parent_id))

    def list_agents(self) -> List[Agent]:
        """List every agent, including disabled, unauthorized and disconnected ones."""
        payload = self._get_json(self.AGENTS_ROUTE)
        return [self._parse_agent(item) for item in payload.get("agent", [])]

    def list_running_builds(self) -> List[RunningBuild]:
        """List builds currently running, with build type and agent inlined."""
        payload = self._get_json(self.RUNNING_BUILDS_ROUTE)
        running: List[RunningBuild] = []

        for item in payload.get("build", []):
            build_id = item.get("id")
            if build_id is None:
                continue
            agent_id = (item.get("agent") or {}).get("id")
            running.append(
                RunningBuild(
                    id=int(build_id),
                    build_type=self._parse_build_type(item.get("buildType")),
                    agent_id=int(agent_id) if agent_id is not None else None,
                )
            )

        return running
