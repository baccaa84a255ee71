"""Aggregation of TeamCity queue and agent state into frequency tables.

One scrape fetches the build queue and, optionally, the agent fleet, and folds
them into two tables:

- the queue table, keyed by ``QueueKey``. A leaf records that a build had at
  least one compatible agent in a pool with a given OS availability shape, so
  its value is always 1 no matter how many agents match.
- the fleet table, keyed by ``FleetKey``. A leaf is a true tally of agents
  sharing all seven dimensions.

All requests run sequentially. Failures for a single build only drop that
build; failures of the reachability probe or the queue listing end the scrape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, Iterator, List, Optional, Tuple

from .ancestry import resolve_top_project
from .config import Config
from .errors import ExporterError
from .models import Agent, FleetKey, QueueKey, QueuedBuild, RunningBuild
from .teamcity_client import TeamCityClient

logger = logging.getLogger(__name__)

Observation = Tuple[Tuple[str, ...], int]


class FrequencyTable:
    """Flat mapping from a composite key to a count."""

    def __init__(self) -> None:
        self._counts: Dict[Hashable, int] = {}

    def mark(self, key: Hashable) -> None:
        """Record that ``key`` was seen; repeated marks keep the value at 1."""
        self._counts[key] = 1

    def increment(self, key: Hashable) -> None:
        self._counts[key] = self._counts.get(key, 0) + 1

    def get(self, key: Hashable) -> int:
        return self._counts.get(key, 0)

    def total(self) -> int:
        return sum(self._counts.values())

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, key: object) -> bool:
        return key in self._counts

    def observations(self) -> Iterator[Observation]:
        """Yield one ``(label_values, count)`` pair per entry, in no particular order.

        Keys must provide ``label_values()``. An empty table yields nothing.
        """
        for key, count in self._counts.items():
            yield key.label_values(), count  # type: ignore[attr-defined]


@dataclass
class Scrape:
    """Result of one pass over the TeamCity API."""

    up: bool
    queue_size: int = 0
    queue_table: FrequencyTable = field(default_factory=FrequencyTable)
    fleet_table: Optional[FrequencyTable] = None


def os_availability(agents: List[Agent]) -> Tuple[bool, bool, bool]:
    """Return whether any agent in the set runs Windows, Linux or macOS.

    Evaluated over the agents' OS-name property by substring match.
    """
    os_names = [agent.os_name for agent in agents]
    return (
        any("Windows" in name for name in os_names),
        any("Linux" in name for name in os_names),
        any("Mac" in name for name in os_names),
    )


def _with_build_type(client: TeamCityClient, build: QueuedBuild) -> Optional[QueuedBuild]:
    if build.build_type is not None:
        return build
    detailed = client.get_queued_build(build.id)
    if detailed.build_type is None:
        return None
    if not detailed.wait_reason:
        detailed.wait_reason = build.wait_reason
    return detailed


def build_queue_table(
    client: TeamCityClient,
    builds: List[QueuedBuild],
    memo: Dict[str, str],
    classify: Callable[[str], str],
    default_pool: str,
    os_flags: bool = True,
) -> FrequencyTable:
    """Fold queued builds into the queue frequency table.

    For each build the wait reason is classified, the owning project is
    resolved to its top-level ancestor and the compatible agents are fetched.
    A build whose lookups fail is logged and left out.
    """
    table = FrequencyTable()

    for queued in builds:
        try:
            build = _with_build_type(client, queued)
        except ExporterError as exc:
            logger.error("Can't get queued build details: %s", exc, extra={"build_id": queued.id})
            continue
        if build is None:
            logger.warning("Queued build has no build type", extra={"build_id": queued.id})
            continue

        if not build.wait_reason:
            logger.warning("Build has no wait reason", extra={"build_id": build.id})
        reason = classify(build.wait_reason)

        try:
            project = resolve_top_project(client, build.build_type.project_id, memo)
        except ExporterError as exc:
            logger.error("Can't get project info: %s", exc, extra={"build_id": build.id})
            continue

        try:
            agents = client.get_compatible_agents(build.id)
        except ExporterError as exc:
            logger.error("Can't get compatible agents: %s", exc, extra={"build_id": build.id})
            continue

        windows = linux = mac = None
        if os_flags:
            windows, linux, mac = os_availability(agents)

        for agent in agents:
            table.mark(
                QueueKey(
                    reason=reason,
                    project=project,
                    build_id=build.id,
                    pool=agent.pool_name(default_pool),
                    windows=windows,
                    linux=linux,
                    mac=mac,
                )
            )

    logger.debug("Built queue table", extra={"builds": len(builds), "entries": len(table)})
    return table


def build_fleet_table(client: TeamCityClient, memo: Dict[str, str], default_pool: str) -> FrequencyTable:
    """Tally all agents by pool, OS, state flags and the top project they are busy with.

    Raises:
        ExporterError: If the agent or running-build listing cannot be fetched.
    """
    agents = client.list_agents()
    running = client.list_running_builds()

    running_by_agent: Dict[int, RunningBuild] = {
        build.agent_id: build for build in running if build.agent_id is not None
    }

    table = FrequencyTable()
    for agent in agents:
        build = running_by_agent.get(agent.id)
        project = ""
        if build is not None and build.build_type is not None:
            try:
                project = resolve_top_project(client, build.build_type.project_id, memo)
            except ExporterError as exc:
                logger.warning(
                    "Can't resolve project of running build: %s",
                    exc,
                    extra={"agent_id": agent.id, "build_id": build.id},
                )

        table.increment(
            FleetKey(
                pool=agent.pool_name(default_pool),
                os=agent.inferred_os,
                enabled=agent.enabled,
                authorized=agent.authorized,
                connected=agent.connected,
                project=project,
                busy=build is not None,
            )
        )

    logger.debug("Built fleet table", extra={"agents": len(agents), "running_builds": len(running)})
    return table


def run_scrape(client: TeamCityClient, config: Config, classify: Callable[[str], str]) -> Scrape:
    """Run one complete scrape against the TeamCity API.

    The ancestry memo lives only for the duration of this call.
    """
    try:
        client.get_server_info()
    except ExporterError as exc:
        logger.error("TeamCity server is unreachable: %s", exc)
        return Scrape(up=False)

    try:
        queue_size, builds = client.get_build_queue()
    except ExporterError as exc:
        logger.error("Can't get build queue: %s", exc)
        return Scrape(up=False)

    memo: Dict[str, str] = {}
    scrape = Scrape(
        up=True,
        queue_size=queue_size,
        queue_table=build_queue_table(
            client,
            builds,
            memo,
            classify,
            default_pool=config.default_pool,
            os_flags=config.os_flags,
        ),
    )

    if config.collect_agents:
        try:
            scrape.fleet_table = build_fleet_table(client, memo, default_pool=config.default_pool)
        except ExporterError as exc:
            logger.error("Can't get agent fleet: %s", exc)

    return scrape
