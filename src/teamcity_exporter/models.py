"""Domain models for TeamCity queue and agent data.

These dataclasses intentionally model only the subset of REST payload fields
that the aggregation engine needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

OS_NAME_PROPERTY = "teamcity.agent.jvm.os.name"

OS_WINDOWS = "Windows"
OS_LINUX = "Linux"
OS_OTHER = "Other"


def format_flag(value: bool) -> str:
    """Render a boolean as a Prometheus label value."""
    return "true" if value else "false"


@dataclass(slots=True)
class ServerInfo:
    """Represents the TeamCity server information used as reachability probe."""

    version: str
    start_time: str


@dataclass(slots=True)
class BuildType:
    """Represents the build configuration that owns a build."""

    id: str
    project_id: str
    name: str = ""


@dataclass(slots=True)
class QueuedBuild:
    """Represents one build waiting in the TeamCity build queue."""

    id: int
    wait_reason: str
    build_type: Optional[BuildType]


@dataclass(slots=True)
class RunningBuild:
    """Represents a build currently executing on an agent."""

    id: int
    build_type: Optional[BuildType]
    agent_id: Optional[int]


@dataclass(slots=True)
class Project:
    """Represents a project node and its direct parent."""

    id: str
    parent_project_id: str


@dataclass(slots=True)
class Pool:
    """Represents an agent pool."""

    id: Optional[int]
    name: str


@dataclass(slots=True)
class Agent:
    """Represents a build agent and the metadata used to classify it."""

    id: int
    name: str
    pool: Optional[Pool] = None
    enabled: bool = False
    authorized: bool = False
    connected: bool = False
    properties: Dict[str, str] = field(default_factory=dict)

    def pool_name(self, default: str) -> str:
        """Return the agent's pool name, substituting ``default`` when it is empty."""
        if self.pool is None or not self.pool.name:
            return default
        return self.pool.name

    @property
    def os_name(self) -> str:
        return self.properties.get(OS_NAME_PROPERTY, "")

    @property
    def inferred_os(self) -> str:
        """Infer the operating system from which version property the agent reports.

        The first match wins: a ``*windows.version`` key means Windows, otherwise a
        ``*linux.version`` key means Linux, otherwise ``Other``.
        """
        keys = [key.lower() for key in self.properties]
        if any(key.endswith("windows.version") for key in keys):
            return OS_WINDOWS
        if any(key.endswith("linux.version") for key in keys):
            return OS_LINUX
        return OS_OTHER


@dataclass(frozen=True, slots=True)
class QueueKey:
    """Composite key of the queue frequency table.

    The OS availability flags are ``None`` when the exporter runs without the
    extended queue key.
    """

    reason: str
    project: str
    build_id: int
    pool: str
    windows: Optional[bool] = None
    linux: Optional[bool] = None
    mac: Optional[bool] = None

    def label_values(self) -> Tuple[str, ...]:
        values: Tuple[str, ...] = (self.reason, self.project, str(self.build_id), self.pool)
        if self.windows is None:
            return values
        return values + (
            format_flag(self.windows),
            format_flag(bool(self.linux)),
            format_flag(bool(self.mac)),
        )


@dataclass(frozen=True, slots=True)
class FleetKey:
    """Composite key of the agent fleet frequency table."""

    pool: str
    os: str
    enabled: bool
    authorized: bool
    connected: bool
    project: str
    busy: bool

    def label_values(self) -> Tuple[str, ...]:
        return (
            self.pool,
            self.os,
            format_flag(self.enabled),
            format_flag(self.authorized),
            format_flag(self.connected),
            self.project,
            format_flag(self.busy),
        )
