"""Tests for TeamCity API client behavior with mocked HTTP."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from teamcity_exporter.config import Config
from teamcity_exporter.errors import ApiError, DataValidationError
from teamcity_exporter.teamcity_client import TeamCityClient


def _build_client(api_url: str = "http://teamcity.local:8111/") -> TeamCityClient:
    config = Config(api_url=api_url, api_login="exporter", api_password="secret", timeout_seconds=5)
    return TeamCityClient(config=config)


def _response(status_code: int, payload=None, reason: str = "OK", invalid_json: bool = False):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    if invalid_json:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload if payload is not None else {}
    return response


def _agent_item(agent_id: int, pool_name: str = "Default", os_name: str = "Linux") -> dict:
    return {
        "id": agent_id,
        "name": f"agent-{agent_id}",
        "enabled": True,
        "authorized": True,
        "connected": False,
        "pool": {"id": 0, "name": pool_name},
        "properties": {
            "count": 2,
            "property": [
                {"name": "teamcity.agent.jvm.os.name", "value": os_name},
                {"name": "teamcity.agent.linux.version", "value": "5.15"},
            ],
        },
    }


def test_session_uses_basic_auth_and_json_accept_header():
    """Verify the client authenticates with HTTP Basic and asks for JSON."""
    client = _build_client()

    assert isinstance(client._session.auth, requests.auth.HTTPBasicAuth)
    assert client._session.auth.username == "exporter"
    assert client._session.auth.password == "secret"
    assert client._session.headers["Accept"] == "application/json"


def test_get_json_resolves_route_with_query_against_base_url():
    """Verify routes carrying query strings are resolved relative to the base URL path."""
    client = _build_client("http://teamcity.local/tc/")
    client._session.get = Mock(return_value=_response(200, {"version": "2024.1"}))

    client._get_json("app/rest/agents?locator=compatible:(build:(id:42))")

    client._session.get.assert_called_once_with(
        "http://teamcity.local/tc/app/rest/agents?locator=compatible:(build:(id:42))",
        timeout=5,
    )


def test_get_json_non_200_raises_api_error_with_url_and_status():
    """Verify any status other than 200 is a hard failure naming the URL and status."""
    client = _build_client()
    client._session.get = Mock(return_value=_response(401, reason="Unauthorized"))

    with pytest.raises(ApiError) as excinfo:
        client._get_json("app/rest/server")

    assert "http://teamcity.local:8111/app/rest/server" in str(excinfo.value)
    assert "401 Unauthorized" in str(excinfo.value)


def test_get_json_invalid_json_raises_api_error():
    """Verify an undecodable body is reported as ApiError."""
    client = _build_client()
    client._session.get = Mock(return_value=_response(200, invalid_json=True))

    with pytest.raises(ApiError):
        client._get_json("app/rest/server")


def test_get_json_timeout_raises_api_error_without_retry():
    """Verify transport failures are raised once and never retried."""
    client = _build_client()
    client._session.get = Mock(side_effect=requests.Timeout("read timed out"))

    with pytest.raises(ApiError):
        client._get_json("app/rest/server")

    assert client._session.get.call_count == 1


def test_get_build_queue_parses_builds_and_count():
    """Verify queue listing returns the reported count and typed builds."""
    client = _build_client()
    client._get_json = Mock(
        return_value={
            "count": 2,
            "build": [
                {
                    "id": 42,
                    "waitReason": "Build dependencies have not been built yet",
                    "buildType": {"id": "P1_Build", "name": "Build", "projectId": "P1"},
                },
                {"id": 43},
            ],
        }
    )

    count, builds = client.get_build_queue()

    assert count == 2
    assert builds[0].id == 42
    assert builds[0].wait_reason == "Build dependencies have not been built yet"
    assert builds[0].build_type.project_id == "P1"
    assert builds[1].wait_reason == ""
    assert builds[1].build_type is None
    route = client._get_json.call_args.args[0]
    assert route.startswith("app/rest/buildQueue?fields=count")


def test_get_build_queue_without_count_uses_build_total():
    """Verify the queue size falls back to the number of listed builds."""
    client = _build_client()
    client._get_json = Mock(return_value={"build": [{"id": 1}, {"id": 2}, {"id": 3}]})

    count, builds = client.get_build_queue()

    assert count == 3
    assert len(builds) == 3


def test_get_compatible_agents_parses_pool_and_properties():
    """Verify compatible agents carry pool names and inlined properties."""
    client = _build_client()
    client._get_json = Mock(return_value={"agent": [_agent_item(7, pool_name="Linux Pool")]})

    agents = client.get_compatible_agents(42)

    assert len(agents) == 1
    assert agents[0].id == 7
    assert agents[0].pool.name == "Linux Pool"
    assert agents[0].os_name == "Linux"
    assert agents[0].connected is False
    assert "compatible:(build:(id:42))" in client._get_json.call_args.args[0]


def test_get_project_returns_parent_identifier():
    """Verify project detail exposes the direct parent project."""
    client = _build_client()
    client._get_json = Mock(return_value={"id": "P1", "parentProjectId": "P2"})

    project = client.get_project("P1")

    assert project.id == "P1"
    assert project.parent_project_id == "P2"
    client._get_json.assert_called_once_with("app/rest/projects/id:P1")


def test_get_project_without_parent_raises_data_validation_error():
    """Verify a non-root project missing its parent is rejected."""
    client = _build_client()
    client._get_json = Mock(return_value={"id": "P1"})

    with pytest.raises(DataValidationError):
        client.get_project("P1")


def test_list_agents_relaxes_default_filter():
    """Verify the fleet listing includes unauthorized, disabled and disconnected agents."""
    client = _build_client()
    client._get_json = Mock(return_value={"agent": [_agent_item(1), _agent_item(2)]})

    agents = client.list_agents()

    assert [agent.id for agent in agents] == [1, 2]
    route = client._get_json.call_args.args[0]
    assert "authorized:any" in route
    assert "enabled:any" in route
    assert "connected:any" in route


def test_list_running_builds_maps_agent_and_build_type():
    """Verify running builds expose the agent they occupy and their project."""
    client = _build_client()
    client._get_json = Mock(
        return_value={
            "build": [
                {"id": 100, "buildType": {"id": "P3_Build", "projectId": "P3"}, "agent": {"id": 5}},
                {"id": 101, "buildType": {"id": "P4_Build", "projectId": "P4"}},
            ]
        }
    )

    running = client.list_running_builds()

    assert running[0].agent_id == 5
    assert running[0].build_type.project_id == "P3"
    assert running[1].agent_id is None
