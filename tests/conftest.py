import json
from unittest.mock import patch

import pytest
import requests

from main import app as flask_app
from railway_client import RAILWAY_GRAPHQL_URL


def deployment(static_url, status="SUCCESS", deployment_id=None, stopped=False):
    return {
        "id": deployment_id or f"dep-{static_url}",
        "status": status,
        "staticUrl": static_url,
        "deploymentStopped": stopped,
    }


def service(service_id, name, *latest_deployments):
    """A service node; each positional deployment becomes one instance."""
    return {
        "id": service_id,
        "name": name,
        "serviceInstances": {
            "edges": [{"node": {"latestDeployment": d}} for d in latest_deployments]
        },
    }


def project(project_id, name, *services):
    return {
        "id": project_id,
        "name": name,
        "services": {"edges": [{"node": s} for s in services]},
    }


def page(*projects, has_next_page=False, end_cursor=None):
    return {
        "data": {
            "projects": {
                "edges": [{"node": p} for p in projects],
                "pageInfo": {"hasNextPage": has_next_page, "endCursor": end_cursor},
            }
        }
    }


def http_response(status_code=200, json_body=None, text=None, reason="OK"):
    resp = requests.Response()
    resp.status_code = status_code
    resp.reason = reason
    resp.url = RAILWAY_GRAPHQL_URL
    resp.encoding = "utf-8"
    body = text if text is not None else json.dumps(json_body)
    resp._content = body.encode("utf-8")
    return resp


class Upstream:
    """Builders for fake Railway GraphQL payloads."""

    deployment = staticmethod(deployment)
    service = staticmethod(service)
    project = staticmethod(project)
    page = staticmethod(page)
    response = staticmethod(http_response)


@pytest.fixture
def upstream():
    return Upstream


@pytest.fixture
def mock_post():
    with patch("railway_client.requests.post") as post:
        yield post


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    original = dict(flask_app.config)
    yield flask_app
    flask_app.config.clear()
    flask_app.config.update(original)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-token"}
