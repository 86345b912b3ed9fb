import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

RAILWAY_GRAPHQL_URL = "https://backboard.railway.app/graphql/v2"
SUCCESS_STATUS = "SUCCESS"

logger = logging.getLogger("railway-status-proxy")

SERVICES_QUERY = """
query GetServices($after: String) {
  projects(first: 50, after: $after) {
    edges {
      node {
        id
        name
        services {
          edges {
            node {
              id
              name
              serviceInstances {
                edges {
                  node {
                    latestDeployment {
                      id
                      status
                      staticUrl
                      deploymentStopped
                    }
                  }
                }
              }
            }
          }
        }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""


# ----------------------
# Errors
# ----------------------
class RailwayAPIError(Exception):
    """Fetching service info from Railway failed."""


class GraphQLRequestError(RailwayAPIError):
    """The HTTP request to the GraphQL endpoint itself failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GraphQLQueryError(RailwayAPIError):
    """The endpoint answered but reported GraphQL errors."""

    def __init__(self, errors: Any):
        super().__init__(f"GraphQL errors: {json.dumps(errors)}")
        self.errors = errors


# ----------------------
# Records
# ----------------------
@dataclass(frozen=True)
class ServiceStatus:
    project_id: str
    project_name: str
    service_id: str
    service_name: str
    deployment_id: str
    status: str
    static_url: str
    deployment_stopped: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "projectName": self.project_name,
            "serviceId": self.service_id,
            "serviceName": self.service_name,
            "deploymentId": self.deployment_id,
            "status": self.status,
            "staticUrl": self.static_url,
            "deploymentStopped": self.deployment_stopped,
        }


@dataclass(frozen=True)
class Page:
    project_count: int
    services: Tuple[ServiceStatus, ...]
    has_next_page: bool
    end_cursor: Optional[str]


# ----------------------
# Parsing
# ----------------------
def _nodes(connection: Any) -> List[Dict[str, Any]]:
    """Return the non-null ``node`` objects of a GraphQL connection."""
    if not isinstance(connection, dict):
        return []
    edges = connection.get("edges")
    if not isinstance(edges, list):
        return []
    nodes = []
    for edge in edges:
        node = edge.get("node") if isinstance(edge, dict) else None
        if isinstance(node, dict):
            nodes.append(node)
    return nodes


def parse_page(payload: Dict[str, Any]) -> Page:
    """Flatten one decoded ``projects`` response into service records.

    Only the first instance of each service is considered. Services whose
    first instance has no latest deployment, or that have no instances at
    all, produce no record.
    """
    data = payload.get("data")
    projects = data.get("projects") if isinstance(data, dict) else None
    if not isinstance(projects, dict):
        projects = {}

    project_nodes = _nodes(projects)
    services = []
    for project in project_nodes:
        for service in _nodes(project.get("services")):
            instances = _nodes(service.get("serviceInstances"))
            if not instances:
                continue
            deployment = instances[0].get("latestDeployment")
            if not isinstance(deployment, dict):
                continue
            services.append(ServiceStatus(
                project_id=project.get("id"),
                project_name=project.get("name"),
                service_id=service.get("id"),
                service_name=service.get("name"),
                deployment_id=deployment.get("id"),
                status=deployment.get("status"),
                static_url=deployment.get("staticUrl"),
                deployment_stopped=bool(deployment.get("deploymentStopped")),
            ))

    page_info = projects.get("pageInfo")
    if not isinstance(page_info, dict):
        page_info = {}
    return Page(
        project_count=len(project_nodes),
        services=tuple(services),
        has_next_page=bool(page_info.get("hasNextPage")),
        end_cursor=page_info.get("endCursor"),
    )


# ----------------------
# Fetching
# ----------------------
def fetch_page(token: str, after: Optional[str], url: str = RAILWAY_GRAPHQL_URL,
               timeout: Optional[float] = None) -> Page:
    """Request one page of projects starting after ``after``."""
    try:
        resp = requests.post(
            url,
            json={"query": SERVICES_QUERY, "variables": {"after": after}},
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json"
            },
            timeout=timeout
        )
    except requests.RequestException as e:
        # Connection errors and timeouts are transport failures (502), not
        # internal errors, so they share the non-2xx error type.
        raise GraphQLRequestError(f"GraphQL request failed: {e}") from e

    if not resp.ok:
        raise GraphQLRequestError(
            f"GraphQL request failed: {resp.status_code} {resp.reason}, {resp.text}",
            status_code=resp.status_code,
            body=resp.text,
        )

    try:
        payload = resp.json()
    except ValueError as e:
        raise RailwayAPIError(f"Invalid JSON from GraphQL endpoint: {e}") from e
    if not isinstance(payload, dict):
        raise RailwayAPIError("Unexpected GraphQL response shape")

    if payload.get("errors") is not None:
        raise GraphQLQueryError(payload["errors"])

    return parse_page(payload)


def iter_pages(token: str, url: str = RAILWAY_GRAPHQL_URL,
               timeout: Optional[float] = None) -> Iterator[Page]:
    """Yield non-empty pages in order until the upstream runs out."""
    has_next_page = True
    cursor = None
    while has_next_page:
        page = fetch_page(token, cursor, url=url, timeout=timeout)
        # An empty page ends the walk even if hasNextPage is still set.
        if page.project_count == 0:
            return
        yield page
        has_next_page = page.has_next_page
        cursor = page.end_cursor


def get_railway_service_info(token: str, url: str = RAILWAY_GRAPHQL_URL,
                             timeout: Optional[float] = None) -> List[ServiceStatus]:
    """Collect the status of every deployed service visible to ``token``."""
    services: List[ServiceStatus] = []
    try:
        for page in iter_pages(token, url=url, timeout=timeout):
            services.extend(page.services)
    except RailwayAPIError as e:
        logger.exception("Error fetching service info: %s", e)
        raise
    logger.debug("Fetched %d service records", len(services))
    return services
