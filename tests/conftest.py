from typing import Any, Dict, List, Tuple

import pytest

from kubedyn.options import RequestOptions
from kubedyn.transport import Response, Transport

API_GROUPS = {
    "kind": "APIGroupList",
    "apiVersion": "v1",
    "groups": [
        {
            "name": "apps",
            "versions": [
                {"groupVersion": "apps/v1", "version": "v1"},
                {"groupVersion": "apps/v1beta1", "version": "v1beta1"},
            ],
            "preferredVersion": {"groupVersion": "apps/v1", "version": "v1"},
        },
        {
            "name": "rbac.authorization.k8s.io",
            "versions": [
                {"groupVersion": "rbac.authorization.k8s.io/v1", "version": "v1"},
            ],
            "preferredVersion": {
                "groupVersion": "rbac.authorization.k8s.io/v1",
                "version": "v1",
            },
        },
    ],
}

CORE_V1 = {
    "kind": "APIResourceList",
    "groupVersion": "v1",
    "resources": [
        {"name": "namespaces", "kind": "Namespace", "namespaced": False},
        {"name": "namespaces/status", "kind": "Namespace", "namespaced": False},
        {"name": "nodes", "kind": "Node", "namespaced": False},
        {"name": "pods", "kind": "Pod", "namespaced": True},
        {"name": "pods/log", "kind": "Pod", "namespaced": True},
        {"name": "endpoints", "kind": "Endpoints", "namespaced": True},
    ],
}

APPS_V1 = {
    "kind": "APIResourceList",
    "groupVersion": "apps/v1",
    "resources": [
        {"name": "deployments", "kind": "Deployment", "namespaced": True},
        {"name": "deployments/scale", "kind": "Scale", "namespaced": True},
    ],
}

APPS_V1BETA1 = {
    "kind": "APIResourceList",
    "groupVersion": "apps/v1beta1",
    "resources": [
        {"name": "deployments", "kind": "Deployment", "namespaced": True},
    ],
}

RBAC_V1 = {
    "kind": "APIResourceList",
    "groupVersion": "rbac.authorization.k8s.io/v1",
    "resources": [
        {"name": "clusterroles", "kind": "ClusterRole", "namespaced": False},
        {"name": "roles", "kind": "Role", "namespaced": True},
    ],
}


def not_found(path: str) -> Response:
    return Response(
        status=404,
        reason="Not Found",
        body={
            "apiVersion": "v1",
            "kind": "Status",
            "status": "Failure",
            "code": 404,
            "reason": "NotFound",
            "message": "the server could not find the requested resource: %s" % path,
        },
    )


class FakeTransport(Transport):
    """Answers from canned responses and records every call."""

    def __init__(self) -> None:
        self.responses: Dict[str, Any] = {}
        self.streams: Dict[str, List[bytes]] = {}
        self.calls: List[Tuple[str, RequestOptions]] = []
        self.closed = False

    def add(self, path: str, body: Any, status: int = 200, reason: str = "OK") -> None:
        self.responses[path] = Response(status=status, reason=reason, body=body)

    def add_error(self, path: str, exc: Exception) -> None:
        self.responses[path] = exc

    def add_stream(self, path: str, chunks: List[bytes]) -> None:
        self.streams[path] = chunks

    def last_call(self) -> Tuple[str, RequestOptions]:
        return self.calls[-1]

    async def request(self, path: str, options: RequestOptions) -> Response:
        self.calls.append((path, options))

        response = self.responses.get(path)
        if response is None:
            return not_found(path)

        if isinstance(response, Exception):
            raise response

        return response

    async def stream(self, path: str, options: RequestOptions):
        self.calls.append((path, options))

        for chunk in self.streams[path]:
            yield chunk

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    transport = FakeTransport()
    transport.add("apis", API_GROUPS)
    transport.add("api/v1", CORE_V1)
    transport.add("apis/apps/v1", APPS_V1)
    transport.add("apis/apps/v1beta1", APPS_V1BETA1)
    transport.add("apis/rbac.authorization.k8s.io/v1", RBAC_V1)
    return transport
