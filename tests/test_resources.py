import pytest
from conftest import CORE_V1, FakeTransport

from kubedyn.errors import ApiError
from kubedyn.events import DiscoveryObserver, WatchEvent, WatchEventType
from kubedyn.model.api_group import GroupVersion, core_group
from kubedyn.model.api_resource import parse_api_resource_list
from kubedyn.options import PatchType
from kubedyn.requester import Requester
from kubedyn.resources import (
    ApiSurface,
    CollectionHandle,
    ResourceFactory,
    build_api_surface,
    discover_api_surface,
)


class RecordingObserver(DiscoveryObserver):
    def __init__(self) -> None:
        super().__init__()
        self.ignored = []

    def subresource_ignored(self, descriptor) -> None:
        self.ignored.append(descriptor.name)


@pytest.fixture
def requester(transport: FakeTransport) -> Requester:
    return Requester(transport=transport)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def core(requester, observer) -> ApiSurface:
    group = core_group("v1")
    descriptors = parse_api_resource_list(group, CORE_V1)
    return build_api_surface(group, descriptors, requester, observer)


class TestSurface:
    def test_cluster_scoped_resources_are_on_the_surface(self, core):
        assert isinstance(core["namespaces"], CollectionHandle)
        assert isinstance(core["namespace"], ResourceFactory)
        assert isinstance(core.nodes, CollectionHandle)
        assert core.name == "v1"

    def test_namespaced_resources_are_only_under_ns(self, core):
        assert "pods" not in core
        assert "pod" not in core
        with pytest.raises(AttributeError):
            core.pods

        resources = core.ns("x")
        assert isinstance(resources.pods, CollectionHandle)
        assert isinstance(resources.pod, ResourceFactory)
        assert resources.pods.path == "api/v1/namespaces/x/pods"

    def test_subresources_are_reported_and_skipped(self, core, observer):
        assert observer.ignored == ["namespaces/status", "pods/log"]
        assert "namespaces/status" not in core
        assert "pods/log" not in core.ns("x")

    def test_ns_returns_fresh_mappings(self, core):
        first = core.ns("a")
        second = core.ns("b")

        assert first is not core.ns("a")
        assert first.pods.path == "api/v1/namespaces/a/pods"
        assert second.pods.path == "api/v1/namespaces/b/pods"
        assert "pods" not in core

    def test_ns_requires_a_namespace(self, core):
        with pytest.raises(ValueError):
            core.ns("")

    def test_kind_wins_over_plural_on_collision(self, core):
        resources = core.ns("x")

        assert isinstance(resources["endpoints"], ResourceFactory)
        assert isinstance(resources.collections["endpoints"], CollectionHandle)

    def test_resource_lookup(self, core):
        assert core.resource("pods").kind == "Pod"
        assert core.resource("Pod").name == "pods"
        assert core.resource("pods/log").subresource == "log"
        assert core.resource("widgets") is None

    def test_group_paths(self, requester):
        group = GroupVersion(name="apps", version="v1", preferred=True)
        descriptors = parse_api_resource_list(
            group, {"resources": [{"name": "deployments", "kind": "Deployment", "namespaced": True}]}
        )
        surface = build_api_surface(group, descriptors, requester)

        handle = surface.ns("default").deployment("web")
        assert handle.path == "apis/apps/v1/namespaces/default/deployments/web"

    def test_item_access_reaches_entries_shadowed_by_attributes(self, requester):
        group = GroupVersion(name="iam.example.com", version="v1")
        descriptors = parse_api_resource_list(
            group,
            {
                "resources": [
                    {"name": "groups", "kind": "Group", "namespaced": False},
                    {"name": "items", "kind": "Item", "namespaced": False},
                ]
            },
        )
        surface = build_api_surface(group, descriptors, requester)

        assert isinstance(surface["group"], ResourceFactory)
        assert surface.group is group
        assert isinstance(surface["items"], CollectionHandle)
        assert callable(surface.items) and not isinstance(surface.items, CollectionHandle)
        assert surface["group"]("admins").path == "apis/iam.example.com/v1/groups/admins"
        assert isinstance(surface.groups, CollectionHandle)


class TestCollectionHandle:
    async def test_list(self, core, transport):
        transport.add("api/v1/namespaces", {"kind": "NamespaceList", "items": []})

        result = await core.namespaces.list({"limit": 5})

        path, options = transport.last_call()
        assert result == {"kind": "NamespaceList", "items": []}
        assert path == "api/v1/namespaces"
        assert options.method == "GET"
        assert options.query == {"limit": 5}

    async def test_create_and_deletecollection(self, core, transport):
        transport.add("api/v1/namespaces/x/pods", {"kind": "Pod"})
        pods = core.ns("x").pods

        await pods.create({"metadata": {"name": "p"}})
        assert transport.last_call()[1].method == "POST"
        assert transport.last_call()[1].body == {"metadata": {"name": "p"}}

        await pods.deletecollection({"labelSelector": "app=web"})
        assert transport.last_call()[1].method == "DELETE"
        assert transport.last_call()[1].query == {"labelSelector": "app=web"}

    async def test_failures_raise(self, core):
        with pytest.raises(ApiError) as exc_info:
            await core.ns("x").pods.list()

        assert exc_info.value.code == 404

    async def test_watch(self, core, transport):
        transport.add_stream(
            "api/v1/namespaces/x/pods",
            [b'{"type":"ADDED","object":{"a":1}}\n{"type":"DEL', b'ETED","object":{"a":2}}\n'],
        )

        events = [
            event
            async for event in core.ns("x").pods.watch("42", {"labelSelector": "app=web"})
        ]

        assert events == [
            WatchEvent(type=WatchEventType.ADDED, object={"a": 1}),
            WatchEvent(type=WatchEventType.DELETED, object={"a": 2}),
        ]
        path, options = transport.last_call()
        assert options.query == {
            "labelSelector": "app=web",
            "watch": "true",
            "resourceVersion": "42",
        }

    async def test_watch_fixes_the_watch_flag(self, core, transport):
        transport.add_stream("api/v1/nodes", [])

        events = [event async for event in core.nodes.watch(query={"watch": "false"})]

        assert events == []
        assert transport.last_call()[1].query == {"watch": "true"}

    async def test_watch_from_version_zero(self, core, transport):
        transport.add_stream("api/v1/nodes", [])

        assert [event async for event in core.nodes.watch(0)] == []
        assert transport.last_call()[1].query == {"watch": "true", "resourceVersion": "0"}

        assert [event async for event in core.nodes.watch("0")] == []
        assert transport.last_call()[1].query == {"watch": "true", "resourceVersion": "0"}

        assert [event async for event in core.nodes.watch("")] == []
        assert transport.last_call()[1].query == {"watch": "true"}

    def test_options_reject_a_body(self, core):
        with pytest.raises(ValueError):
            core.nodes.options({"body": {"x": 1}})

        with pytest.raises(ValueError):
            core.node("n1").options({"body": {"x": 1}})

    async def test_options_are_applied_to_every_call(self, core, transport):
        transport.add("api/v1/nodes", {"items": []})
        nodes = core.nodes.options({"headers": {"X-Trace": "1"}, "query": {"limit": 1}})

        await nodes.list({"continue": "abc"})

        options = transport.last_call()[1]
        assert options.headers == {"X-Trace": "1"}
        assert options.query == {"limit": 1, "continue": "abc"}

    async def test_options_do_not_override_the_method(self, core, transport):
        transport.add("api/v1/nodes", {"items": []})

        await core.nodes.options({"method": "DELETE"}).list()

        assert transport.last_call()[1].method == "GET"

    async def test_empty_options_are_equivalent(self, core, transport):
        transport.add("api/v1/nodes", {"items": []})

        await core.nodes.list({"limit": 1})
        plain = transport.last_call()
        await core.nodes.options({}).list({"limit": 1})

        assert transport.last_call() == plain

    async def test_raw_mode_skips_failure_checks(self, core, transport):
        transport.add("api/v1/nodes", "Unauthorized", status=401, reason="Unauthorized")

        result = await core.nodes.options({"json": False}).list()

        assert result == "Unauthorized"


class TestResourceHandle:
    async def test_get_and_delete(self, core, transport):
        transport.add("api/v1/namespaces/default", {"kind": "Namespace"})
        namespace = core.namespace("default")

        assert await namespace.get() == {"kind": "Namespace"}
        assert transport.last_call()[1].method == "GET"

        await namespace.delete({"gracePeriodSeconds": 0})
        assert transport.last_call()[1].method == "DELETE"
        assert transport.last_call()[1].query == {"gracePeriodSeconds": 0}

    async def test_create_posts_to_the_collection(self, core, transport):
        transport.add("api/v1/namespaces/x/pods", {"kind": "Pod"})
        body = {"spec": {"containers": []}}

        await core.ns("x").pod("web").create(body)

        path, options = transport.last_call()
        assert path == "api/v1/namespaces/x/pods"
        assert options.method == "POST"
        assert options.body == {"spec": {"containers": []}, "metadata": {"name": "web"}}
        # the caller's body is left alone
        assert body == {"spec": {"containers": []}}

    async def test_update_keeps_an_explicit_name(self, core, transport):
        transport.add("api/v1/namespaces/x/pods/web", {"kind": "Pod"})
        body = {"metadata": {"name": "other", "labels": {"a": "b"}}}

        await core.ns("x").pod("web").update(body)

        path, options = transport.last_call()
        assert path == "api/v1/namespaces/x/pods/web"
        assert options.method == "PUT"
        assert options.body["metadata"] == {"name": "other", "labels": {"a": "b"}}

    async def test_patch_defaults_to_strategic_merge(self, core, transport):
        transport.add("api/v1/nodes/n1", {"kind": "Node"})

        await core.node("n1").patch({"spec": {"unschedulable": True}})

        options = transport.last_call()[1]
        assert options.method == "PATCH"
        assert options.headers["Content-Type"] == PatchType.STRATEGIC_MERGE

    async def test_patch_with_content_type(self, core, transport):
        transport.add("api/v1/nodes/n1", {"kind": "Node"})
        ops = [{"op": "remove", "path": "/metadata/labels/a"}]

        await core.node("n1").patch(ops, PatchType.JSON, {"dryRun": "All"})

        options = transport.last_call()[1]
        assert options.headers["Content-Type"] == "application/json-patch+json"
        assert options.body == ops
        assert options.query == {"dryRun": "All"}

    async def test_patch_with_query_in_second_position(self, core, transport):
        transport.add("api/v1/nodes/n1", {"kind": "Node"})

        await core.node("n1").patch({"metadata": {}}, {"dryRun": "All"})

        options = transport.last_call()[1]
        assert options.headers["Content-Type"] == PatchType.STRATEGIC_MERGE
        assert options.query == {"dryRun": "All"}

    async def test_patch_rejects_unknown_content_types(self, core):
        with pytest.raises(ValueError):
            await core.node("n1").patch({}, "application/yaml")

    async def test_options(self, core, transport):
        transport.add("api/v1/nodes/n1", {"kind": "Node"})

        await core.node("n1").options({"timeout": 2}).get()

        assert transport.last_call()[1].timeout == 2

    async def test_empty_options_are_equivalent(self, core, transport):
        transport.add("api/v1/nodes/n1", {"kind": "Node"})
        node = core.node("n1")

        await node.get({"pretty": "true"})
        plain = transport.last_call()
        await node.options({}).get({"pretty": "true"})
        assert transport.last_call() == plain

        await node.patch({"metadata": {}}, PatchType.MERGE)
        plain = transport.last_call()
        await node.options({}).patch({"metadata": {}}, PatchType.MERGE)
        assert transport.last_call() == plain

    def test_factory_requires_a_name(self, core):
        with pytest.raises(ValueError):
            core.node("")


async def test_discover_api_surface(requester):
    group = GroupVersion(name="apps", version="v1", preferred=True)

    surface = await discover_api_surface(group, requester)

    assert surface.name == "apps/v1"
    assert "deployments" in surface.ns("default")


async def test_discover_api_surface_fails_on_missing_catalog(requester):
    group = GroupVersion(name="widgets.example.com", version="v1")

    with pytest.raises(ApiError):
        await discover_api_surface(group, requester)
