"""
Turns the resource catalog of one group-version into handles.

For every resource in the catalog the surface exposes:

    surface.namespaces                 collection handle (plural name)
    surface.namespace("kube-system")   singleton handle (lower cased kind)

Namespaced resources only show up under `surface.ns("default")`. Use item
access (`surface["group"]`) for names that clash with attributes of the
surface.
"""

import logging
from collections import abc
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from kubedyn.events import DiscoveryObserver, WatchEvent
from kubedyn.model.api_group import GroupVersion
from kubedyn.model.api_resource import ResourceDescriptor, parse_api_resource_list
from kubedyn.options import PatchType, RequestOptions
from kubedyn.requester import OptionsArg, Requester

Query = Optional[Mapping[str, Any]]


def join_path(*segments: Optional[str]) -> str:
    return "/".join(seg.strip("/") for seg in segments if seg)


def with_default_name(body: Optional[Mapping[str, Any]], name: str) -> Dict[str, Any]:
    # the name in the path and in the object have to agree, so fill it in if
    # the caller left it out
    merged = dict(body or {})
    metadata = dict(merged.get("metadata") or {})
    metadata.setdefault("name", name)
    merged["metadata"] = metadata
    return merged


class CollectionHandle:
    """Operations on all objects of one resource type."""

    def __init__(
        self, *, descriptor: ResourceDescriptor, path: str, requester: Requester
    ) -> None:
        self.descriptor = descriptor
        self.path = path
        self.requester = requester

    def __repr__(self) -> str:
        return "<%s path=%r>" % (self.__class__.__name__, self.path)

    def options(self, extra: OptionsArg = None) -> "CollectionHandle":
        return CollectionHandle(
            descriptor=self.descriptor,
            path=self.path,
            requester=self.requester.with_options(extra),
        )

    async def list(self, query: Query = None) -> Any:
        options = RequestOptions(method="GET", query=query)
        return await self.requester.request(self.path, options)

    async def create(self, body: Any, query: Query = None) -> Any:
        options = RequestOptions(method="POST", query=query, body=body)
        return await self.requester.request(self.path, options)

    async def deletecollection(self, query: Query = None) -> Any:
        options = RequestOptions(method="DELETE", query=query)
        return await self.requester.request(self.path, options)

    def watch(
        self, resource_version: Optional[Union[str, int]] = None, query: Query = None
    ) -> AsyncIterator[WatchEvent]:
        query = dict(query or {})
        query["watch"] = "true"
        # "0" is a real version, it means any version the server has cached
        if resource_version is not None and resource_version != "":
            query["resourceVersion"] = str(resource_version)

        options = RequestOptions(method="GET", query=query)
        return self.requester.watch(self.path, options)


class ResourceHandle:
    """Operations on one named object."""

    def __init__(
        self,
        *,
        descriptor: ResourceDescriptor,
        collection_path: str,
        name: str,
        requester: Requester,
    ) -> None:
        self.descriptor = descriptor
        self.collection_path = collection_path
        self.name = name
        self.requester = requester

    def __repr__(self) -> str:
        return "<%s path=%r>" % (self.__class__.__name__, self.path)

    @property
    def path(self) -> str:
        return join_path(self.collection_path, self.name)

    def options(self, extra: OptionsArg = None) -> "ResourceHandle":
        return ResourceHandle(
            descriptor=self.descriptor,
            collection_path=self.collection_path,
            name=self.name,
            requester=self.requester.with_options(extra),
        )

    async def get(self, query: Query = None) -> Any:
        options = RequestOptions(method="GET", query=query)
        return await self.requester.request(self.path, options)

    async def create(self, body: Any, query: Query = None) -> Any:
        # objects are created by posting to the collection
        body = with_default_name(body, self.name)
        options = RequestOptions(method="POST", query=query, body=body)
        return await self.requester.request(self.collection_path, options)

    async def update(self, body: Any, query: Query = None) -> Any:
        body = with_default_name(body, self.name)
        options = RequestOptions(method="PUT", query=query, body=body)
        return await self.requester.request(self.path, options)

    async def patch(self, body: Any, content_type: Any = None, query: Query = None) -> Any:
        # patch(body, {"dryRun": "All"}) passes the query in second position
        if isinstance(content_type, abc.Mapping):
            if query is not None:
                raise TypeError("patch() got a query both as content_type and query")
            content_type, query = None, content_type

        content_type = content_type or PatchType.STRATEGIC_MERGE
        if content_type not in PatchType.ALL:
            raise ValueError("Unsupported patch content type: %r" % content_type)

        options = RequestOptions(
            method="PATCH",
            query=query,
            body=body,
            headers={"Content-Type": content_type},
        )
        return await self.requester.request(self.path, options)

    async def delete(self, query: Query = None) -> Any:
        options = RequestOptions(method="DELETE", query=query)
        return await self.requester.request(self.path, options)


class ResourceFactory:
    """Callable returning the singleton handle for a name."""

    def __init__(
        self, *, descriptor: ResourceDescriptor, collection_path: str, requester: Requester
    ) -> None:
        self.descriptor = descriptor
        self.collection_path = collection_path
        self.requester = requester

    def __repr__(self) -> str:
        return "<%s path=%r>" % (self.__class__.__name__, self.collection_path)

    def __call__(self, name: str) -> ResourceHandle:
        if not name:
            raise ValueError("A %s needs a name" % self.descriptor.kind)

        return ResourceHandle(
            descriptor=self.descriptor,
            collection_path=self.collection_path,
            name=name,
            requester=self.requester,
        )


class ResourceMap(abc.Mapping):
    """
    Read only mapping of collection handles (by lower cased plural name) and
    resource factories (by lower cased kind). Entries are also reachable as
    attributes, unless the name is taken by an attribute or method of the
    map itself (`surface.group`, `surface.items`, ...). `surface["group"]`
    always returns the entry.

    When a plural and a kind collide (`endpoints` / `Endpoints`) the entry is
    the factory, the collection is still in `collections`.
    """

    def __init__(
        self,
        *,
        collections: Dict[str, CollectionHandle],
        singletons: Dict[str, ResourceFactory],
    ) -> None:
        self.collections = collections
        self.singletons = singletons
        self.entries: Dict[str, Any] = {**collections, **singletons}

    @classmethod
    def build(
        cls,
        *,
        group: GroupVersion,
        descriptors: Sequence[ResourceDescriptor],
        requester: Requester,
        prefix: Optional[str] = None,
    ) -> "ResourceMap":
        collections: Dict[str, CollectionHandle] = {}
        singletons: Dict[str, ResourceFactory] = {}

        for descriptor in descriptors:
            path = join_path(group.endpoint, prefix, descriptor.name)

            collections[descriptor.name.lower()] = CollectionHandle(
                descriptor=descriptor, path=path, requester=requester
            )
            singletons[descriptor.kind.lower()] = ResourceFactory(
                descriptor=descriptor, collection_path=path, requester=requester
            )

        return cls(collections=collections, singletons=singletons)

    def __getitem__(self, key: str) -> Any:
        return self.entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getattr__(self, name: str) -> Any:
        # only reached when regular attribute lookup fails
        entries = self.__dict__.get("entries") or {}
        try:
            return entries[name]
        except KeyError:
            raise AttributeError(
                "%r has no resource %r" % (self.__class__.__name__, name)
            ) from None


class ApiSurface(ResourceMap):
    """The handles of one group-version."""

    def __init__(
        self,
        *,
        group: GroupVersion,
        descriptors: Sequence[ResourceDescriptor],
        requester: Requester,
        observer: Optional[DiscoveryObserver] = None,
    ) -> None:
        observer = observer or DiscoveryObserver()

        cluster_scoped: List[ResourceDescriptor] = []
        namespaced: List[ResourceDescriptor] = []

        for descriptor in descriptors:
            if descriptor.is_subresource:
                # TODO: expose status, scale and log once handles for them exist
                observer.subresource_ignored(descriptor)
                continue

            if descriptor.namespaced:
                namespaced.append(descriptor)
            else:
                cluster_scoped.append(descriptor)

        top = ResourceMap.build(
            group=group, descriptors=cluster_scoped, requester=requester
        )
        super().__init__(collections=top.collections, singletons=top.singletons)

        self.group = group
        self.name = group.group_version
        self.descriptors = list(descriptors)
        self.namespaced = namespaced
        self.requester = requester

    def __repr__(self) -> str:
        return "<%s name=%r, resources=%r, namespaced=%r>" % (
            self.__class__.__name__,
            self.name,
            sorted(self.collections.keys()),
            sorted(desc.name for desc in self.namespaced),
        )

    def ns(self, namespace: str) -> ResourceMap:
        if not namespace:
            raise ValueError("Namespace must not be empty")

        return ResourceMap.build(
            group=self.group,
            descriptors=self.namespaced,
            requester=self.requester,
            prefix=f"namespaces/{namespace}",
        )

    def resource(self, name: str) -> Optional[ResourceDescriptor]:
        """Look up a descriptor by plural name (`pods`, `pods/log`) or kind."""

        lower = name.lower()

        for descriptor in self.descriptors:
            if descriptor.name.lower() == lower:
                return descriptor

        for descriptor in self.descriptors:
            if not descriptor.is_subresource and descriptor.kind.lower() == lower:
                return descriptor

        return None


def build_api_surface(
    group: GroupVersion,
    descriptors: Sequence[ResourceDescriptor],
    requester: Requester,
    observer: Optional[DiscoveryObserver] = None,
) -> ApiSurface:
    return ApiSurface(
        group=group, descriptors=descriptors, requester=requester, observer=observer
    )


async def discover_api_surface(
    group: GroupVersion,
    requester: Requester,
    observer: Optional[DiscoveryObserver] = None,
    logger=None,
) -> ApiSurface:
    logger = logger or logging.getLogger("discovery")

    logger.debug("Listing %s api resources on %s", group.group_version, group.endpoint)
    dct = await requester.request(group.endpoint)

    descriptors = parse_api_resource_list(group, dct)
    logger.debug("Found %s resources in %s", len(descriptors), group.group_version)

    return build_api_surface(group, descriptors, requester, observer)
