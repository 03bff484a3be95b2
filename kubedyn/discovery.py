import asyncio
import enum
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

from kubedyn.config import Context
from kubedyn.errors import DiscoveryError, ResolutionError
from kubedyn.events import DiscoveryObserver
from kubedyn.model.api_group import GroupVersion, core_group, parse_api_group_list
from kubedyn.requester import OptionsArg, Requester
from kubedyn.resolver import resolve_api_name
from kubedyn.resources import ApiSurface, ResourceMap, discover_api_surface
from kubedyn.transport import AiohttpTransport, Transport


class ConnectionState(enum.Enum):
    DISCONNECTED = 1
    DISCOVERING = 2
    BUILDING_SURFACES = 3
    READY = 4
    FAILED = 5


class Client:
    """
    A connected client. The resources of the core group are available
    directly on the client:

        await client.namespaces.list()
        await client.ns("default").pods.list()
        await client.group("apps").ns("default").deployment("web").get()
    """

    def __init__(
        self,
        *,
        registry: Mapping[str, ApiSurface],
        core: ApiSurface,
        api_groups: Dict[str, Any],
        requester: Requester,
        owns_transport: bool = False,
    ) -> None:
        self.registry = MappingProxyType(dict(registry))
        self.core = core
        self.api_groups = api_groups
        self.requester = requester
        self.owns_transport = owns_transport

    def __repr__(self) -> str:
        return "<%s apis=%r>" % (self.__class__.__name__, sorted(self.registry.keys()))

    def group(self, group_name: str, version_name: Optional[str] = None) -> ApiSurface:
        api_name = resolve_api_name(group_name, version_name)

        api = self.registry.get(api_name)
        if api is None:
            raise ResolutionError(api_name)

        return api

    def ns(self, namespace: str) -> ResourceMap:
        return self.core.ns(namespace)

    def resource(self, name: str):
        return self.core.resource(name)

    def __getitem__(self, key: str) -> Any:
        return self.core[key]

    def __contains__(self, key: object) -> bool:
        return key in self.core

    def __getattr__(self, name: str) -> Any:
        core = self.__dict__.get("core")
        if core is None:
            raise AttributeError(name)

        try:
            return core[name]
        except KeyError:
            raise AttributeError(
                "Core api %r has no resource %r" % (core.name, name)
            ) from None

    async def request(self, path: str, options: OptionsArg = None) -> Any:
        """Raw access for anything the discovered handles don't cover."""

        return await self.requester.request(path, options)

    async def close(self) -> None:
        if self.owns_transport:
            await self.requester.transport.close()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class Discoverer:
    def __init__(
        self,
        *,
        requester: Requester,
        core_version: str = "v1",
        observer: Optional[DiscoveryObserver] = None,
        owns_transport: bool = False,
        logger=None,
    ) -> None:
        self.requester = requester
        self.core_version = core_version
        self.owns_transport = owns_transport
        self.logger = logger or logging.getLogger("discovery")
        self.observer = observer or DiscoveryObserver(logger=self.logger)

        self.state = ConnectionState.DISCONNECTED

    def set_state(self, state: ConnectionState) -> None:
        self.logger.debug("Discovery state %s -> %s", self.state.name, state.name)
        self.state = state

    async def list_api_groups(self) -> Dict[str, Any]:
        self.logger.info("Listing api groups")
        return await self.requester.request("apis")

    async def build_surfaces(self, groups: Sequence[GroupVersion]) -> List[ApiSurface]:
        coros = [
            discover_api_surface(group, self.requester, self.observer, self.logger)
            for group in groups
        ]

        # let every build settle before deciding anything
        results = await asyncio.gather(*coros, return_exceptions=True)

        failed = [
            (group, result)
            for group, result in zip(groups, results)
            if isinstance(result, BaseException)
        ]
        if failed:
            for group, exc in failed:
                self.logger.error(
                    "Failed to discover api %s: %r", group.group_version, exc
                )

            names = [group.group_version for group, _ in failed]
            raise DiscoveryError(
                "Failed to discover apis: %s" % ", ".join(names), failed=names
            ) from failed[0][1]

        return [result for result in results if isinstance(result, ApiSurface)]

    def create_registry(self, surfaces: Sequence[ApiSurface]) -> Dict[str, ApiSurface]:
        registry: Dict[str, ApiSurface] = {}

        for surface in surfaces:
            group = surface.group
            registry[resolve_api_name(group.name, group.version)] = surface

            # the bare group name points to the preferred version, for the
            # core group that is the empty string
            if group.preferred:
                registry[resolve_api_name(group.name)] = surface

        return registry

    async def run(self) -> Client:
        self.set_state(ConnectionState.DISCOVERING)
        try:
            api_groups = await self.list_api_groups()
            discovered = parse_api_group_list(api_groups)
        except Exception as exc:
            self.set_state(ConnectionState.FAILED)
            self.logger.error("Failed to list api groups: %r", exc)
            raise DiscoveryError("Failed to list api groups: %s" % exc) from exc

        core = core_group(self.core_version)
        groups = discovered + [core]

        self.set_state(ConnectionState.BUILDING_SURFACES)
        try:
            surfaces = await self.build_surfaces(groups)
        except DiscoveryError:
            self.set_state(ConnectionState.FAILED)
            raise

        registry = self.create_registry(surfaces)
        core_surface = registry[core.group_version]

        self.set_state(ConnectionState.READY)
        self.logger.info("Discovered %s apis", len(surfaces))

        return Client(
            registry=registry,
            core=core_surface,
            api_groups=api_groups,
            requester=self.requester,
            owns_transport=self.owns_transport,
        )


async def connect(
    context: Optional[Context] = None,
    *,
    core_version: str = "v1",
    transport: Optional[Transport] = None,
    observer: Optional[DiscoveryObserver] = None,
    logger=None,
) -> Client:
    """
    Discover the api server behind `context` and return a client for it.
    Either everything is discovered or DiscoveryError is raised.
    """

    owns_transport = transport is None
    if transport is None:
        if context is None:
            raise ValueError("Need a context or a transport to connect")

        transport = AiohttpTransport.create(context=context)

    requester = Requester(transport=transport)
    discoverer = Discoverer(
        requester=requester,
        core_version=core_version,
        observer=observer,
        owns_transport=owns_transport,
        logger=logger,
    )

    try:
        return await discoverer.run()
    except BaseException:
        if owns_transport:
            await transport.close()
        raise
