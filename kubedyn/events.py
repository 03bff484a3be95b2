import enum
import logging
from typing import Any

from kubedyn.errors import ApiError
from kubedyn.model.api_resource import ResourceDescriptor


class WatchEventType(enum.Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"
    BOOKMARK = "BOOKMARK"


class WatchEvent:
    def __init__(self, *, type: WatchEventType, object: Any) -> None:
        self.type = type
        self.object = object

    def __repr__(self) -> str:
        return "<%s type=%s, object=%r>" % (
            self.__class__.__name__,
            self.type.value,
            self.object,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WatchEvent):
            return NotImplemented

        return self.type is other.type and self.object == other.object

    def raise_for_error(self) -> None:
        # the server reports errors mid-stream as an ERROR event wrapping a Status
        if self.type is WatchEventType.ERROR and isinstance(self.object, dict):
            raise ApiError(self.object)


class DiscoveryObserver:
    """
    Receives diagnostics produced while building the client. Subclass it to
    collect or report them; the default implementation logs.
    """

    def __init__(self, logger=None) -> None:
        self.logger = logger or logging.getLogger("discovery")

    def subresource_ignored(self, descriptor: ResourceDescriptor) -> None:
        self.logger.debug(
            "Found unknown sub-resource %r of %r in %s, ignoring",
            descriptor.subresource,
            descriptor.parent_name,
            descriptor.group.group_version,
        )
