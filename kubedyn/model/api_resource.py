from typing import Any, Dict, List, Optional

from kubedyn.model.api_group import GroupVersion


class ResourceDescriptor:
    """Represents a REST resource available on the kube API server."""

    def __init__(
        self,
        *,
        group: GroupVersion,
        kind: str,
        name: str,
        namespaced: bool,
        verbs: Optional[List[str]] = None,
    ) -> None:
        self.group = group
        self.kind = kind
        self.name = name
        self.namespaced = namespaced
        self.verbs = verbs or []

    def __repr__(self) -> str:
        return "<%s group=%r, kind=%r, name=%r, namespaced=%r>" % (
            self.__class__.__name__,
            self.group.group_version,
            self.kind,
            self.name,
            self.namespaced,
        )

    # pods/log -> parent 'pods', subresource 'log'

    @property
    def is_subresource(self) -> bool:
        return "/" in self.name

    @property
    def parent_name(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def subresource(self) -> Optional[str]:
        if not self.is_subresource:
            return None

        return self.name.split("/", 1)[1]


def parse_api_resource_list(
    group: GroupVersion, dct: Dict[str, Any]
) -> List[ResourceDescriptor]:
    descriptors = []

    for item in dct.get("resources") or []:
        descriptor = ResourceDescriptor(
            group=group,
            kind=item["kind"],
            name=item["name"],
            namespaced=bool(item.get("namespaced")),
            verbs=item.get("verbs"),
        )
        descriptors.append(descriptor)

    return descriptors
