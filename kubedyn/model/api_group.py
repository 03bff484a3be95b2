from typing import Any, Dict, List

from kubedyn.resolver import resolve_api_name


class GroupVersion:
    """
    The kube object:

    {
      "name": "apiregistration.k8s.io",
      "versions": [
        {
          "groupVersion": "apiregistration.k8s.io/v1",
          "version": "v1"
        },
        {
          "groupVersion": "apiregistration.k8s.io/v1beta1",
          "version": "v1beta1"
        }
      ],
      "preferredVersion": {
        "groupVersion": "apiregistration.k8s.io/v1",
        "version": "v1"
      }
    }

    We treat each version as a GroupVersion. The core group has an empty name
    and lives under `api/` rather than `apis/`.
    """

    def __init__(self, *, name: str, version: str, preferred: bool = False) -> None:
        self.name = name
        self.version = version
        self.preferred = preferred

    def __repr__(self) -> str:
        return "<%s name=%r, version=%r, preferred=%r>" % (
            self.__class__.__name__,
            self.name,
            self.version,
            self.preferred,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GroupVersion):
            return NotImplemented

        return (self.name, self.version, self.preferred) == (
            other.name,
            other.version,
            other.preferred,
        )

    def __hash__(self) -> int:
        return hash((self.name, self.version))

    @property
    def is_core(self) -> bool:
        return not self.name

    @property
    def group_version(self) -> str:
        return resolve_api_name(self.name, self.version)

    @property
    def endpoint(self) -> str:
        # relative to the server base url
        if self.is_core:
            return f"api/{self.version}"

        return f"apis/{self.name}/{self.version}"


def core_group(version: str = "v1") -> GroupVersion:
    return GroupVersion(name="", version=version, preferred=True)


def parse_api_group_list(dct: Dict[str, Any]) -> List[GroupVersion]:
    # a proxy in front of the api server may answer with a 200 html page
    if not isinstance(dct, dict) or not isinstance(dct.get("groups", []), list):
        raise ValueError("Not an APIGroupList: %.200r" % (dct,))

    groups = []

    for item in dct.get("groups") or []:
        name = item["name"]
        preferred = (item.get("preferredVersion") or {}).get("version")

        for version_dct in item.get("versions") or []:
            version = version_dct["version"]
            group = GroupVersion(
                name=name,
                version=version,
                preferred=version == preferred,
            )
            groups.append(group)

    return groups
