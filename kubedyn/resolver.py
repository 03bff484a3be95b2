from typing import Optional


def resolve_api_name(group_name: str, version_name: Optional[str] = None) -> str:
    """
    Compute the registry key for a group and an optional version.

        resolve_api_name("apps", "v1")     -> "apps/v1"
        resolve_api_name("apps")           -> "apps"      (preferred version)
        resolve_api_name("", "v1")         -> "v1"        (core group)
        resolve_api_name("apps/v1")        -> "apps/v1"
        resolve_api_name("apps/v1", "v2")  -> "apps/v2"   (explicit version wins)
    """

    group_name = group_name or ""

    if "/" not in group_name:
        if group_name:
            return f"{group_name}/{version_name}" if version_name else group_name

        return version_name or ""

    if version_name:
        real_group_name = group_name.split("/", 1)[0]
        return f"{real_group_name}/{version_name}"

    return group_name
