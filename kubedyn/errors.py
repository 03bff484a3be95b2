import re
from typing import Any, Dict, Optional, Sequence


class KubeError(Exception):
    pass


class TransportError(KubeError):
    """The request could not be completed (network, DNS, TLS...)."""

    def __init__(self, method: str, url: str, cause: Exception) -> None:
        super().__init__("%s %s failed: %r" % (method, url, cause))

        self.method = method
        self.url = url
        self.cause = cause


class ApiError(KubeError):
    # too old resource version: 355452234 (358305898)
    rx = re.compile(r"too old resource version: \d+ \((\d+)\)")

    def __init__(self, status: Dict[str, Any]) -> None:
        super().__init__()

        self.status = status
        self.code: Optional[int] = status.get("code")
        self.reason: Optional[str] = status.get("reason")
        self.message: str = status.get("message") or ""

    def __repr__(self) -> str:
        return "%s(code=%r, reason=%r, message=%r)" % (
            self.__class__.__name__,
            self.code,
            self.reason,
            self.message,
        )

    def __str__(self) -> str:
        return self.__repr__()

    def is_retryable(self) -> bool:
        return self.code in (429, 500, 502, 503, 504)

    def is_resource_version_too_old(self) -> bool:
        return self.rx.search(self.message) is not None

    def extract_resource_version(self) -> int:
        match = self.rx.search(self.message)
        assert match is not None
        return int(match.group(1))


class DecodeError(KubeError, ValueError):
    """A watch line could not be decoded. Fatal for the stream."""

    def __init__(self, message: str, line: bytes) -> None:
        super().__init__("%s: %r" % (message, line[:200]))

        self.line = line


class DiscoveryError(KubeError):
    def __init__(self, message: str, failed: Sequence[str] = ()) -> None:
        super().__init__(message)

        self.failed = list(failed)


class ResolutionError(KubeError, LookupError):
    def __init__(self, api_name: str) -> None:
        super().__init__("API %r is not available on this server" % api_name)

        self.api_name = api_name
