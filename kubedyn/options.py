from typing import Any, Dict, Mapping, Optional, Union

JSON_CONTENT_TYPE = "application/json"


class PatchType:
    STRATEGIC_MERGE = "application/strategic-merge-patch+json"
    MERGE = "application/merge-patch+json"  # RFC 7386
    JSON = "application/json-patch+json"  # RFC 6902, body is a list of ops

    ALL = (STRATEGIC_MERGE, MERGE, JSON)


class RequestOptions:
    """
    Options for a single request. Instances are never modified: `merge()`
    returns a new instance.

    Merge precedence: for `method`, `body`, `json` and `timeout` the value of
    the right hand side wins when it is set (not None). `query` and `headers`
    are merged key by key, the right hand side winning on collisions.
    """

    fields = ("method", "query", "headers", "body", "json", "timeout")

    def __init__(
        self,
        *,
        method: Optional[str] = None,
        query: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        json: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.method = method
        self.query: Dict[str, Any] = dict(query or {})
        self.headers: Dict[str, str] = dict(headers or {})
        self.body = body
        self.json = json
        self.timeout = timeout

    def __repr__(self) -> str:
        return "<%s method=%r, query=%r, headers=%r, json=%r, timeout=%r>" % (
            self.__class__.__name__,
            self.method,
            self.query,
            list(self.headers.keys()),
            self.json,
            self.timeout,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RequestOptions):
            return NotImplemented

        return all(
            getattr(self, field) == getattr(other, field) for field in self.fields
        )

    @classmethod
    def coerce(
        cls, value: Union["RequestOptions", Mapping[str, Any], None]
    ) -> "RequestOptions":
        if value is None:
            return cls()

        if isinstance(value, RequestOptions):
            return value

        unknown = set(value.keys()) - set(cls.fields)
        if unknown:
            raise ValueError("Unknown request options: %s" % ", ".join(sorted(unknown)))

        return cls(**value)

    @property
    def cooked(self) -> bool:
        return self.json is not False

    @property
    def http_method(self) -> str:
        return self.method or "GET"

    def merge(
        self, other: Union["RequestOptions", Mapping[str, Any], None]
    ) -> "RequestOptions":
        other = self.coerce(other)

        def pick(field: str) -> Any:
            value = getattr(other, field)
            return value if value is not None else getattr(self, field)

        return RequestOptions(
            method=pick("method"),
            query={**self.query, **other.query},
            headers={**self.headers, **other.headers},
            body=pick("body"),
            json=pick("json"),
            timeout=pick("timeout"),
        )
