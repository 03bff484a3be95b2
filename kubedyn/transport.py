import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urljoin

import aiohttp
from aiohttp import ClientSession, ClientTimeout

from kubedyn.auth import AuthProvider
from kubedyn.config import Context
from kubedyn.errors import ApiError, TransportError
from kubedyn.options import JSON_CONTENT_TYPE, RequestOptions
from kubedyn.status import is_status_failure, synthesize_status
from kubedyn.tools.logs import get_ctx_logger


class Response:
    def __init__(
        self,
        *,
        status: int,
        reason: Optional[str],
        body: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.status = status
        self.reason = reason
        self.body = body
        self.headers = headers or {}

    def __repr__(self) -> str:
        return "<%s status=%r, reason=%r>" % (
            self.__class__.__name__,
            self.status,
            self.reason,
        )


class Transport:
    """
    Issues requests against one API server. Paths are relative to the server
    base url, eg. `api/v1/namespaces`.
    """

    async def request(self, path: str, options: RequestOptions) -> Response:
        raise NotImplementedError

    def stream(self, path: str, options: RequestOptions) -> AsyncIterator[bytes]:
        raise NotImplementedError

    async def close(self) -> None:
        pass


def encode_query(query: Dict[str, Any]) -> Dict[str, Any]:
    params = {}

    for key, value in query.items():
        if value is None:
            continue

        # aiohttp refuses bools, the api server wants them lowercase
        if isinstance(value, bool):
            value = "true" if value else "false"

        params[key] = value

    return params


def parse_body(text: str, cooked: bool) -> Any:
    if not cooked or not text:
        return text

    try:
        return json.loads(text)
    except ValueError:
        # eg. a plain text 401 from a proxy in front of the api server
        return text


class AiohttpTransport(Transport):
    def __init__(
        self,
        *,
        session: ClientSession,
        base_url: str,
        ssl_context=None,
        auth_provider: Optional[AuthProvider] = None,
        owns_session: bool = False,
        timeout: ClientTimeout = ClientTimeout(sock_connect=3, total=15),
        stream_timeout: ClientTimeout = ClientTimeout(sock_connect=3, total=None),
        context_name: Optional[str] = None,
        logger=None,
    ) -> None:
        self.session = session
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.ssl_context = ssl_context
        self.auth_provider = auth_provider
        self.owns_session = owns_session
        self.timeout = timeout
        self.stream_timeout = stream_timeout

        self.logger = logger or logging.getLogger("transport")
        self.log = get_ctx_logger(self.logger, context_name or self.base_url)

    @classmethod
    def create(
        cls, *, context: Context, session: Optional[ClientSession] = None, logger=None
    ) -> "AiohttpTransport":
        owns_session = session is None
        if session is None:
            session = ClientSession()

        return cls(
            session=session,
            base_url=context.cluster.base_url,
            ssl_context=context.create_ssl_context(),
            auth_provider=AuthProvider(context),
            owns_session=owns_session,
            context_name=context.short_name,
            logger=logger,
        )

    def url_for(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    def create_kwargs(self, options: RequestOptions, stream: bool) -> Dict[str, Any]:
        timeout = self.stream_timeout if stream else self.timeout
        if options.timeout is not None:
            timeout = ClientTimeout(sock_connect=timeout.sock_connect, total=options.timeout)

        headers = dict(options.headers)
        kwargs: Dict[str, Any] = dict(
            params=encode_query(options.query),
            headers=headers,
            timeout=timeout,
            allow_redirects=True,
        )

        if self.ssl_context is not None:
            kwargs["ssl"] = self.ssl_context

        if self.auth_provider is not None:
            kwargs["auth"] = self.auth_provider.get_auth()

        body = options.body
        if body is not None:
            if isinstance(body, (str, bytes)):
                kwargs["data"] = body
            else:
                kwargs["data"] = json.dumps(body)
                headers.setdefault("Content-Type", JSON_CONTENT_TYPE)

        return kwargs

    async def request(self, path: str, options: RequestOptions) -> Response:
        method = options.http_method
        url = self.url_for(path)
        kwargs = self.create_kwargs(options, stream=False)

        self.log.debug("%s %s", method, url)
        try:
            async with self.session.request(method, url, **kwargs) as response:
                text = await response.text()

                return Response(
                    status=response.status,
                    reason=response.reason,
                    body=parse_body(text, options.cooked),
                    headers=dict(response.headers),
                )

        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.log.warning("%s %s failed: %r", method, url, exc)
            raise TransportError(method, url, exc) from exc

    async def stream(self, path: str, options: RequestOptions) -> AsyncIterator[bytes]:
        method = options.http_method
        url = self.url_for(path)
        kwargs = self.create_kwargs(options, stream=True)

        self.log.info("Streaming %s %s", method, url)
        try:
            async with self.session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    text = await response.text()
                    failure = parse_body(text, cooked=True)

                    if not is_status_failure(failure):
                        failure = synthesize_status(response.status, response.reason, text)

                    raise ApiError(failure)

                async for chunk in response.content.iter_any():
                    yield chunk

            self.log.info("Stream on %s ended", url)

        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.log.warning("Streaming %s %s failed: %r", method, url, exc)
            raise TransportError(method, url, exc) from exc

    async def close(self) -> None:
        if self.owns_session:
            await self.session.close()
