import logging
from typing import Any, AsyncIterator, Mapping, Optional, Union

from kubedyn.events import WatchEvent
from kubedyn.options import RequestOptions
from kubedyn.status import translate_status
from kubedyn.transport import Transport
from kubedyn.watch import decode_watch_stream

OptionsArg = Union[RequestOptions, Mapping[str, Any], None]


class Requester:
    """
    The request primitive handed to every handle. Carries the options that
    apply to all of its requests; the options passed per call are merged on
    top of them.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        options: Optional[RequestOptions] = None,
        logger=None,
    ) -> None:
        self.transport = transport
        self.options = options or RequestOptions()
        self.logger = logger or logging.getLogger("requester")

    def with_options(self, extra: OptionsArg) -> "Requester":
        extra = RequestOptions.coerce(extra)

        # a body only makes sense for a single call
        if extra.body is not None:
            raise ValueError("Request body cannot be set through options()")

        return Requester(
            transport=self.transport,
            options=self.options.merge(extra),
            logger=self.logger,
        )

    async def request(self, path: str, options: OptionsArg = None) -> Any:
        merged = self.options.merge(options)
        response = await self.transport.request(path, merged)

        return translate_status(
            response.status, response.reason, response.body, cooked=merged.cooked
        )

    def watch(self, path: str, options: OptionsArg = None) -> AsyncIterator[WatchEvent]:
        merged = self.options.merge(options)
        return decode_watch_stream(self.transport.stream(path, merged))
