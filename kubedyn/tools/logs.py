import logging
import os
from logging import Logger, LoggerAdapter, basicConfig, getLogger
from typing import Any, Mapping, Optional


def configure_logging(filename: Optional[str] = None, level: int = logging.INFO) -> None:
    if filename is not None:
        path = os.path.dirname(filename)
        if path and not os.path.exists(path):
            os.makedirs(path)

    basicConfig(
        level=level,
        format="%(asctime)-15s %(threadName)s %(levelname)s %(name)s %(message)s",
        filename=filename,
    )

    # tell noisy loggers to be quiet
    getLogger("asyncio").setLevel(logging.WARNING)


class CtxLogger(LoggerAdapter):
    def __init__(self, logger: Logger, extra: Mapping[str, Any], prefix: str) -> None:
        super().__init__(logger, extra)

        self.prefix = prefix

    def process(self, msg, kwargs):
        prefix = self.prefix % self.extra

        msg = f"{prefix}{msg}"
        return msg, kwargs


def get_ctx_logger(logger: Logger, context_name: str) -> CtxLogger:
    return CtxLogger(
        logger=logger,
        extra={"context": context_name},
        prefix="[%(context)s] ",
    )
