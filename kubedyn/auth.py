import json
import logging
import os
import subprocess
from datetime import datetime, timedelta
from typing import Optional, Union

import humanize
from aiohttp import BasicAuth
from dateutil.parser import parse as parse_date

from kubedyn.config import Context, ExecCommand
from kubedyn.tools.timekeeping import date_now


class BearerAuth(BasicAuth):
    """
    aiohttp only ships BasicAuth and does:

        def update_auth(self, auth: Optional[BasicAuth]) -> None:
            ...
            if not isinstance(auth, helpers.BasicAuth):

    So to slot into this API we need a subclass of BasicAuth.
    """

    def __new__(cls, token: str) -> "BearerAuth":
        return super().__new__(cls, token)  # type: ignore

    def __init__(self, token: str) -> None:
        self.token = token

    def encode(self) -> str:
        return f"Bearer {self.token}"


AuthBase = Union[BasicAuth, BearerAuth]


class AuthContainer:
    def __init__(
        self, *, auth: Optional[AuthBase], expiry_date: Optional[datetime] = None
    ) -> None:
        self.auth = auth
        self.expiry_date = expiry_date

    def has_expired(self) -> bool:
        if self.expiry_date is None:
            return False

        # Refresh a few minutes before the deadline to account for clock skew
        # between us and the API server.
        return date_now() >= (self.expiry_date - timedelta(minutes=5))


class AuthProvider:
    def __init__(self, context: Context, logger=None) -> None:
        self.context = context
        self.logger = logger or logging.getLogger("auth")

        self.container: Optional[AuthContainer] = None  # lazy attribute

    def run_exec_plugin(self, cmd: ExecCommand) -> AuthContainer:
        environ = dict(os.environ)
        environ.update(cmd.env)

        proc = subprocess.run(
            [cmd.command] + cmd.args,
            env=environ,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        stdout, stderr = proc.stdout.decode(), proc.stderr.decode()

        if proc.returncode != 0:
            self.logger.error(
                "Failed to obtain exec credentials:"
                "\nexit_code: %s\nstdout: <<<%s>>>\nstderr: <<<%s>>>",
                proc.returncode,
                stdout.strip(),
                stderr.strip(),
            )
            return AuthContainer(auth=None)

        status = json.loads(stdout).get("status") or {}
        token = status.get("token")
        expiry_date = None

        expiration = status.get("expirationTimestamp")
        if expiration:
            expiry_date = parse_date(expiration)
            self.logger.info(
                "[%s] Obtained exec credentials valid until: %s, will expire in: %s",
                self.context.short_name,
                expiry_date,
                humanize.naturaldelta(expiry_date - date_now()),
            )

        auth = BearerAuth(token=token) if token else None
        return AuthContainer(auth=auth, expiry_date=expiry_date)

    def create_container(self) -> AuthContainer:
        user = self.context.user

        if user.token:
            return AuthContainer(auth=BearerAuth(token=user.token))

        if user.username and user.password:
            auth = BasicAuth(login=user.username, password=user.password)
            return AuthContainer(auth=auth)

        if user.exec:
            return self.run_exec_plugin(user.exec)

        # client certs (if any) are part of the ssl context
        return AuthContainer(auth=None)

    def get_auth(self) -> Optional[AuthBase]:
        if self.container is None or self.container.has_expired():
            self.container = self.create_container()

        return self.container.auth
