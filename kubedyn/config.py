import base64
import fnmatch
import logging
import os
import ssl
import tempfile
from typing import Any, Dict, List, Optional, Sequence

import yaml


def disp_secret(value: Optional[str]) -> str:
    if value is None:
        return "UNSET"

    return "[%s bytes]" % len(value)


class ExecCommand:
    """A client-go credential plugin: `users[].user.exec` in the kube config."""

    def __init__(
        self, *, command: str, args: Sequence[str], env: Dict[str, str]
    ) -> None:
        self.command = command
        self.args = list(args)
        self.env = env

    def __repr__(self) -> str:
        return "<%s command=%r, args=%r, env=%r>" % (
            self.__class__.__name__,
            self.command,
            self.args,
            sorted(self.env.keys()),
        )


class User:
    def __init__(
        self,
        *,
        name: str,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_cert_path: Optional[str] = None,
        client_key_path: Optional[str] = None,
        client_cert_data: Optional[str] = None,
        client_key_data: Optional[str] = None,
        exec: Optional[ExecCommand] = None,
    ) -> None:
        self.name = name
        self.token = token
        self.username = username
        self.password = password
        self.client_cert_path = client_cert_path
        self.client_key_path = client_key_path
        self.client_cert_data = client_cert_data
        self.client_key_data = client_key_data
        self.exec = exec

    def __repr__(self) -> str:
        return (
            "<%s name=%r, token=%s, username=%r, password=%s, "
            "client_cert_path=%r, client_key_path=%r, "
            "client_cert_data=%s, client_key_data=%s, exec=%r>"
        ) % (
            self.__class__.__name__,
            self.name,
            disp_secret(self.token),
            self.username,
            disp_secret(self.password),
            self.client_cert_path,
            self.client_key_path,
            disp_secret(self.client_cert_data),
            disp_secret(self.client_key_data),
            self.exec,
        )


class Cluster:
    def __init__(
        self,
        *,
        name: str,
        server: str,
        ca_cert_path: Optional[str] = None,
        ca_cert_data: Optional[str] = None,
        insecure_skip_tls_verify: bool = False,
    ) -> None:
        self.name = name
        self.server = server
        self.ca_cert_path = ca_cert_path
        self.ca_cert_data = ca_cert_data
        self.insecure_skip_tls_verify = insecure_skip_tls_verify

    def __repr__(self) -> str:
        return "<%s name=%r, server=%r, ca_cert_path=%r, ca_cert_data=%s>" % (
            self.__class__.__name__,
            self.name,
            self.server,
            self.ca_cert_path,
            disp_secret(self.ca_cert_data),
        )

    @property
    def base_url(self) -> str:
        # relative paths are resolved against the base, so it must end in '/'
        if self.server.endswith("/"):
            return self.server

        return self.server + "/"


class Context:
    def __init__(
        self,
        *,
        name: str,
        user: User,
        cluster: Cluster,
        namespace: Optional[str] = None,
    ) -> None:
        self.name = name
        self.user = user
        self.cluster = cluster
        self.namespace = namespace
        self.filepath: Optional[str] = None

        # host.company.com -> host
        self.short_name = name.split(".")[0]

    def __repr__(self) -> str:
        return "<%s name=%r, user=%r, cluster=%r, namespace=%r>" % (
            self.__class__.__name__,
            self.name,
            self.user,
            self.cluster,
            self.namespace,
        )

    @classmethod
    def from_server(
        cls,
        server: str,
        *,
        token: Optional[str] = None,
        ca_cert_path: Optional[str] = None,
        insecure_skip_tls_verify: bool = False,
    ) -> "Context":
        """Build a context without a kube config, eg. for `kubectl proxy`."""

        cluster = Cluster(
            name=server,
            server=server,
            ca_cert_path=ca_cert_path,
            insecure_skip_tls_verify=insecure_skip_tls_verify,
        )
        user = User(name="default", token=token)
        return cls(name=server, user=user, cluster=cluster)

    def create_ssl_context(self) -> Optional[ssl.SSLContext]:
        if not self.cluster.server.startswith("https:"):
            return None

        kwargs = {}

        if self.cluster.ca_cert_path:
            kwargs["cafile"] = self.cluster.ca_cert_path

        elif self.cluster.ca_cert_data:
            value = base64.b64decode(self.cluster.ca_cert_data)
            kwargs["cadata"] = value.decode()

        ssl_context = ssl.create_default_context(**kwargs)

        if self.cluster.insecure_skip_tls_verify:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        # The ssl lib only loads certs from files, so blobs are written into a
        # tempdir that is rwx only for the current user and gets removed as
        # soon as the chain is loaded.
        if self.user.client_cert_data and self.user.client_key_data:
            with tempfile.TemporaryDirectory(prefix="kubedyn.") as tempdir_name:
                cert_file_name = os.path.join(tempdir_name, "client.crt")
                key_file_name = os.path.join(tempdir_name, "client.key")

                with open(cert_file_name, "wb") as fl:
                    fl.write(base64.b64decode(self.user.client_cert_data))

                with open(key_file_name, "wb") as fl:
                    fl.write(base64.b64decode(self.user.client_key_data))

                ssl_context.load_cert_chain(
                    certfile=cert_file_name,
                    keyfile=key_file_name,
                )

        elif self.user.client_cert_path and self.user.client_key_path:
            ssl_context.load_cert_chain(
                certfile=self.user.client_cert_path,
                keyfile=self.user.client_key_path,
            )

        return ssl_context


class KubeConfigCollection:
    def __init__(self) -> None:
        self.contexts: Dict[str, Context] = {}

    def add_contexts(self, contexts: Sequence[Context]) -> None:
        # NOTE: a context defined in a later file shadows an earlier one
        for context in contexts:
            self.contexts[context.name] = context

    def get_context_names(self) -> List[str]:
        return sorted(self.contexts.keys())

    def get_context(self, name: str) -> Optional[Context]:
        return self.contexts.get(name)


class KubeConfigSelector:
    def __init__(self, *, collection: KubeConfigCollection) -> None:
        self.collection = collection

    def fnmatch_context(self, pattern: str) -> List[Context]:
        names = fnmatch.filter(self.collection.get_context_names(), pattern)
        objs = [self.collection.get_context(name) for name in names]
        return [ctx for ctx in objs if ctx]


class KubeConfigLoader:
    def __init__(
        self, *, config_dir="$HOME/.kube", config_var="KUBECONFIG", logger=None
    ) -> None:
        self.config_dir = config_dir
        self.config_var = config_var
        self.logger = logger or logging.getLogger("config-loader")

    def get_candidate_files(self) -> List[str]:
        # use config_var if set
        env_var = os.getenv(self.config_var)
        if env_var:
            filepaths = env_var.split(os.pathsep)
            return [fp.strip() for fp in filepaths if fp.strip()]

        # fall back on config_dir
        path = os.path.expandvars(self.config_dir)
        if not os.path.isdir(path):
            return []

        filepaths = [os.path.join(path, fn) for fn in sorted(os.listdir(path))]
        return [fp for fp in filepaths if os.path.isfile(fp)]

    def parse_cluster(self, dct: Dict[str, Any]) -> Optional[Cluster]:
        name = dct.get("name")
        obj = dct.get("cluster") or {}
        server = obj.get("server")

        # 'name' and 'server' are required attributes
        if not (name and server):
            return None

        return Cluster(
            name=name,
            server=server,
            ca_cert_path=obj.get("certificate-authority"),
            ca_cert_data=obj.get("certificate-authority-data"),
            insecure_skip_tls_verify=bool(obj.get("insecure-skip-tls-verify")),
        )

    def parse_exec(self, dct: Optional[Dict[str, Any]]) -> Optional[ExecCommand]:
        if not dct or not dct.get("command"):
            return None

        env = {item["name"]: item["value"] for item in dct.get("env") or []}
        return ExecCommand(command=dct["command"], args=dct.get("args") or [], env=env)

    def parse_user(self, dct: Dict[str, Any]) -> Optional[User]:
        name = dct.get("name")
        obj = dct.get("user") or {}

        # 'name' is the only required attribute
        if not name:
            return None

        return User(
            name=name,
            token=obj.get("token"),
            username=obj.get("username"),
            password=obj.get("password"),
            client_cert_path=obj.get("client-certificate"),
            client_key_path=obj.get("client-key"),
            client_cert_data=obj.get("client-certificate-data"),
            client_key_data=obj.get("client-key-data"),
            exec=self.parse_exec(obj.get("exec")),
        )

    def parse_context(
        self,
        clusters: Dict[str, Cluster],
        users: Dict[str, User],
        dct: Dict[str, Any],
    ) -> Optional[Context]:
        name = dct.get("name")
        obj = dct.get("context") or {}
        cluster_id = obj.get("cluster")
        user_id = obj.get("user")

        # 'name', 'cluster' and 'user' are required attributes
        if not all((name, cluster_id, user_id)):
            return None

        user = users.get(user_id)
        if user is None:
            self.logger.warning(
                "When parsing context %r could not find matching user %r",
                name,
                user_id,
            )

        cluster = clusters.get(cluster_id)
        if cluster is None:
            self.logger.warning(
                "When parsing context %r could not find matching cluster %r",
                name,
                cluster_id,
            )

        if user is None or cluster is None:
            return None

        return Context(
            name=name,
            user=user,
            cluster=cluster,
            namespace=obj.get("namespace"),
        )

    def load_file(self, filepath: str) -> List[Context]:
        with open(filepath, "rb") as fl:
            try:
                dct = yaml.load(fl, Loader=yaml.SafeLoader)
            except yaml.YAMLError:
                self.logger.warning("Failed to parse kube config as yaml: %s", filepath)
                return []

        if not isinstance(dct, dict) or dct.get("kind") != "Config":
            self.logger.warning("Kube config does not have kind: Config: %s", filepath)
            return []

        clust_list = [self.parse_cluster(clus) for clus in dct.get("clusters") or []]
        clusters = {cluster.name: cluster for cluster in clust_list if cluster}

        user_list = [self.parse_user(user) for user in dct.get("users") or []]
        users = {user.name: user for user in user_list if user}

        ctx_list = [
            self.parse_context(clusters, users, ctx)
            for ctx in dct.get("contexts") or []
        ]
        contexts = [ctx for ctx in ctx_list if ctx]

        for context in contexts:
            context.filepath = filepath

        return contexts

    def create_collection(self) -> KubeConfigCollection:
        collection = KubeConfigCollection()

        for filepath in self.get_candidate_files():
            collection.add_contexts(self.load_file(filepath))

        return collection


def get_selector() -> KubeConfigSelector:
    loader = KubeConfigLoader()
    collection = loader.create_collection()
    return KubeConfigSelector(collection=collection)
