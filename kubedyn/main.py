import argparse
import asyncio
import logging
import sys
from typing import Any, Optional, Sequence

from kubedyn.config import Context, get_selector
from kubedyn.discovery import Client, connect
from kubedyn.errors import KubeError
from kubedyn.resources import CollectionHandle
from kubedyn.tools.logs import configure_logging


def select_context(args: argparse.Namespace) -> Context:
    if args.server:
        return Context.from_server(
            args.server, token=args.token, insecure_skip_tls_verify=args.insecure
        )

    contexts = get_selector().fnmatch_context(args.context)
    if len(contexts) != 1:
        names = [ctx.name for ctx in contexts]
        raise SystemExit(
            "Expected exactly one context matching %r, found: %s" % (args.context, names)
        )

    return contexts[0]


def select_collection(client: Client, args: argparse.Namespace) -> CollectionHandle:
    api = client.group(args.group) if args.group else client.core
    resources = api.ns(args.namespace) if args.namespace else api

    collection = resources.collections.get(args.resource.lower())
    if collection is None:
        hint = "" if args.namespace else " (namespaced resources need --namespace)"
        raise SystemExit("No resource %r in %s%s" % (args.resource, api.name, hint))

    return collection


def format_name(obj: Any) -> str:
    metadata = (obj or {}).get("metadata") or {}
    name = metadata.get("name", "?")
    namespace = metadata.get("namespace")
    return f"{namespace}/{name}" if namespace else name


async def run_groups(client: Client, args: argparse.Namespace) -> None:
    for name in sorted(client.registry.keys()):
        if name:
            print(name)


async def run_list(client: Client, args: argparse.Namespace) -> None:
    collection = select_collection(client, args)
    result = await collection.list()

    for item in result.get("items") or []:
        print(format_name(item))


async def run_watch(client: Client, args: argparse.Namespace) -> None:
    collection = select_collection(client, args)

    async for event in collection.watch(args.resource_version):
        event.raise_for_error()
        print("%s %s" % (event.type.value, format_name(event.object)))


COMMANDS = {
    "groups": run_groups,
    "list": run_list,
    "watch": run_watch,
}


async def amain(args: argparse.Namespace) -> None:
    context = select_context(args)

    async with await connect(context, core_version=args.core_version) as client:
        await COMMANDS[args.command](client, args)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kubedyn")
    parser.add_argument(
        "--context",
        dest="context",
        action="store",
        default="*",
        help="Kube context to select - matched like a filesystem wildcard",
    )
    parser.add_argument(
        "--server",
        dest="server",
        action="store",
        help="Talk to this server instead of one from the kube config",
    )
    parser.add_argument("--token", dest="token", action="store")
    parser.add_argument("--insecure", dest="insecure", action="store_true")
    parser.add_argument("--core-version", dest="core_version", default="v1")
    parser.add_argument("-v", "--verbose", dest="verbose", action="store_true")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("groups", help="List the discovered apis")

    for command in ("list", "watch"):
        sub = subparsers.add_parser(command, help=f"{command.title()} objects")
        sub.add_argument("resource", help="Plural resource name, eg. pods")
        sub.add_argument("--group", dest="group", help="Api group, eg. apps/v1")
        sub.add_argument("-n", "--namespace", dest="namespace")

        if command == "watch":
            sub.add_argument("--resource-version", dest="resource_version")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = create_parser().parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        asyncio.run(amain(args))
    except KeyboardInterrupt:
        print("\nCtrl-C received")
    except KubeError as exc:
        sys.exit("error: %s" % exc)


if __name__ == "__main__":
    main()
