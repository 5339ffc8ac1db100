import argparse
import cmd
import shlex
import ssl
from typing import Any, Callable

from parlorctl.core.client import ChatClient, RequestFailed
from parlorctl.core.ports.render import Renderer


class ParlorCmd(cmd.Cmd):
    intro = "Entering parlorctl interactive mode. Type 'exit' or 'quit' to leave."
    prompt = "parlorctl> "

    def __init__(self, renderers: dict[str, Renderer], argv: list[str] | None = None) -> None:
        super().__init__()

        self._argparser = self._argparse(sorted(renderers))
        self._args = self._argparser.parse_args(argv)
        self._renderer = renderers[self._args.output]
        self._client = self._get_client()
        self._logged_in = False

    @property
    def args(self) -> argparse.Namespace:
        return self._args

    @property
    def client(self) -> ChatClient:
        return self._client

    @property
    def interactive(self) -> bool:
        return self._args.namespace is None

    def close(self) -> None:
        if self._client.connected:
            try:
                self._client.end_session()
            except (RequestFailed, OSError):
                self._client.close()

    def handle(self, func: Callable[..., Any], *arguments: Any) -> None:
        try:
            self._ensure_login()
            result = func(*arguments)
            if result is not None:
                print(self._renderer.render(result), end="")
        except (RequestFailed, ValueError, OSError) as ex:
            print(f"error: {ex}")

        if self._client.notifications:
            print(f"{len(self._client.notifications)} new message(s) waiting, use 'pull'")
            self._client.notifications.clear()

    def do_create(self, line):
        name = self._single(line, "name", "create <name>")
        if name is not None:
            self.handle(lambda: {"created": self._client.create_account(name)})

    def do_login(self, line):
        name = self._single(line, "name", "login <name>")
        if name is None:
            return

        def login():
            unread = self._client.login(name)
            self.prompt = f"parlorctl({name})> "
            return {"account": name, "unread": unread}

        self.handle(login)

    def do_delete(self, line):
        name = self._single(line, "name", "delete <name>")
        if name is None:
            return

        def delete():
            self._client.delete_account(name)
            return {"deleted": name}

        self.handle(delete)

    def do_list(self, line):
        argv = shlex.split(line) if line else []
        if len(argv) > 1:
            print("Usage: list [pattern]")
            return

        pattern = argv[0] if argv else getattr(self.args, "pattern", None) or ".*"
        self.handle(self._client.list_accounts, pattern)

    def do_send(self, line):
        argv = shlex.split(line) if line else []

        receiver = getattr(self.args, "receiver", None)
        body = getattr(self.args, "body", None)

        if self.interactive:
            if len(argv) != 2:
                print("Usage: send <receiver> <body>")
                return
            receiver, body = argv

        if receiver is None or body is None:
            print("Usage: send <receiver> <body>")
            return

        def send():
            self._client.send_message(receiver, body)
            return {"sent": receiver}

        self.handle(send)

    def do_pull(self, line):
        if line:
            print("Usage: pull")
            return
        self.handle(self._client.pull_messages)

    def do_heartbeat(self, line):
        self.handle(self._client.heartbeat)

    def do_exit(self, arg):
        return True

    def do_quit(self, arg):
        return True

    def do_EOF(self, arg):
        print()
        return True

    def emptyline(self) -> bool:
        return False

    def _single(self, line: str, attr: str, usage: str) -> str | None:
        value = line or getattr(self.args, attr, None)
        parts = shlex.split(value) if value else []

        if len(parts) != 1:
            print(f"Usage: {usage}")
            return None

        return parts[0]

    def _ensure_login(self) -> None:
        user = self._args.user
        if user is None or self._logged_in:
            return

        self._client.login(user)
        self._logged_in = True
        self.prompt = f"parlorctl({user})> "

    def _get_client(self) -> ChatClient:
        ssl_ctx = None
        if self._args.tls:
            ssl_ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
            if self._args.cafile:
                ssl_ctx.load_verify_locations(cafile=self._args.cafile)
            if self._args.certfile:
                ssl_ctx.load_cert_chain(self._args.certfile, self._args.keyfile)

        return ChatClient(self._args.host, self._args.port, ssl_ctx)

    @staticmethod
    def _argparse(outputs: list[str]) -> argparse.ArgumentParser:
        global_opts = argparse.ArgumentParser(prog="parlorctl")
        global_opts.add_argument("--host", default="127.0.0.1")
        global_opts.add_argument("--port", type=int, default=6262)
        global_opts.add_argument("--user", help="Log in as this account before the first command")
        global_opts.add_argument("--output", "-o", choices=outputs, default="yaml")
        global_opts.add_argument("--tls", action="store_true")
        global_opts.add_argument("--cafile")
        global_opts.add_argument("--certfile")
        global_opts.add_argument("--keyfile")

        sub = global_opts.add_subparsers(dest="namespace")

        create = sub.add_parser("create")
        create.add_argument("name")

        login = sub.add_parser("login")
        login.add_argument("name")

        delete = sub.add_parser("delete")
        delete.add_argument("name")

        listing = sub.add_parser("list")
        listing.add_argument("pattern", nargs="?", default=".*")

        send = sub.add_parser("send")
        send.add_argument("receiver")
        send.add_argument("body")

        sub.add_parser("pull")
        sub.add_parser("heartbeat")

        return global_opts
