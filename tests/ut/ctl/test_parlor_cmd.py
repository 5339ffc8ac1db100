from unittest.mock import Mock

import pytest

from parlor.core.models.message import Message
from parlorctl.core.client import ChatClient, RequestFailed
from parlorctl.core.cmd import ParlorCmd
from parlorctl.infra.format_renderer import JsonRenderer, YamlRenderer


RENDERERS = {"json": JsonRenderer(), "yaml": YamlRenderer()}


def make_cmd(*argv):
    cli = ParlorCmd(RENDERERS, list(argv))
    client = Mock(spec=ChatClient)
    client.notifications = []
    client.connected = True
    cli._client = client
    return cli, client


@pytest.mark.ut
def test_global_options():
    cli, _ = make_cmd("--host", "10.0.0.1", "--port", "7000", "-o", "json", "pull")

    assert cli.args.host == "10.0.0.1"
    assert cli.args.port == 7000
    assert cli.args.namespace == "pull"
    assert not cli.interactive


@pytest.mark.ut
def test_interactive_without_subcommand():
    cli, _ = make_cmd()

    assert cli.interactive


@pytest.mark.ut
def test_create_renders_result(capsys):
    cli, client = make_cmd("-o", "json")
    client.create_account.return_value = "alice"

    cli.onecmd("create alice")

    client.create_account.assert_called_once_with("alice")
    assert '"created": "alice"' in capsys.readouterr().out


@pytest.mark.ut
def test_login_updates_prompt(capsys):
    cli, client = make_cmd()
    client.login.return_value = True

    cli.onecmd("login bob")

    assert cli.prompt == "parlorctl(bob)> "
    assert "unread: true" in capsys.readouterr().out


@pytest.mark.ut
def test_send_interactive_usage(capsys):
    cli, client = make_cmd()

    cli.onecmd("send bob")

    client.send_message.assert_not_called()
    assert "Usage: send" in capsys.readouterr().out


@pytest.mark.ut
def test_send_quoted_body():
    cli, client = make_cmd()

    cli.onecmd('send bob "hello there"')

    client.send_message.assert_called_once_with("bob", "hello there")


@pytest.mark.ut
def test_send_from_namespace_arguments():
    cli, client = make_cmd("send", "bob", "hi")

    cli.onecmd("send")

    client.send_message.assert_called_once_with("bob", "hi")


@pytest.mark.ut
def test_user_option_logs_in_once():
    cli, client = make_cmd("--user", "alice")
    client.list_accounts.return_value = ["alice"]

    cli.onecmd("list")
    cli.onecmd("list a.*")

    client.login.assert_called_once_with("alice")
    assert [c.args for c in client.list_accounts.call_args_list] == [(".*",), ("a.*",)]


@pytest.mark.ut
def test_pull_renders_messages(capsys):
    cli, client = make_cmd("-o", "json")
    client.pull_messages.return_value = [Message("alice", "bob", "hi", read=True)]

    cli.onecmd("pull")

    assert '"from": "alice"' in capsys.readouterr().out


@pytest.mark.ut
def test_failure_is_printed(capsys):
    cli, client = make_cmd()
    client.delete_account.side_effect = RequestFailed("Account 'ghost' does not exist")

    cli.onecmd("delete ghost")

    assert capsys.readouterr().out == "error: Account 'ghost' does not exist\n"


@pytest.mark.ut
def test_notifications_are_reported(capsys):
    cli, client = make_cmd()
    client.heartbeat.return_value = None
    client.notifications.extend([object(), object()])

    cli.onecmd("heartbeat")

    assert "2 new message(s) waiting" in capsys.readouterr().out
    assert client.notifications == []


@pytest.mark.ut
def test_exit_and_close():
    cli, client = make_cmd()

    assert cli.onecmd("exit") is True
    cli.close()

    client.end_session.assert_called_once()
