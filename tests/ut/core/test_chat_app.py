import asyncio

import pytest

from tests.fake.fake_send_receive import FakeReceiveFrame, FakeSendFrame, HeldReceiveFrame
from tests.utils import opcodes, request, strings

from parlor.core.models.context import HandlerContext
from parlor.core.models.frame import Frame, Opcode
from parlor.core.routing.app import ChatApplication
from parlor.core.routing.handlers import dispatcher


@pytest.fixture
def app(directory, mailbox, presence):
    return ChatApplication(dispatcher, HandlerContext(directory, mailbox, presence))


async def serve(app, *frames):
    send = FakeSendFrame()
    await app(FakeReceiveFrame(frames), send)
    return send.sent


@pytest.mark.ut
@pytest.mark.asyncio
async def test_incompatible_version_sends_nothing(app):
    sent = await serve(
        app,
        request(Opcode.CREATE_ACCOUNT_REQUEST, "alice", version=2),
        request(Opcode.CREATE_ACCOUNT_REQUEST, "bob"),
    )

    assert sent == []
    assert not await app.context.directory.exists("alice")
    assert not await app.context.directory.exists("bob")


@pytest.mark.ut
@pytest.mark.asyncio
async def test_version_checked_on_first_frame_only(app):
    sent = await serve(
        app,
        request(Opcode.CREATE_ACCOUNT_REQUEST, "alice"),
        request(Opcode.CREATE_ACCOUNT_REQUEST, "bob", version=9),
    )

    assert opcodes(sent) == [Opcode.CREATE_ACCOUNT_SUCCESS] * 2


@pytest.mark.ut
@pytest.mark.asyncio
async def test_accepts_configured_versions(directory, mailbox, presence):
    app = ChatApplication(dispatcher, HandlerContext(directory, mailbox, presence), compatible_versions=[1, 2])

    sent = await serve(app, Frame(version=2, opcode=Opcode.END_SESSION_REQUEST))

    assert sent == [Frame.build(Opcode.END_SESSION_SUCCESS)]


@pytest.mark.ut
@pytest.mark.asyncio
async def test_full_conversation(app):
    sent = await serve(
        app,
        request(Opcode.CREATE_ACCOUNT_REQUEST, "alice"),
        request(Opcode.CREATE_ACCOUNT_REQUEST, "bob"),
        request(Opcode.SEND_MESSAGE_REQUEST, "bob", "alice", "hi alice"),
        request(Opcode.LOGIN_REQUEST, "alice"),
        Frame.build(Opcode.PULL_ALL_MESSAGES_REQUEST),
        Frame.build(Opcode.END_SESSION_REQUEST),
        request(Opcode.CREATE_ACCOUNT_REQUEST, "never"),
    )

    assert opcodes(sent) == [
        Opcode.CREATE_ACCOUNT_SUCCESS,
        Opcode.CREATE_ACCOUNT_SUCCESS,
        Opcode.SEND_MESSAGE_SUCCESS,
        Opcode.LOGIN_SUCCESS,
        Opcode.PULL_ALL_MESSAGES_SUCCESS,
        Opcode.PULL_ALL_MESSAGES_SUCCESS,
        Opcode.END_SESSION_SUCCESS,
    ]
    assert strings(sent[4], 3) == ("bob", "alice", "hi alice")
    assert not await app.context.directory.exists("never")


@pytest.mark.ut
@pytest.mark.asyncio
async def test_two_unknown_opcodes_end_session(app):
    sent = await serve(
        app,
        Frame(version=1, opcode=0xEE),
        Frame.build(Opcode.HEARTBEAT),
        Frame(version=1, opcode=0xEF),
        request(Opcode.CREATE_ACCOUNT_REQUEST, "alice"),
    )

    assert opcodes(sent) == [Opcode.UNKNOWN_OPCODE, Opcode.UNKNOWN_OPCODE, Opcode.END_SESSION_SUCCESS]
    assert not await app.context.directory.exists("alice")


@pytest.mark.ut
@pytest.mark.asyncio
async def test_malformed_payload_ends_session_silently(app):
    sent = await serve(
        app,
        Frame.build(Opcode.CREATE_ACCOUNT_REQUEST, b"\x00\x00\x00\x09abc"),
        request(Opcode.CREATE_ACCOUNT_REQUEST, "alice"),
    )

    assert sent == []
    assert not await app.context.directory.exists("alice")


@pytest.mark.ut
@pytest.mark.asyncio
async def test_presence_released_on_disconnect(app):
    await app.context.directory.create("alice")
    await app.context.mailbox.open("alice")

    await serve(app, request(Opcode.LOGIN_REQUEST, "alice"))

    assert not app.context.presence.is_online("alice")


@pytest.mark.ut
@pytest.mark.asyncio
async def test_push_reaches_other_connection(app):
    await app.context.directory.create("alice")
    await app.context.mailbox.open("alice")

    alice_send = FakeSendFrame()
    alice_receive = HeldReceiveFrame([request(Opcode.LOGIN_REQUEST, "alice")])
    alice = asyncio.create_task(app(alice_receive, alice_send))
    while not app.context.presence.is_online("alice"):
        await asyncio.sleep(0)

    bob_sent = await serve(app, request(Opcode.SEND_MESSAGE_REQUEST, "bob", "alice", "hey"))
    await app.context.presence.spawner.join()
    alice_receive.hang_up()
    await alice

    assert opcodes(bob_sent) == [Opcode.SEND_MESSAGE_SUCCESS]
    assert opcodes(alice_send.sent) == [Opcode.LOGIN_SUCCESS, Opcode.PUSH_MESSAGE_NOTIFICATION]
    assert alice_send.sent[1].payload == b""
