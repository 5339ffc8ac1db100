import logging
from contextlib import aclosing
from typing import AsyncIterator

from parlor.core.codec.payload import PayloadReader, PayloadWriter, pack_strings, unpack_strings
from parlor.core.errors import AccountExists, AccountNotFound, RequestRejected, UnknownReceiver
from parlor.core.models.context import HandlerContext
from parlor.core.models.frame import Frame, Opcode
from parlor.core.models.message import Message
from parlor.core.models.session import Session
from parlor.core.routing.dispatcher import Dispatcher


dispatcher = Dispatcher()
logger = logging.getLogger("core.routing.handlers")


@dispatcher.request(Opcode.CREATE_ACCOUNT_REQUEST, failure=Opcode.CREATE_ACCOUNT_FAILURE)
async def create_account(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    (name,) = unpack_strings(frame.payload, 1)

    # the mailbox must exist before the name is visible to senders
    await context.mailbox.open(name)
    try:
        await context.directory.create(name)
    except AccountExists:
        raise
    except Exception:
        await context.mailbox.drop(name)
        raise
    logger.info(f"Account '{name}' created")

    yield Frame.build(Opcode.CREATE_ACCOUNT_SUCCESS, pack_strings(name))


@dispatcher.request(Opcode.LOGIN_REQUEST, failure=Opcode.LOGIN_FAILURE)
async def login(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    (name,) = unpack_strings(frame.payload, 1)

    if not await context.directory.exists(name):
        raise AccountNotFound(name)

    session.login(name)
    if context.send is not None:
        context.presence.register(name, context.connection_id, context.send)

    unread = await context.mailbox.has_unread(name)
    payload = PayloadWriter().string(name).boolean(unread).getvalue()

    yield Frame.build(Opcode.LOGIN_SUCCESS, payload)


@dispatcher.request(Opcode.DELETE_ACCOUNT_REQUEST, failure=Opcode.DELETE_ACCOUNT_FAILURE)
async def delete_account(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    (name,) = unpack_strings(frame.payload, 1)

    await context.directory.delete(name)
    await context.mailbox.drop(name)
    context.presence.forget(name)
    if session.account_name == name:
        session.logout()
    logger.info(f"Account '{name}' deleted")

    yield Frame.build(Opcode.DELETE_ACCOUNT_SUCCESS)


@dispatcher.request(Opcode.LIST_ALL_ACCOUNTS_REQUEST, failure=Opcode.LIST_ALL_ACCOUNTS_FAILURE)
async def list_accounts(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    """
    Answer with an empty SUCCESS frame, one SUCCESS frame per matching
    name, then an empty SUCCESS frame closing the listing.
    """
    (pattern,) = unpack_strings(frame.payload, 1)

    names = await context.directory.list(pattern)
    yield Frame.build(Opcode.LIST_ALL_ACCOUNTS_SUCCESS)

    count = 0
    async with aclosing(names):
        async for name in names:
            count += 1
            yield Frame.build(Opcode.LIST_ALL_ACCOUNTS_SUCCESS, pack_strings(name))

    logger.debug(f"Listed {count} account(s) matching '{pattern}'")
    yield Frame.build(Opcode.LIST_ALL_ACCOUNTS_SUCCESS)


@dispatcher.request(Opcode.SEND_MESSAGE_REQUEST, failure=Opcode.SEND_MESSAGE_FAILURE)
async def send_message(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    sender, receiver, body = unpack_strings(frame.payload, 3)

    if not await context.directory.exists(receiver):
        raise UnknownReceiver(receiver)
    if not body:
        raise RequestRejected("Message body is empty")
    if len(body) > context.max_message_length:
        raise RequestRejected(
            f"Message exceeds the maximum length of {context.max_message_length} characters"
        )

    await context.mailbox.append(receiver, Message(sender=sender, receiver=receiver, body=body))
    context.presence.notify(receiver, Frame.build(Opcode.PUSH_MESSAGE_NOTIFICATION))

    yield Frame.build(Opcode.SEND_MESSAGE_SUCCESS)


@dispatcher.request(Opcode.PULL_ALL_MESSAGES_REQUEST, failure=Opcode.PULL_ALL_MESSAGES_FAILURE)
async def pull_messages(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    """
    Stream every unread message of the logged-in account as a SUCCESS
    frame carrying (sender, receiver, body), in send order, then close
    with an empty SUCCESS frame.
    """
    PayloadReader(frame.payload).finish()

    account = session.account_name
    if account is None:
        raise RequestRejected("Not logged in, send LOGIN_REQUEST first")
    if not await context.directory.exists(account):
        raise AccountNotFound(account)

    count = 0
    async with aclosing(context.mailbox.pull_unread(account)) as messages:
        async for message in messages:
            count += 1
            yield Frame.build(
                Opcode.PULL_ALL_MESSAGES_SUCCESS,
                pack_strings(message.sender, message.receiver, message.body),
            )

    logger.debug(f"Delivered {count} message(s) to '{account}'")
    yield Frame.build(Opcode.PULL_ALL_MESSAGES_SUCCESS)


@dispatcher.request(Opcode.END_SESSION_REQUEST)
async def end_session(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    session.end()
    yield Frame.build(Opcode.END_SESSION_SUCCESS)


@dispatcher.request(Opcode.HEARTBEAT)
async def heartbeat(frame: Frame, session: Session, context: HandlerContext) -> AsyncIterator[Frame]:
    logger.debug(f"Heartbeat from connection {context.connection_id}")
    return
    yield
