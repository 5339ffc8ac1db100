import json
from functools import lru_cache

from pydantic import ValidationError

from parlor.bootstrap.config.settings import ParlorConfig
from parlor.core.models.config import ServerConfig
from parlor.core.models.context import HandlerContext
from parlor.core.ports.directory import AccountDirectory
from parlor.core.ports.mailbox import MailboxStore
from parlor.core.routing.app import ChatApplication
from parlor.core.routing.handlers import dispatcher
from parlor.core.service.policy import AccountPolicy
from parlor.core.service.presence import PresenceRegistry
from parlor.core.transport.server import ChatServer
from parlor.infra.lmdb_storage.aiobackend import LMDBStorage
from parlor.infra.lmdb_storage.stores import LMDBAccountDirectory, LMDBMailboxStore
from parlor.infra.memory_storage import InMemoryAccountDirectory, InMemoryMailboxStore
from parlor.infra.msgpack_serializer import MsgPackSerializer


@lru_cache
def get_config() -> ParlorConfig:
    try:
        return ParlorConfig()
    except FileNotFoundError as ex:
        raise SystemExit(f"Provide a correct configuration file path: {ex}")
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(part) for part in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))


@lru_cache
def get_storage() -> LMDBStorage:
    config = get_config()
    return LMDBStorage(
        path=config.storage.data_dir,  # type: ignore[arg-type]
        map_size=config.storage.map_size,
    )


@lru_cache
def get_stores() -> tuple[AccountDirectory, MailboxStore]:
    config = get_config()
    policy = AccountPolicy(max_name_length=config.protocol.max_account_name_length)

    if config.storage.backend == "lmdb":
        storage = get_storage()
        serializer = MsgPackSerializer()
        return (
            LMDBAccountDirectory(storage, serializer, policy=policy),
            LMDBMailboxStore(storage, serializer),
        )

    return InMemoryAccountDirectory(policy=policy), InMemoryMailboxStore()


@lru_cache
def get_presence() -> PresenceRegistry:
    return PresenceRegistry()


@lru_cache
def get_app() -> ChatApplication:
    config = get_config()
    directory, mailbox = get_stores()
    context = HandlerContext(
        directory=directory,
        mailbox=mailbox,
        presence=get_presence(),
        max_message_length=config.protocol.max_message_length,
    )

    return ChatApplication(
        dispatcher=dispatcher,
        context=context,
        compatible_versions=config.protocol.compatible_versions,
    )


@lru_cache
def get_server() -> ChatServer:
    config = get_config()
    server = config.server

    return ChatServer(
        ServerConfig(
            app=get_app(),
            host=server.host,
            port=server.port,
            backlog=server.backlog,
            ssl_ctx=config.get_server_ssl_ctx(),
            limit_concurrency=server.limit_concurrency,
            max_buffer_size=server.max_buffer_size,
            max_payload_size=server.max_payload_size,
            idle_timeout=server.idle_timeout,
            timeout_graceful_shutdown=server.timeout_graceful_shutdown,
        )
    )
