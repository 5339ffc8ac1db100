import os
import ssl
from typing import Generator

import pytest
import yaml

from tests.fake.fake_send_receive import FakeSendFrame
from tests.fake.fake_transport import FakeTransport
from tests.helpers import FakeParlorConfig
from tests.utils import TLSFiles, generate_tls_files

from parlor.bootstrap.config.settings import ParlorConfig
from parlor.core.helpers.spawn import TaskSpawner
from parlor.core.models.context import HandlerContext
from parlor.core.models.session import Session
from parlor.core.service.presence import PresenceRegistry
from parlor.infra.memory_storage import InMemoryAccountDirectory, InMemoryMailboxStore


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def directory():
    return InMemoryAccountDirectory()


@pytest.fixture
def mailbox():
    return InMemoryMailboxStore()


@pytest.fixture
def presence():
    return PresenceRegistry(TaskSpawner())


@pytest.fixture
def send():
    return FakeSendFrame()


@pytest.fixture
def context(directory, mailbox, presence, send):
    return HandlerContext(
        directory=directory,
        mailbox=mailbox,
        presence=presence,
        max_message_length=16,
    ).bind(1, send)


@pytest.fixture
def session():
    session = Session()
    session.negotiate(1)
    return session


@pytest.fixture(scope="session")
def tls_files(tmp_path_factory) -> TLSFiles:
    return generate_tls_files(tmp_path_factory.mktemp("tls"))


@pytest.fixture(scope="session")
def config_file(tmp_path_factory, tls_files):
    base = tmp_path_factory.mktemp("config")
    file = base / "parlor.yaml"

    data = {
        "server": {
            "host": "127.0.0.1",
            "port": 0,
            "backlog": 10,
            "limit_concurrency": 10,
            "max_buffer_size": 64 * 1024,
            "max_payload_size": 16 * 1024,
            "timeout_graceful_shutdown": 1,
            "tls": {
                "certfile": str(tls_files.server_cert),
                "keyfile": str(tls_files.server_key),
                "cafile": str(tls_files.cafile),
            },
        },
        "protocol": {
            "compatible_versions": [1],
            "max_message_length": 128,
        },
        "storage": {
            "backend": "lmdb",
            "data_dir": str(base / "data"),
        }
    }

    file.write_text(yaml.dump(data))
    return file


@pytest.fixture(scope="session")
def parlor_config(config_file) -> Generator[ParlorConfig, None, None]:
    backup = os.environ.copy()

    try:
        os.environ["TEST_PARLORCONFIG"] = str(config_file)
        yield FakeParlorConfig()
    finally:
        os.environ.clear()
        os.environ.update(backup)


@pytest.fixture(scope="session")
def mtls_contexts(tls_files, parlor_config):
    server_ctx = parlor_config.get_server_ssl_ctx()

    client_ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    client_ctx.load_cert_chain(tls_files.client_cert, tls_files.client_key)
    client_ctx.load_verify_locations(cafile=tls_files.cafile)

    return server_ctx, client_ctx
