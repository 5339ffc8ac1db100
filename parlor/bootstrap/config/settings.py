import ssl
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_core.core_schema import ValidationInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from parlor.bootstrap.config.loader import get_configfile


class TLSSettings(BaseModel):
    certfile: Annotated[
        Path,
        Field(description="Path to the server TLS certificate (PEM).")
    ]

    keyfile: Annotated[
        Path,
        Field(description="Path to the server TLS private key (PEM).")
    ]

    cafile: Annotated[
        Path | None,
        Field(
            description=(
                "Optional CA certificate (PEM) used to verify client certificates.\n"
                "When set, clients must present a certificate signed by this CA."
            ),
            default=None
        )
    ]

    @field_validator("certfile", "keyfile", "cafile")
    @classmethod
    def validate_path(cls, v: Path | None, _: ValidationInfo) -> Path | None:
        if v is not None and not v.exists():
            raise ValueError(f"Path {v} does not exist.")
        return v


class ServerSettings(BaseModel):
    host: Annotated[
        str,
        Field(
            description="Bind address for chat clients.",
            default="127.0.0.1"
        )
    ]

    port: Annotated[
        int,
        Field(
            description="TCP port for chat clients.",
            default=6262,
            ge=0,
            le=65535
        )
    ]

    backlog: Annotated[
        int,
        Field(
            description="Maximum number of pending TCP connections.",
            default=128
        )
    ]

    limit_concurrency: Annotated[
        int,
        Field(
            description="Maximum number of simultaneously connected clients.",
            default=1024,
            gt=0
        )
    ]

    max_buffer_size: Annotated[
        int,
        Field(
            description="Maximum number of buffered bytes waiting to form frames.",
            default=4 * 1024 * 1024,
            gt=0
        )
    ]

    max_payload_size: Annotated[
        int,
        Field(
            description=(
                "Maximum payload length accepted in a frame header.\n"
                "A larger declared length closes the connection."
            ),
            default=1 * 1024 * 1024,
            gt=0,
            le=2 ** 31 - 1
        )
    ]

    idle_timeout: Annotated[
        float | None,
        Field(
            description=(
                "Seconds without any received byte before a connection is closed.\n"
                "Leave unset to keep idle connections open."
            ),
            default=None,
            gt=0
        )
    ]

    timeout_graceful_shutdown: Annotated[
        float,
        Field(
            description="Maximum time allowed for graceful shutdown.",
            default=5.0
        )
    ]

    tls: Annotated[
        TLSSettings | None,
        Field(
            description="TLS configuration. Plain TCP is served when omitted.",
            default=None
        )
    ]


class ProtocolSettings(BaseModel):
    compatible_versions: Annotated[
        list[int],
        Field(
            description=(
                "Versions accepted in the first frame of a session.\n"
                "Any other version ends the session without a response."
            ),
            default_factory=lambda: [1],
            min_length=1
        )
    ]

    max_message_length: Annotated[
        int,
        Field(
            description="Maximum number of characters in a message body.",
            default=4096,
            gt=0
        )
    ]

    max_account_name_length: Annotated[
        int,
        Field(
            description="Maximum number of characters in an account name.",
            default=64,
            gt=0
        )
    ]

    @field_validator("compatible_versions")
    @classmethod
    def validate_versions(cls, v: list[int], _: ValidationInfo) -> list[int]:
        for version in v:
            if not 0 <= version <= 0xFF:
                raise ValueError(f"Version {version} does not fit in one byte.")
        return v


class StorageSettings(BaseModel):
    backend: Annotated[
        Literal["memory", "lmdb"],
        Field(
            description=(
                "Storage backend for accounts and mailboxes.\n"
                "'memory' keeps everything in process and loses it on restart,\n"
                "'lmdb' persists under data_dir."
            ),
            default="memory"
        )
    ]

    data_dir: Annotated[
        Path | None,
        Field(
            description=(
                "Directory where the lmdb backend stores its data.\n"
                "It must exist or be creatable, writable, and persistent across restarts."
            ),
            default=None
        )
    ]

    map_size: Annotated[
        int,
        Field(
            description="Maximum size of the LMDB environment in bytes.",
            default=1 << 30,
            gt=0
        )
    ]

    @model_validator(mode="after")
    def validate_data_dir(self) -> "StorageSettings":
        if self.backend == "lmdb" and self.data_dir is None:
            raise ValueError("data_dir is required by the lmdb backend.")
        return self


class ParlorConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PARLOR_",
        env_nested_delimiter="__",
        extra="allow"
    )

    server: Annotated[
        ServerSettings,
        Field(
            description=(
                "Listener configuration.\n"
                "Controls where the server accepts connections, optional TLS,\n"
                "and runtime limits such as concurrency, buffer and payload sizes,\n"
                "idle connections and graceful shutdown."
            ),
            default_factory=ServerSettings
        )
    ]

    protocol: Annotated[
        ProtocolSettings,
        Field(
            description=(
                "Wire protocol configuration.\n"
                "Accepted versions and the limits applied to account names and\n"
                "message bodies."
            ),
            default_factory=ProtocolSettings
        )
    ]

    storage: Annotated[
        StorageSettings,
        Field(
            description="Storage backend configuration.",
            default_factory=StorageSettings
        )
    ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        configfile = get_configfile()
        if configfile is None:
            return init_settings, env_settings

        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=configfile),
        )

    def get_server_ssl_ctx(self) -> ssl.SSLContext | None:
        tls = self.server.tls
        if tls is None:
            return None

        ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        ctx.load_cert_chain(certfile=tls.certfile, keyfile=tls.keyfile)

        if tls.cafile is not None:
            ctx.verify_mode = ssl.CERT_REQUIRED
            ctx.load_verify_locations(cafile=tls.cafile)

        return ctx
