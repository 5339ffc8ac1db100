import asyncio
import logging

from parlor.bootstrap.config.loader import get_cli_args
from parlor.bootstrap.deps import get_config, get_presence, get_server, get_stores
from parlor.core.helpers.utils import setup_logging, stop_on_signals


async def serve(stop_event: asyncio.Event) -> None:
    server = get_server()
    directory, mailbox = get_stores()
    presence = get_presence()

    try:
        await server.serve_until(stop_event)
    finally:
        presence.spawner.cancel_all()
        await mailbox.close()
        await directory.close()


def main():
    cli = get_cli_args()
    setup_logging(cli.log_level)

    config = get_config()
    logging.getLogger("bootstrap").info(
        f"Starting with {config.storage.backend} storage, "
        f"protocol versions {config.protocol.compatible_versions}"
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        with stop_on_signals() as stop_event:
            loop.run_until_complete(serve(stop_event))
    except KeyboardInterrupt:
        pass
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            loop.close()


if __name__ == "__main__":
    main()
