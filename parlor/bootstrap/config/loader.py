import argparse
import os
from functools import lru_cache
from pathlib import Path


@lru_cache
def get_cli_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="parlor",
        description=(
            "Start a Parlor chat server.\n\n"
            "Parlor serves a binary, length-framed protocol for creating "
            "accounts, exchanging messages and pulling mailboxes."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a Parlor configuration file"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity for the server.\n"
            "Choose among: DEBUG, INFO, WARNING, ERROR, CRITICAL.\n\n"
            "DEBUG    → every frame received and sent, useful for tracing.\n"
            "INFO     → accounts created/deleted, sessions ended (default).\n"
            "WARNING  → incompatible versions, malformed frames, limits hit.\n"
            "ERROR    → handler and transport failures.\n"
            "CRITICAL → only critical failures.\n\n"
            "Example:\n"
            "  --log-level DEBUG"
        ),
    )

    return parser.parse_args()


@lru_cache
def get_configfile() -> Path | None:
    """
    Locate the YAML configuration file.

    Priority: CLI > PARLORCONFIG environment variable > ./parlor.yaml.
    An explicitly requested file must exist; without any request, a
    missing ./parlor.yaml means built-in defaults are used.
    """
    args = get_cli_args()
    raw = args.config or os.getenv("PARLORCONFIG")

    if raw is None:
        file = Path.cwd() / "parlor.yaml"
        return file if file.is_file() else None

    file = Path(raw)
    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            "  - Use --config <file.yaml>\n"
            "  - Or set the PARLORCONFIG environment variable\n"
            "  - Or place a 'parlor.yaml' file in the current working directory."
        )

    return file
