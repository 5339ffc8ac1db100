from functools import lru_cache

from parlorctl.core.cmd import ParlorCmd
from parlorctl.infra.format_renderer import JsonRenderer, YamlRenderer


@lru_cache
def get_cli() -> ParlorCmd:
    renderers = {
        "yaml": YamlRenderer(),
        "json": JsonRenderer(),
    }
    return ParlorCmd(renderers)
