import json
from typing import Any

import yaml

from parlor.core.models.message import Message
from parlorctl.core.ports.render import Renderer


class JsonRenderer(Renderer):
    def render(self, data: Any) -> str:
        return json.dumps(_normalize(data), indent=2, sort_keys=False)


class YamlRenderer(Renderer):
    def render(self, data: Any) -> str:
        return yaml.safe_dump(_normalize(data), sort_keys=False, allow_unicode=True)


def _normalize(obj: Any) -> Any:
    if isinstance(obj, Message):
        return {"from": obj.sender, "to": obj.receiver, "body": obj.body}

    if isinstance(obj, dict):
        return {_normalize(k): _normalize(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple)):
        return [_normalize(x) for x in obj]

    return obj
