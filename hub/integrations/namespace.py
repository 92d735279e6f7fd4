"""Tool namespace: ``"<slug>/<tool>"`` addressing.

Only the first ``/`` separates the integration slug, so tool names may
themselves contain slashes (``"github/repos/list"`` → ``github``,
``repos/list``).
"""
from __future__ import annotations
from typing import NamedTuple

from hub.errors import InvalidToolName

SEPARATOR = "/"


class ToolName(NamedTuple):
    slug: str
    tool: str

    @property
    def qualified(self) -> str:
        return qualify(self.slug, self.tool)


def qualify(slug: str, tool: str) -> str:
    return f"{slug}{SEPARATOR}{tool}"


def resolve(name: str) -> ToolName:
    """Split a namespaced tool name, raising InvalidToolName if malformed."""
    if not isinstance(name, str):
        raise InvalidToolName(str(name))
    slug, sep, tool = name.partition(SEPARATOR)
    if not sep or not slug or not tool:
        raise InvalidToolName(name)
    return ToolName(slug, tool)
