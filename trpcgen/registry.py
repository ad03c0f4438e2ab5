"""The chains of plugins run after generation."""

from __future__ import annotations

import logging

from .descriptor import FileDescriptor
from .gitsync import CommandGitManager, GitSync, LocalFileManager, auth_supplier
from .gomock import GoMock
from .gotag import GoTag
from .plugin import CppMove, GoImports, Option, Plugin

log = logging.getLogger(__name__)

# goimports runs before mockgen to clear "imported and not used" errors.
_LANGUAGE_PLUGINS: dict[str, tuple[type[Plugin], ...]] = {
    "go": (GoImports, GoMock, GoTag),
    "cpp": (CppMove,),
}


def default_plugins() -> list[Plugin]:
    """Return the plugins that apply to every language."""
    return [GitSync(LocalFileManager(), CommandGitManager(), auth_supplier)]


def language_plugins(language: str) -> list[Plugin]:
    """Return the plugins specific to ``language``, in running order."""
    return [cls() for cls in _LANGUAGE_PLUGINS.get(language, ())]


def run_plugins(fd: FileDescriptor | None, opt: Option) -> list[str]:
    """Run every plugin whose check passes; return the names of those that ran."""
    ran = []
    for plugin in [*default_plugins(), *language_plugins(opt.language)]:
        if not plugin.check(fd, opt):
            continue
        log.debug("run plugin %s", plugin.name())
        plugin.run(fd, opt)
        ran.append(plugin.name())
    return ran