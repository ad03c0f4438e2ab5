"""Build tRPC stub descriptors from compiled protobuf definitions, render templates and run plugins."""

__version__ = "0.1.0"

__all__ = [
    "alias",
    "descriptor",
    "fill",
    "gitsync",
    "gomock",
    "gotag",
    "naming",
    "parser",
    "pathexpr",
    "plugin",
    "registry",
    "tpl",
]