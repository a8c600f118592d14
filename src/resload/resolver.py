"""Map logical identifiers to fetch paths."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from .types import (
    DEFAULT_EXPORTS_TO,
    ContentKind,
    LibConfig,
    LoadRequest,
    ResourceType,
    SubjectType,
)

LOGGER = logging.getLogger(__name__)

CUSTOM_NAMESPACE = "custom"
DEFAULT_SCRIPT_SUFFIX = ".js"
LIB_TAG = "lib"
RES_TAG = "res"
TEXT_TAG = "text"

_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")


class ResolutionError(ValueError):
    """Raised when an identifier is empty or cannot be mapped to a path."""


def camel_case_to_hyphen(value: str) -> str:
    """Convert ``FooBar`` into ``foo-bar``."""

    return _CAMEL_BOUNDARY.sub(r"\1-\2", value).lower()


def split_namespace(name: str) -> tuple[str | None, str]:
    """Split ``mod:Name`` into its namespace and name parts."""

    if ":" not in name:
        return None, name
    namespace, _, rest = name.partition(":")
    return namespace, rest


def normalize_class_name(name: str) -> str:
    """Return the canonical slash/hyphen form of a class identifier.

    Identifiers starting with an uppercase letter (either the whole name or the
    part after the namespace prefix) are treated as class paths: ``Foo.BarBaz``
    becomes ``foo/bar-baz``. The namespace prefix is converted separately.
    """

    namespace, rest = split_namespace(name)
    if "." in name and "!" not in name and namespace is None:
        LOGGER.warning(
            "%s: class name should use slashes for a directory separator and hyphen format.",
            name,
        )
    if not _starts_upper(name) and not _starts_upper(rest):
        return name
    converted = camel_case_to_hyphen(rest).replace(".", "/")
    if namespace is None:
        return converted
    return f"{camel_case_to_hyphen(namespace)}:{converted}"


def _starts_upper(value: str) -> bool:
    return bool(value) and value[0].isupper()


class NameResolver:
    """Resolve class, library and resource identifiers into fetch paths."""

    def __init__(self, *, script_suffix: str = DEFAULT_SCRIPT_SUFFIX) -> None:
        self.script_suffix = script_suffix

    def resolve(self, name: str, libs: Mapping[str, LibConfig] | None = None) -> str:
        """Return the fetch path for ``name``."""

        return self.parse(name, libs).path

    def class_path(self, name: str) -> str:
        """Return the script path for an already normalised class name."""

        namespace, rest = split_namespace(name)
        if namespace is None:
            base = "client/src/"
        elif namespace == CUSTOM_NAMESPACE:
            base = "client/custom/src/"
        else:
            base = f"client/modules/{namespace}/src/"
        return f"{base}{rest}{self.script_suffix}"

    def resource_path(self, resource_type: ResourceType | str, name: str) -> str:
        """Return the path of a template, layout template or layout resource."""

        try:
            kind = ResourceType(resource_type)
        except ValueError as exc:
            raise ResolutionError(f"Unknown resource type '{resource_type}'.") from exc
        if not name:
            raise ResolutionError(f"Can not resolve empty {kind.value} name.")

        namespace, rest = split_namespace(name)
        inner = self._resource_inner_path(kind, rest)
        if namespace is None:
            return f"client/{inner}"
        if namespace == CUSTOM_NAMESPACE:
            return f"client/custom/{inner}"
        return f"client/modules/{namespace}/{inner}"

    def parse(self, name: str, libs: Mapping[str, LibConfig] | None = None) -> LoadRequest:
        """Turn a raw identifier into a :class:`LoadRequest`.

        ``text!`` is an alias of ``res!``. Resource-type tags such as ``template!``
        resolve to a path first. Every resource request is named ``res!<path>``,
        so a path is memoised under one key whatever tag reached it.
        """

        if not name:
            raise ResolutionError("Can not load empty class name.")

        tag, separator, rest = name.partition("!")
        if not separator:
            normalized = normalize_class_name(name)
            return LoadRequest(
                name=normalized,
                subject_type=SubjectType.CLASS,
                kind=ContentKind.SCRIPT,
                path=self.class_path(normalized),
            )
        if not rest:
            raise ResolutionError(f"Identifier '{name}' has an empty name after its type tag.")
        if tag == LIB_TAG:
            return self._lib_request(name, rest, libs or {})
        if tag in (RES_TAG, TEXT_TAG):
            return _resource_request(rest)
        if tag in {item.value for item in ResourceType}:
            return _resource_request(self.resource_path(tag, rest))
        raise ResolutionError(f"Unknown type tag '{tag}' in identifier '{name}'.")

    def _lib_request(
        self,
        name: str,
        lib_name: str,
        libs: Mapping[str, LibConfig],
    ) -> LoadRequest:
        config = libs.get(lib_name) or LibConfig()
        return LoadRequest(
            name=name,
            subject_type=SubjectType.LIB,
            kind=ContentKind.SCRIPT,
            path=config.path or lib_name,
            cacheable=False,
            exports_to=config.exports_to or DEFAULT_EXPORTS_TO,
            exports_as=config.exports_as or lib_name,
        )

    @staticmethod
    def _resource_inner_path(kind: ResourceType, name: str) -> str:
        if kind is ResourceType.TEMPLATE:
            if "." in name:
                LOGGER.warning(
                    "%s: template name should use slashes for a directory separator.", name
                )
            return "res/templates/" + name.replace(".", "/") + ".tpl"
        if kind is ResourceType.LAYOUT_TEMPLATE:
            return f"res/layout-types/{name}.tpl"
        return f"res/layouts/{name}.json"


def _resource_request(path: str) -> LoadRequest:
    return LoadRequest(
        name=f"{RES_TAG}!{path}",
        subject_type=SubjectType.RES,
        kind=ContentKind.TEXT,
        path=path,
    )


__all__ = [
    "CUSTOM_NAMESPACE",
    "NameResolver",
    "ResolutionError",
    "camel_case_to_hyphen",
    "normalize_class_name",
    "split_namespace",
]
