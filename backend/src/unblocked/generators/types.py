"""Generator artifact and adapter descriptors."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from ..plugins.host import ApplicationContext


@dataclass(frozen=True)
class GeneratedArtifact:
    """Code produced by a generator and where it should be written.

    An empty ``code`` string means there is nothing to write.
    """

    file_name: str
    code: str | None = None
    overwrite: bool = False
    append: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.code

    @classmethod
    def from_result(cls, result: Any, file: str | None = None) -> GeneratedArtifact:
        """Normalize a custom ``create_schema`` result.

        Accepts an artifact, or any mapping or object carrying ``code`` and a
        file name under ``file_name`` or ``path``.
        """
        if isinstance(result, cls):
            return result
        if isinstance(result, Mapping):
            get = result.get
        else:

            def get(name: str, default: Any = None) -> Any:
                return getattr(result, name, default)

        file_name = get("file_name") or get("path") or file
        if not file_name:
            raise ConfigurationError("Custom schema generator returned no file name")
        return cls(
            file_name=file_name,
            code=get("code"),
            overwrite=bool(get("overwrite", False)),
            append=bool(get("append", False)),
        )


BuiltinGenerator = Callable[["ApplicationContext", "str | None"], Awaitable[GeneratedArtifact]]


@dataclass(frozen=True)
class GeneratorAdapter:
    """Stand-alone adapter descriptor for tooling.

    Storage adapters can be passed to ``generate`` directly; this record names
    a generator without constructing storage.
    """

    id: str
    create_schema: Callable[..., Any] | None = None
