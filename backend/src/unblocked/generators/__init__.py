"""Schema and migration generators."""

from .dispatch import BUILTIN_GENERATORS, generate, generate_or_exit
from .types import GeneratedArtifact, GeneratorAdapter

__all__ = ["BUILTIN_GENERATORS", "GeneratedArtifact", "GeneratorAdapter", "generate", "generate_or_exit"]
