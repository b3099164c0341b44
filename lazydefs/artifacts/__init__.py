"""Writing, compiling and loading of generated artifacts."""

from .compiler import Compiler, PyCompiler
from .writer import ArtifactWriter, RegenerationError, scoped_write

__all__ = ["ArtifactWriter", "Compiler", "PyCompiler", "RegenerationError", "scoped_write"]
