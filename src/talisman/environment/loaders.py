"""Template loaders for the Talisman environment.

Loaders are the file-reading collaborator of the engine. They implement
``get_source(name)`` returning ``(source, filename)`` and are used both to
create templates and to ``load()`` fragments into a template as blocks.

Built-in Loaders:
- `FileSystemLoader`: Read files from one or more directories
- `DictLoader`: Serve sources from an in-memory dictionary (testing)
- `ChoiceLoader`: Try several loaders in order
- `FunctionLoader`: Wrap a callable

Custom Loaders:
Any object with a matching ``get_source`` works:
    ```python
    class DatabaseLoader:
        def get_source(self, name: str) -> tuple[str, str | None]:
            row = db.fetch_fragment(name)
            if row is None:
                raise TemplateNotFoundError(f"Template '{name}' not found")
            return row.html, f"db://{name}"
    ```

"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol

from talisman.environment.exceptions import TemplateNotFoundError


class Loader(Protocol):
    """Structural type of every loader."""

    def get_source(self, name: str) -> tuple[str, str | None]: ...


class FileSystemLoader:
    """Load template files from directories.

    Relative names are searched in each directory in order, first match
    wins. A relative name that resolves outside its directory (``../x``)
    is not found. Absolute paths are read directly, which is what
    ``load()`` with a full path relies on.

    Example:
            >>> loader = FileSystemLoader(["views/custom/", "views/default/"])
            >>> source, filename = loader.get_source("page.html")
            >>> filename
            'views/custom/page.html'

    Raises:
        TemplateNotFoundError: If the file is missing or unreadable

    """

    __slots__ = ("_encoding", "_paths")

    def __init__(
        self,
        paths: str | Path | Sequence[str | Path] = ".",
        encoding: str = "utf-8",
    ):
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self._paths = [Path(p) for p in paths]
        self._encoding = encoding

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def get_source(self, name: str) -> tuple[str, str]:
        """Read template source from disk."""
        candidate = Path(name)
        if candidate.is_absolute():
            return self._read(candidate, name)

        for base in self._paths:
            path = base / name
            if not path.resolve().is_relative_to(base.resolve()):
                raise TemplateNotFoundError(
                    f"Template '{name}' is outside the search path '{base}'"
                )
            if path.is_file():
                return self._read(path, name)

        raise TemplateNotFoundError(
            f"Template '{name}' not found in: {', '.join(str(p) for p in self._paths)}"
        )

    def _read(self, path: Path, name: str) -> tuple[str, str]:
        try:
            return path.read_text(self._encoding), str(path)
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateNotFoundError(f"Template '{name}' could not be read: {e}") from e

    def list_templates(self) -> list[str]:
        """List all .html files under the search paths."""
        templates = set()
        for base in self._paths:
            if base.is_dir():
                for path in base.rglob("*.html"):
                    templates.add(str(path.relative_to(base)))
        return sorted(templates)


class DictLoader:
    """Serve template sources from a dictionary.

    Example:
            >>> loader = DictLoader({"row.html": "<li>{label}</li>"})
            >>> loader.get_source("row.html")
            ('<li>{label}</li>', None)

    Raises:
        TemplateNotFoundError: If the name is not a key of the mapping

    """

    __slots__ = ("_mapping",)

    def __init__(self, mapping: dict[str, str]):
        self._mapping = mapping

    def get_source(self, name: str) -> tuple[str, None]:
        if name not in self._mapping:
            from difflib import get_close_matches

            msg = f"Template '{name}' not found"
            matches = get_close_matches(name, sorted(self._mapping), n=1, cutoff=0.6)
            if matches:
                msg += f". Did you mean '{matches[0]}'?"
            raise TemplateNotFoundError(msg)
        return self._mapping[name], None

    def list_templates(self) -> list[str]:
        return sorted(self._mapping)


class ChoiceLoader:
    """Try multiple loaders in order, returning the first match.

    Example:
            >>> loader = ChoiceLoader([
            ...     DictLoader({"nav.html": "<nav>override</nav>"}),
            ...     FileSystemLoader("views/"),
            ... ])

    Raises:
        TemplateNotFoundError: If no loader can find the template

    """

    __slots__ = ("_loaders",)

    def __init__(self, loaders: Sequence[Loader]):
        self._loaders = list(loaders)

    def get_source(self, name: str) -> tuple[str, str | None]:
        for loader in self._loaders:
            try:
                return loader.get_source(name)
            except TemplateNotFoundError:
                continue
        raise TemplateNotFoundError(
            f"Template '{name}' not found in any of {len(self._loaders)} loaders"
        )


class FunctionLoader:
    """Wrap a callable as a template loader.

    The callable receives a name and returns the source string, a
    ``(source, filename)`` tuple, or ``None`` when the template is missing.

    Example:
            >>> env = Environment(loader=FunctionLoader(lambda name: "<p>{name}</p>"))

    Raises:
        TemplateNotFoundError: If the callable returns ``None``

    """

    __slots__ = ("_load_func",)

    def __init__(
        self,
        load_func: Callable[[str], str | tuple[str, str | None] | None],
    ):
        self._load_func = load_func

    def get_source(self, name: str) -> tuple[str, str | None]:
        result = self._load_func(name)

        if result is None:
            raise TemplateNotFoundError(f"Template '{name}' not found")

        if isinstance(result, str):
            return result, "<function>"

        return result
