"""File inclusion stage for HTML fragments and JavaScript modules."""

from __future__ import annotations

import os
import re
from pathlib import Path

from assetflow.errors import ToolError
from assetflow.sourcemap import LineMapBuilder
from assetflow.stages.base import Asset, Stage

# Rigger style, one directive per line: //= partials/header.html
RIGGER_DIRECTIVE = re.compile(r"//=\s*(?P<path>[^\s]+)[ \t]*$")
# gulp-file-include style: @@include('./module.js')
FILE_INCLUDE_DIRECTIVE = re.compile(r"""@@include\(\s*['"](?P<path>[^'"]+)['"]\s*\)""")

MAX_INCLUDE_DEPTH = 32

_Line = tuple[str, Path, int]


class AssembleIncludes(Stage):
    """Recursively replace include directives with the referenced file.

    Paths are resolved relative to the file containing the directive.
    With ``source_map=True`` a line-level map back to the original files
    is attached to the asset.
    """

    def __init__(
        self,
        directive: re.Pattern[str],
        name: str = "include",
        source_map: bool = False,
    ) -> None:
        self.directive = directive
        self.name = name
        self.source_map = source_map

    def apply(self, asset: Asset) -> Asset:
        entry = asset.source.resolve()
        texts: dict[Path, str] = {entry: asset.text}
        lines = self._expand(asset.text, entry, (), texts)
        trailing = "\n" if asset.text.endswith("\n") else ""
        assembled = "\n".join(text for text, _, _ in lines) + trailing
        result = asset.with_content(assembled)

        if self.source_map:
            builder = LineMapBuilder()
            base = entry.parent
            for _text, path, lineno in lines:
                name = Path(os.path.relpath(path, base)).as_posix()
                index = builder.add_source(name, texts[path])
                builder.add_line(index, lineno)
            result = result.with_source_map(builder.to_json(asset.relative_path.name))
        return result

    def _expand(
        self,
        text: str,
        path: Path,
        stack: tuple[Path, ...],
        texts: dict[Path, str],
    ) -> list[_Line]:
        if path in stack:
            chain = " -> ".join(p.name for p in (*stack, path))
            raise ToolError(self.name, f"Include cycle: {chain}", stack[0])
        if len(stack) >= MAX_INCLUDE_DEPTH:
            raise ToolError(self.name, "Includes nested too deeply", stack[0])

        out: list[_Line] = []
        for lineno, line in enumerate(text.splitlines()):
            match = self.directive.search(line)
            if match is None:
                out.append((line, path, lineno))
                continue

            included = (path.parent / match["path"]).resolve()
            try:
                included_text = included.read_text(encoding="utf-8")
            except OSError as e:
                raise ToolError(
                    self.name,
                    f"Cannot include {match['path']!r} from {path.name}: {e.strerror}",
                    path,
                ) from e
            except UnicodeDecodeError as e:
                raise ToolError(
                    self.name,
                    f"Cannot include {match['path']!r} from {path.name}: "
                    f"not valid UTF-8 at byte {e.start}",
                    path,
                ) from e
            texts[included] = included_text
            inner = self._expand(included_text, included, (*stack, path), texts)

            prefix, suffix = line[: match.start()], line[match.end() :]
            if not inner:
                inner = [("", path, lineno)]
            first_text, first_path, first_line = inner[0]
            inner[0] = (prefix + first_text, first_path, first_line)
            last_text, last_path, last_line = inner[-1]
            inner[-1] = (last_text + suffix, last_path, last_line)
            out.extend(inner)
        return out
