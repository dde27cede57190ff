"""Minimal source map (v3) builder for line-level mappings."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


def encode_vlq(value: int) -> str:
    """Encode one integer as a base64 VLQ segment field."""
    vlq = (-value << 1) | 1 if value < 0 else value << 1
    encoded = ""
    while True:
        digit = vlq & 0b11111
        vlq >>= 5
        if vlq:
            digit |= 0b100000
        encoded += _BASE64[digit]
        if not vlq:
            return encoded


@dataclass
class LineMapBuilder:
    """Collects one mapping per generated line: (source name, original line)."""

    sources: list[str] = field(default_factory=list)
    contents: list[str] = field(default_factory=list)
    lines: list[tuple[int, int]] = field(default_factory=list)

    def add_source(self, name: str, content: str) -> int:
        if name in self.sources:
            return self.sources.index(name)
        self.sources.append(name)
        self.contents.append(content)
        return len(self.sources) - 1

    def add_line(self, source_index: int, original_line: int) -> None:
        self.lines.append((source_index, original_line))

    def mappings(self) -> str:
        segments: list[str] = []
        prev_source = 0
        prev_line = 0
        for source_index, original_line in self.lines:
            segments.append(
                encode_vlq(0)
                + encode_vlq(source_index - prev_source)
                + encode_vlq(original_line - prev_line)
                + encode_vlq(0)
            )
            prev_source, prev_line = source_index, original_line
        return ";".join(segments)

    def to_json(self, file: str) -> str:
        return json.dumps(
            {
                "version": 3,
                "file": file,
                "sources": self.sources,
                "sourcesContent": self.contents,
                "names": [],
                "mappings": self.mappings(),
            },
            separators=(",", ":"),
        )


def inline_comment(source_map: str, css: bool = False) -> str:
    """``sourceMappingURL`` comment carrying the map as a data URL."""
    data = base64.b64encode(source_map.encode("utf-8")).decode("ascii")
    url = f"data:application/json;charset=utf8;base64,{data}"
    return f"/*# sourceMappingURL={url} */" if css else f"//# sourceMappingURL={url}"


def url_comment(map_name: str, css: bool = False) -> str:
    """``sourceMappingURL`` comment pointing at a companion file."""
    return f"/*# sourceMappingURL={map_name} */" if css else f"//# sourceMappingURL={map_name}"
