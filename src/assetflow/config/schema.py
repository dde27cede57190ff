"""Configuration schema and validation for assetflow."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Literal, cast

from assetflow.errors import ConfigError

CacheBustType = Literal["hash", "timestamp"]
SassOutputStyle = Literal["nested", "expanded", "compact", "compressed"]


class AssetClass(str, Enum):
    """One category of source file, handled by its own pipeline."""

    HTML = "html"
    JS = "js"
    SCSS = "scss"
    IMG = "img"
    FONTS = "fonts"
    MANIFEST = "manifest"


class BuildMode(str, Enum):
    """Selects which pipeline variant a task invokes."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @property
    def prefix(self) -> str:
        """Task name prefix for this mode ("dev" or "prod")."""
        return "dev" if self is BuildMode.DEVELOPMENT else "prod"


@dataclass(frozen=True)
class PathSpec:
    """Source glob and destination directory for one asset class.

    Globs are relative to the project root. ``watch_glob`` is what the
    watcher listens on; it defaults to ``source_glob`` but is usually wider
    so that partials and includes trigger a rebuild of their entry file.
    """

    source_glob: str
    dest_dir: str
    watch_glob: str | None = None

    @property
    def effective_watch_glob(self) -> str:
        return self.watch_glob or self.source_glob

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"src": self.source_glob, "dest": self.dest_dir}
        if self.watch_glob is not None:
            result["watch"] = self.watch_glob
        return result

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> PathSpec:
        """Create from a ``paths.<name>`` mapping. ``src`` and ``dest`` are required."""
        src = data.get("src")
        dest = data.get("dest")
        if not src or dest is None:
            raise ConfigError(f"paths.{name} needs both 'src' and 'dest'")
        watch = data.get("watch")
        return cls(
            source_glob=str(src),
            dest_dir=str(dest),
            watch_glob=str(watch) if watch else None,
        )


def parse_paths(data: Any) -> dict[AssetClass, PathSpec]:
    """Parse the ``paths`` section. Unknown asset classes are rejected."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("'paths' must be a mapping of asset class to path spec")

    valid = {c.value for c in AssetClass}
    result: dict[AssetClass, PathSpec] = {}
    for name, spec in data.items():
        if name not in valid:
            raise ConfigError(
                f"Unknown asset class in paths: {name!r} "
                f"(expected one of {', '.join(sorted(valid))})"
            )
        if not isinstance(spec, dict):
            raise ConfigError(f"paths.{name} must be a mapping")
        result[AssetClass(name)] = PathSpec.from_dict(name, spec)
    return result


@dataclass
class ServerConfig:
    """Dev web server settings."""

    host: str | None = None
    port: int | None = None
    log_prefix: str | None = None

    def merge(self, other: ServerConfig) -> ServerConfig:
        return ServerConfig(
            host=other.host if other.host is not None else self.host,
            port=other.port if other.port is not None else self.port,
            log_prefix=(
                other.log_prefix if other.log_prefix is not None else self.log_prefix
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerConfig:
        port_raw = data.get("port")
        return cls(
            host=data.get("host"),
            port=int(port_raw) if port_raw is not None else None,
            log_prefix=data.get("log_prefix"),
        )


@dataclass
class AssetflowConfig:
    """assetflow configuration schema.

    None values indicate "not set" and will use defaults or be inherited
    from a lower-precedence layer.
    """

    # Layout
    paths: dict[AssetClass, PathSpec] = field(default_factory=dict)
    dest_root: str | None = None
    cache_dir: str | None = None

    # Dev server
    server: ServerConfig = field(default_factory=ServerConfig)

    # Pipeline options
    cache_bust: CacheBustType | None = None
    browsers: str | None = None
    sass_output_style: SassOutputStyle | None = None
    autoprefix: bool | None = None
    transpile: bool | None = None
    critical: bool | None = None
    critical_width: int | None = None
    critical_height: int | None = None

    # Runtime
    debounce: float | None = None
    max_workers: int | None = None
    tool_timeout: float | None = None
    notifications: bool | None = None

    # Per-tool command overrides, e.g. {"babel": ["npx", "babel"]}
    tools: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def merge(self, other: AssetflowConfig) -> AssetflowConfig:
        """Merge another config into this one.

        Values from `other` take precedence when they are not None. Path
        specs and tool commands are overlaid per key. Returns a new instance.
        """

        def pick(name: str) -> Any:
            value = getattr(other, name)
            return value if value is not None else getattr(self, name)

        return AssetflowConfig(
            paths={**self.paths, **other.paths},
            dest_root=pick("dest_root"),
            cache_dir=pick("cache_dir"),
            server=self.server.merge(other.server),
            cache_bust=pick("cache_bust"),
            browsers=pick("browsers"),
            sass_output_style=pick("sass_output_style"),
            autoprefix=pick("autoprefix"),
            transpile=pick("transpile"),
            critical=pick("critical"),
            critical_width=pick("critical_width"),
            critical_height=pick("critical_height"),
            debounce=pick("debounce"),
            max_workers=pick("max_workers"),
            tool_timeout=pick("tool_timeout"),
            notifications=pick("notifications"),
            tools={**self.tools, **other.tools},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary, excluding None values."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "paths":
                if value:
                    result["paths"] = {k.value: v.to_dict() for k, v in value.items()}
            elif f.name == "server":
                server = value.to_dict()
                if server:
                    result["server"] = server
            elif f.name == "tools":
                if value:
                    result["tools"] = {k: list(v) for k, v in value.items()}
            elif value is not None:
                result[f.name] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssetflowConfig:
        """Create an AssetflowConfig from a dictionary.

        Unknown keys are ignored. Malformed ``paths`` entries raise ConfigError.
        """

        def opt_bool(key: str) -> bool | None:
            raw = data.get(key)
            return bool(raw) if raw is not None else None

        def opt_int(key: str) -> int | None:
            raw = data.get(key)
            return int(raw) if raw is not None else None

        def opt_float(key: str) -> float | None:
            raw = data.get(key)
            return float(raw) if raw is not None else None

        cache_bust_raw = data.get("cache_bust")
        cache_bust: CacheBustType | None = None
        if cache_bust_raw in ("hash", "timestamp"):
            cache_bust = cast(CacheBustType, cache_bust_raw)

        style_raw = data.get("sass_output_style")
        sass_output_style: SassOutputStyle | None = None
        if style_raw in ("nested", "expanded", "compact", "compressed"):
            sass_output_style = cast(SassOutputStyle, style_raw)

        server_raw = data.get("server")
        server = (
            ServerConfig.from_dict(server_raw)
            if isinstance(server_raw, dict)
            else ServerConfig()
        )

        tools: dict[str, tuple[str, ...]] = {}
        tools_raw = data.get("tools")
        if isinstance(tools_raw, dict):
            for name, command in tools_raw.items():
                if isinstance(command, str):
                    tools[str(name)] = tuple(command.split())
                elif isinstance(command, list):
                    tools[str(name)] = tuple(str(c) for c in command)

        browsers = data.get("browsers")
        if isinstance(browsers, list):
            browsers = ", ".join(str(b) for b in browsers)

        return cls(
            paths=parse_paths(data.get("paths")),
            dest_root=data.get("dest_root"),
            cache_dir=data.get("cache_dir"),
            server=server,
            cache_bust=cache_bust,
            browsers=browsers,
            sass_output_style=sass_output_style,
            autoprefix=opt_bool("autoprefix"),
            transpile=opt_bool("transpile"),
            critical=opt_bool("critical"),
            critical_width=opt_int("critical_width"),
            critical_height=opt_int("critical_height"),
            debounce=opt_float("debounce"),
            max_workers=opt_int("max_workers"),
            tool_timeout=opt_float("tool_timeout"),
            notifications=opt_bool("notifications"),
            tools=tools,
        )


DEFAULT_PATHS: dict[AssetClass, PathSpec] = {
    AssetClass.HTML: PathSpec("src/*.html", "dist", "src/**/*.html"),
    AssetClass.JS: PathSpec("src/js/common.js", "dist/scripts", "src/js/**/*.js"),
    AssetClass.SCSS: PathSpec(
        "src/scss/styles.scss", "dist/styles", "src/scss/**/*.scss"
    ),
    AssetClass.IMG: PathSpec("src/img/**/*", "dist/images"),
    AssetClass.FONTS: PathSpec("src/fonts/**/*", "dist/fonts"),
    AssetClass.MANIFEST: PathSpec("src/manifest.json", "dist"),
}

# Default configuration values (used when not specified anywhere)
DEFAULT_CONFIG = AssetflowConfig(
    paths=dict(DEFAULT_PATHS),
    dest_root="dist",
    cache_dir=".assetflow",
    server=ServerConfig(host="localhost", port=3000, log_prefix="DevServer"),
    cache_bust="hash",
    browsers="last 15 versions, > 1%",
    sass_output_style="nested",
    autoprefix=True,
    transpile=True,
    critical=True,
    critical_width=1920,
    critical_height=1280,
    debounce=0.2,
    max_workers=4,
    tool_timeout=120.0,
    notifications=True,
)
