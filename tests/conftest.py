"""Shared fixtures: a small project laid out like the default configuration."""

from pathlib import Path

import pytest

from assetflow.config.schema import DEFAULT_CONFIG, AssetflowConfig
from assetflow.context import BuildContext
from assetflow.notifier import Notifier
from helpers import FIXED_TIME, png_bytes, write


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project tree matching the default path layout."""
    root = tmp_path / "project"
    write(root / "src/scss/styles.scss", "@import 'vars';\nbody { color: $color; }\n")
    write(root / "src/scss/_vars.scss", "$color: red;\n")
    write(
        root / "src/js/common.js",
        "@@include('./modules/greet.js')\ngreet('world');\n",
    )
    write(
        root / "src/js/modules/greet.js",
        "function greet(name) {\n  console.log('hello ' + name);\n}\n",
    )
    write(
        root / "src/index.html",
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '  <link rel="stylesheet" href="styles/styles.min.css">\n'
        "</head>\n<body>\n"
        "  //= partials/header.html\n"
        '  <script src="scripts/common.min.js"></script>\n'
        "</body>\n</html>\n",
    )
    write(root / "src/partials/header.html", "<header>Site</header>\n")
    write(root / "src/img/logo.png", png_bytes())
    write(root / "src/fonts/site.woff2", b"wOF2fakefont")
    write(root / "src/manifest.json", '{"name": "site"}\n')
    return root


@pytest.fixture
def config() -> AssetflowConfig:
    """Defaults with the external-tool stages and desktop notifications off."""
    return DEFAULT_CONFIG.merge(
        AssetflowConfig(
            autoprefix=False,
            transpile=False,
            critical=False,
            notifications=False,
        )
    )


@pytest.fixture
def context(project: Path, config: AssetflowConfig) -> BuildContext:
    return BuildContext.create(
        config, project, notifier=Notifier(desktop=False), clock=lambda: FIXED_TIME
    )
