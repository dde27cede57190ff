"""JavaScript stages."""

import rjsmin

from assetflow.stages.base import Asset, Stage


class MinifyJs(Stage):
    """Minify JavaScript with rjsmin, keeping ``/*! ... */`` license comments."""

    name = "jsmin"

    def apply(self, asset: Asset) -> Asset:
        return asset.with_content(rjsmin.jsmin(asset.text, keep_bang_comments=True))
