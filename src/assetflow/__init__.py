"""assetflow - front-end asset pipeline with task graph, watcher and live reload."""

__version__ = "0.1.0"
