"""Service worker generation for offline precaching."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from assetflow.config.registry import match_glob
from assetflow.pipelines.base import write_atomic

logger = logging.getLogger(__name__)

SERVICE_WORKER_FILENAME = "service-worker.js"
CACHE_PREFIX = "assetflow-precache"

_TEMPLATE = """\
'use strict';

var PRECACHE = {precache};
var CACHE_NAME = '{cache_prefix}-' + {version};
var URLS = PRECACHE.map(function (entry) {{
  return new URL(entry[0], self.location).toString();
}});

self.addEventListener('install', function (event) {{
  event.waitUntil(
    caches.open(CACHE_NAME).then(function (cache) {{
      return cache.addAll(URLS);
    }}).then(function () {{
      return self.skipWaiting();
    }})
  );
}});

self.addEventListener('activate', function (event) {{
  event.waitUntil(
    caches.keys().then(function (names) {{
      return Promise.all(names.filter(function (name) {{
        return name.indexOf('{cache_prefix}-') === 0 && name !== CACHE_NAME;
      }}).map(function (name) {{
        return caches.delete(name);
      }}));
    }}).then(function () {{
      return self.clients.claim();
    }})
  );
}});

self.addEventListener('fetch', function (event) {{
  if (event.request.method !== 'GET') {{
    return;
  }}
  var url = event.request.url.split('#')[0];
  if (URLS.indexOf(url) === -1) {{
    return;
  }}
  event.respondWith(
    caches.open(CACHE_NAME).then(function (cache) {{
      return cache.match(url).then(function (response) {{
        return response || fetch(event.request);
      }});
    }})
  );
}});
"""


@dataclass(frozen=True)
class PrecacheEntry:
    """A URL to precache and the MD5 of its content."""

    url: str
    revision: str


def collect_precache_entries(dest_root: Path, globs: Sequence[str]) -> list[PrecacheEntry]:
    """List files under `dest_root` matching any of `globs`, sorted by URL."""
    entries: list[PrecacheEntry] = []
    if not dest_root.is_dir():
        return entries
    for path in sorted(dest_root.rglob("*")):
        if not path.is_file() or path.name == SERVICE_WORKER_FILENAME:
            continue
        url = path.relative_to(dest_root).as_posix()
        if any(match_glob(url, pattern) for pattern in globs):
            revision = hashlib.md5(path.read_bytes(), usedforsecurity=False).hexdigest()
            entries.append(PrecacheEntry(url=url, revision=revision))
    return entries


def render_service_worker(entries: Sequence[PrecacheEntry]) -> str:
    """Render the worker script; the cache version is derived from the entries."""
    precache = [[entry.url, entry.revision] for entry in entries]
    version = hashlib.md5(
        json.dumps(precache).encode(), usedforsecurity=False
    ).hexdigest()[:12]
    return _TEMPLATE.format(
        precache=json.dumps(precache, indent=2),
        cache_prefix=CACHE_PREFIX,
        version=json.dumps(version),
    )


def generate_service_worker(
    dest_root: Path, globs: Sequence[str], output: Path | None = None
) -> list[PrecacheEntry]:
    """Write a precaching service worker for the built files.

    Args:
        dest_root: Destination root the URLs are relative to.
        globs: Precache patterns relative to `dest_root`.
        output: Worker path, ``<dest_root>/service-worker.js`` by default.

    Returns:
        The precached entries, sorted by URL.
    """
    output = output or dest_root / SERVICE_WORKER_FILENAME
    entries = collect_precache_entries(dest_root, globs)
    write_atomic(output, render_service_worker(entries).encode("utf-8"))
    logger.info("Wrote %s with %d precache entries", output, len(entries))
    return entries
