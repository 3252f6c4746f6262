"""Site-specific post-processing applied to the rewritten document."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence

from bs4 import BeautifulSoup

from .markup import PLACEHOLDER_IMAGE

logger = logging.getLogger("pagepack")

OFFLINE_SHIM = """
(function () {
  if (window.location.protocol !== 'file:') { return; }
  var assetExtensions = ['.css', '.js', '.json', '.png', '.jpg', '.jpeg', '.gif', '.svg',
    '.webp', '.avif', '.ico', '.woff', '.woff2', '.ttf', '.eot', '.mp4', '.webm', '.ogg'];
  function isAsset(url) {
    try {
      var path = new URL(url, window.location.href).pathname;
      return assetExtensions.some(function (ext) { return path.endsWith(ext); });
    } catch (e) {
      return assetExtensions.some(function (ext) { return String(url).endsWith(ext); });
    }
  }
  var nativeFetch = window.fetch;
  if (nativeFetch) {
    window.fetch = function (input, init) {
      var url = typeof input === 'string' ? input : input.url;
      if (!isAsset(url)) {
        return Promise.resolve(new Response('{}', {status: 200, headers: {'Content-Type': 'application/json'}}));
      }
      return nativeFetch.apply(this, arguments).catch(function () {
        return new Response('{}', {status: 200, headers: {'Content-Type': 'application/json'}});
      });
    };
  }
  var nativeOpen = window.XMLHttpRequest.prototype.open;
  window.XMLHttpRequest.prototype.open = function (method, url) {
    if (!isAsset(url)) { url = 'data:application/json,{}'; }
    return nativeOpen.apply(this, [method, url].concat([].slice.call(arguments, 2)));
  };
  document.addEventListener('DOMContentLoaded', function () {
    document.querySelectorAll('img').forEach(function (img) {
      img.addEventListener('error', function () { this.style.display = 'none'; });
    });
    document.querySelectorAll('video').forEach(function (video) {
      video.muted = true;
      var playing = video.play();
      if (playing && playing.catch) { playing.catch(function () {}); }
    });
  });
})();
"""

NEXT_SHIM = """
(function () {
  if (window.location.protocol !== 'file:') { return; }
  var placeholder = '%(placeholder)s';
  var noisy = ['ChunkLoadError', 'Loading chunk', 'Loading CSS chunk', 'Minified React error',
    'ERR_FILE_NOT_FOUND', '/_next/image'];
  function isNoise(text) {
    return noisy.some(function (marker) { return String(text).indexOf(marker) !== -1; });
  }
  window.addEventListener('error', function (event) {
    if (isNoise(event.message || '')) { event.preventDefault(); }
  });
  window.addEventListener('unhandledrejection', function (event) {
    if (isNoise(event.reason || '')) { event.preventDefault(); }
  });
  if (!window.next) {
    window.next = {router: {
      push: function () { return Promise.resolve(true); },
      replace: function () { return Promise.resolve(true); },
      back: function () {},
      reload: function () { window.location.reload(); },
      events: {on: function () {}, off: function () {}, emit: function () {}}
    }};
  }
  document.addEventListener('DOMContentLoaded', function () {
    document.querySelectorAll('img').forEach(function (img) {
      if (img.src && img.src.indexOf('/_next/image') !== -1) {
        img.src = placeholder;
        img.style.opacity = '0.5';
      }
    });
  });
})();
"""


@dataclass
class SiteHook:
    """Post-processing step applied when ``matches(url, soup)`` is true."""

    name: str
    matches: Callable[[str, BeautifulSoup], bool]
    apply: Callable[[BeautifulSoup, str], None]


def inject_script(soup: BeautifulSoup, source: str) -> None:
    script = soup.new_tag("script")
    script.string = source
    head = soup.head
    if head is None:
        head = soup.new_tag("head")
        if soup.html is not None:
            soup.html.insert(0, head)
        else:
            soup.insert(0, head)
    head.append(script)


def is_next_app(url: str, soup: BeautifulSoup) -> bool:
    if soup.find("script", id="__NEXT_DATA__") is not None:
        return True
    return soup.find(src=lambda value: bool(value) and "_next/" in value) is not None


def _always(url: str, soup: BeautifulSoup) -> bool:
    return True


DEFAULT_HOOKS: List[SiteHook] = [
    SiteHook(
        name="offline-runtime",
        matches=_always,
        apply=lambda soup, url: inject_script(soup, OFFLINE_SHIM),
    ),
    SiteHook(
        name="nextjs",
        matches=is_next_app,
        apply=lambda soup, url: inject_script(soup, NEXT_SHIM % {"placeholder": PLACEHOLDER_IMAGE}),
    ),
]


def apply_hooks(soup: BeautifulSoup, url: str, hooks: Sequence[SiteHook] = DEFAULT_HOOKS) -> List[str]:
    """Run every matching hook; returns the names of the hooks that ran."""
    applied = []
    for hook in hooks:
        if hook.matches(url, soup):
            logger.debug("Applying %s hook", hook.name)
            hook.apply(soup, url)
            applied.append(hook.name)
    return applied
