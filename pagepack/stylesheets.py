"""Rewriting of ``url(...)`` references inside captured stylesheets."""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Dict, List, Optional
from urllib.parse import unquote, urljoin, urlsplit

from .errors import CAPTURE_DECODE_FAILURE, REFERENCE_UNRESOLVED
from .models import CloneWarning
from .paths import canonical_path, relative_href, split_fragment
from .resolver import STYLESHEET_STRATEGIES, ReferenceResolver, first_match
from .utils import is_absolute_http, is_inert, is_off_origin

logger = logging.getLogger("pagepack")

CSS_URL_PATTERN = re.compile(
    r"""url\(\s*(?:"([^"]*)"|'([^']*)'|([^)'"]*))\s*\)""", re.IGNORECASE
)


def clean_css_url(raw: str) -> str:
    return raw.strip().strip("'\"").strip()


def css_url(match: "re.Match[str]") -> str:
    """The reference inside a ``CSS_URL_PATTERN`` match, whichever quoting it used."""
    quoted_double, quoted_single, bare = match.groups()
    for value in (quoted_double, quoted_single, bare):
        if value is not None:
            return clean_css_url(value)
    return ""


def _absolute(reference: str) -> Optional[str]:
    if is_absolute_http(reference):
        return reference
    if reference.startswith("//"):
        return "https:" + reference
    return None


def _with_query(path: str, reference: str) -> str:
    query = urlsplit(reference).query
    return f"{path}?{query}" if query else path


def prescan_stylesheets(resolver: ReferenceResolver) -> int:
    """Queue off-origin images referenced from CSS before any rewriting happens."""
    queued = 0
    for key, resource in resolver.store.items():
        if not resource.is_stylesheet:
            continue
        try:
            text = resource.content.decode("utf-8")
        except UnicodeDecodeError:
            continue
        for match in CSS_URL_PATTERN.finditer(text):
            absolute = _absolute(css_url(match))
            if absolute is None or not is_off_origin(absolute, resolver.page_url):
                continue
            if resolver.harvester.local_path_for(absolute) is not None:
                continue
            candidate = canonical_path(absolute, resolver.max_path_length)
            if first_match(candidate, resolver.store, STYLESHEET_STRATEGIES) is not None:
                continue
            local_path = resolver.harvester.reserve(absolute)
            logger.debug("Found external image in %s: %s -> %s", key, absolute, local_path)
            queued += 1
    if queued:
        logger.info("Queued %d external image(s) referenced from stylesheets", queued)
    return queued


def _resolve_css_reference(
    reference: str,
    resolver: ReferenceResolver,
    base_dir: str,
    source_url: Optional[str],
) -> Optional[str]:
    store = resolver.store
    absolute = _absolute(reference)
    if absolute is not None:
        harvested = resolver.harvester.local_path_for(absolute)
        if harvested is not None and harvested in store:
            return harvested
        candidate = canonical_path(absolute, resolver.max_path_length)
        return first_match(candidate, store, STYLESHEET_STRATEGIES)

    if reference.startswith("/"):
        candidate = canonical_path(urljoin(resolver.page_url, reference), resolver.max_path_length)
        return first_match(candidate, store, STYLESHEET_STRATEGIES)

    candidates: List[str] = []
    if source_url:
        candidates.append(canonical_path(urljoin(source_url, reference), resolver.max_path_length))
    path = unquote(urlsplit(reference).path)
    if path:
        candidates.append(_with_query(posixpath.normpath(posixpath.join(base_dir, path)), reference))
        candidates.append(_with_query(posixpath.normpath(path), reference))
    for candidate in candidates:
        key = first_match(candidate, store, STYLESHEET_STRATEGIES)
        if key is not None:
            return key
    return None


def rewrite_css(
    text: str,
    resolver: ReferenceResolver,
    base_dir: str,
    output_dir: Optional[str] = None,
    source_url: Optional[str] = None,
    label: str = "stylesheet",
) -> str:
    """Point every resolvable ``url()`` in ``text`` at its archived copy.

    ``base_dir`` is the directory relative references are joined against and
    ``output_dir`` the directory the rewritten text will live in. References
    that cannot be matched are left exactly as they were.
    """
    if output_dir is None:
        output_dir = base_dir

    def replace(match: "re.Match[str]") -> str:
        original = css_url(match)
        if not original or is_inert(original):
            return match.group(0)
        reference, fragment = split_fragment(original)
        key = _resolve_css_reference(reference, resolver, base_dir, source_url)
        if key is None:
            logger.info("Could not find resource for CSS url %r in %s", original, label)
            resolver.warnings.append(
                CloneWarning(REFERENCE_UNRESOLVED, f"{original} in {label}")
            )
            return match.group(0)
        return f"url('{relative_href(key, output_dir)}{fragment}')"

    return CSS_URL_PATTERN.sub(replace, text)


def rewrite_stylesheets(resolver: ReferenceResolver) -> Dict[str, bytes]:
    """Rewrite every stylesheet in the store; returns key -> rewritten bytes."""
    rewritten: Dict[str, bytes] = {}
    for key, resource in resolver.store.items():
        if not resource.is_stylesheet:
            continue
        try:
            text = resource.content.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning("Could not process CSS file %s: %s", key, exc)
            resolver.warnings.append(CloneWarning(CAPTURE_DECODE_FAILURE, f"{key}: {exc}"))
            continue
        css_dir = posixpath.dirname(key)
        rewritten[key] = rewrite_css(
            text,
            resolver,
            base_dir=css_dir,
            source_url=resource.source_url,
            label=key,
        ).encode("utf-8")
    return rewritten
