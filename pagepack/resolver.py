"""Resolution of markup and stylesheet references against the resource store.

Generic matching is an ordered tuple of strategies. Each strategy is a pure
function ``(candidate, store) -> Optional[str]`` and the first hit wins, so
the tie-break order can be exercised one strategy at a time.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, unquote, urljoin, urlsplit

from .config import API_MARKERS, IMAGE_PROXY_MARKERS, MAX_PATH_LENGTH
from .errors import REFERENCE_UNRESOLVED
from .images import ExternalAssetHarvester
from .models import CloneWarning, ReferenceRewriteTask
from .paths import canonical_path, strip_query
from .store import ResourceStore
from .utils import (
    contains_any,
    is_absolute_http,
    is_inert,
    is_off_origin,
    looks_like_image,
)

logger = logging.getLogger("pagepack")

Strategy = Callable[[str, ResourceStore], Optional[str]]

_FUZZY_NOISE = re.compile(r"[%\[\]]")


class ResolutionKind(Enum):
    PASSTHROUGH = "passthrough"
    RESOLVED = "resolved"
    REMOVED = "removed"
    PLACEHOLDER = "placeholder"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Resolution:
    kind: ResolutionKind
    key: Optional[str] = None


PASSTHROUGH = Resolution(ResolutionKind.PASSTHROUGH)
REMOVED = Resolution(ResolutionKind.REMOVED)
PLACEHOLDER = Resolution(ResolutionKind.PLACEHOLDER)
UNRESOLVED = Resolution(ResolutionKind.UNRESOLVED)


def exact_match(candidate: str, store: ResourceStore) -> Optional[str]:
    return candidate if candidate in store else None


def decoded_match(candidate: str, store: ResourceStore) -> Optional[str]:
    decoded = unquote(candidate)
    if decoded != candidate and decoded in store:
        return decoded
    return None


def query_stripped_match(candidate: str, store: ResourceStore) -> Optional[str]:
    stripped = strip_query(candidate)
    return stripped if stripped and stripped in store else None


def prefix_match(candidate: str, store: ResourceStore) -> Optional[str]:
    """Any key extending the query-stripped candidate, e.g. a sanitized query variant."""
    stripped = strip_query(candidate)
    if not stripped:
        return None
    for key in store:
        if key.startswith(stripped):
            return key
    return None


def query_variant_match(candidate: str, store: ResourceStore) -> Optional[str]:
    """Narrower form of ``prefix_match``: only ``<candidate>?...`` keys qualify."""
    stripped = strip_query(candidate)
    if not stripped:
        return None
    for key in store:
        if key.startswith(stripped + "?"):
            return key
    return None


def _basename(value: str) -> str:
    return posixpath.basename(strip_query(value).rstrip("/"))


def fuzzy_match(candidate: str, store: ResourceStore) -> Optional[str]:
    """Containment match ignoring ``[]%``, bounded to keys with the same file name."""
    target = _FUZZY_NOISE.sub("", candidate)
    target_name = _FUZZY_NOISE.sub("", _basename(candidate))
    if not target or not target_name:
        return None
    for key in store:
        normalized = _FUZZY_NOISE.sub("", key)
        if not normalized:
            continue
        if _FUZZY_NOISE.sub("", _basename(key)) != target_name:
            continue
        if target in normalized or normalized in target:
            return key
    return None


def suffix_match(candidate: str, store: ResourceStore) -> Optional[str]:
    for key in store:
        if key.endswith("/" + candidate):
            return key
    return None


def basename_match(candidate: str, store: ResourceStore) -> Optional[str]:
    name = _basename(candidate)
    if not name:
        return None
    for key in store:
        if _basename(key) == name:
            return key
    return None


MARKUP_STRATEGIES: Tuple[Strategy, ...] = (
    exact_match,
    decoded_match,
    query_stripped_match,
    prefix_match,
    fuzzy_match,
)

STYLESHEET_STRATEGIES: Tuple[Strategy, ...] = (
    exact_match,
    query_stripped_match,
    query_variant_match,
)

# Last-chance matching for optimized images that survived the main pass.
RESIDUAL_STRATEGIES: Tuple[Strategy, ...] = (
    exact_match,
    suffix_match,
    basename_match,
)


def first_match(
    candidate: str,
    store: ResourceStore,
    strategies: Sequence[Strategy] = MARKUP_STRATEGIES,
) -> Optional[str]:
    for strategy in strategies:
        key = strategy(candidate, store)
        if key is not None:
            return key
    return None


def embedded_image_url(reference: str, base_url: str, markers: Sequence[str]) -> Optional[str]:
    """Absolute URL of the original image carried by an optimization-proxy URL."""
    if not contains_any(reference, markers):
        return None
    try:
        parsed = urlsplit(urljoin(base_url, reference))
    except ValueError:
        return None
    original = parse_qs(parsed.query).get("url")
    if not original or not original[0]:
        return None
    return urljoin(base_url, original[0])


class ReferenceResolver:
    """Resolves references for one clone run.

    Lookups are memoized per (reference, base URL) so a reference that
    resolved once keeps resolving to the same key for the rest of the run.
    """

    def __init__(
        self,
        store: ResourceStore,
        harvester: ExternalAssetHarvester,
        page_url: str,
        image_proxy_markers: Sequence[str] = IMAGE_PROXY_MARKERS,
        api_markers: Sequence[str] = API_MARKERS,
        max_path_length: int = MAX_PATH_LENGTH,
    ) -> None:
        self.store = store
        self.harvester = harvester
        self.page_url = page_url
        self.image_proxy_markers = tuple(image_proxy_markers)
        self.api_markers = tuple(api_markers)
        self.max_path_length = max_path_length
        self.warnings: List[CloneWarning] = []
        self._memo: Dict[Tuple[str, str], str] = {}

    def is_image_proxy(self, reference: str) -> bool:
        return contains_any(reference, self.image_proxy_markers)

    def is_api(self, reference: str) -> bool:
        return contains_any(reference, self.api_markers)

    def candidate_for(self, reference: str, base_url: str) -> Optional[str]:
        try:
            absolute = urljoin(base_url, reference.strip())
        except ValueError:
            return None
        if urlsplit(absolute).scheme not in ("http", "https"):
            return None
        return canonical_path(absolute, self.max_path_length)

    def lookup(self, reference: str, base_url: str) -> Optional[str]:
        """Run the generic strategy chain for ``reference`` without side effects."""
        memo_key = (reference, base_url)
        if memo_key in self._memo:
            return self._memo[memo_key]
        candidate = self.candidate_for(reference, base_url)
        if candidate is None:
            return None
        key = first_match(candidate, self.store)
        if key is not None:
            self._memo[memo_key] = key
        return key

    def queue_proxy_original(self, reference: str, base_url: str) -> Optional[str]:
        """Queue the original behind a proxy URL unless it is already stored."""
        original = embedded_image_url(reference, base_url, self.image_proxy_markers)
        if original is None or self.lookup(original, base_url) is not None:
            return None
        if is_off_origin(original, self.page_url):
            local_path = self.harvester.reserve(original)
        else:
            local_path = self.harvester.reserve(
                original, canonical_path(original, self.max_path_length)
            )
        logger.debug("Queued original image %s for %s", original, reference)
        return local_path

    def resolve_proxy(self, reference: str, base_url: str) -> Resolution:
        original = embedded_image_url(reference, base_url, self.image_proxy_markers)
        if original is not None:
            key = self.lookup(original, base_url)
            if key is None:
                harvested = self.harvester.local_path_for(original)
                if harvested is not None and harvested in self.store:
                    key = harvested
            if key is not None:
                logger.debug("Replacing optimized image %s with original %s", reference, key)
                return Resolution(ResolutionKind.RESOLVED, key)
        logger.debug("Replacing optimized image %s with placeholder", reference)
        return PLACEHOLDER

    def resolve_residual(self, reference: str, base_url: str) -> Optional[str]:
        """Looser lookup for an optimized image left over after the main pass."""
        original = embedded_image_url(reference, base_url, self.image_proxy_markers)
        if original is None:
            return None
        harvested = self.harvester.local_path_for(original)
        if harvested is not None and harvested in self.store:
            return harvested
        candidate = canonical_path(original, self.max_path_length)
        return first_match(candidate, self.store, RESIDUAL_STRATEGIES)

    def resolve(self, task: ReferenceRewriteTask) -> Resolution:
        reference = task.reference.strip()
        if not reference or is_inert(reference):
            return PASSTHROUGH
        if self.is_image_proxy(reference):
            return self.resolve_proxy(reference, task.base_url)
        if self.is_api(reference):
            logger.debug("Removing API reference %s", reference)
            return REMOVED

        key = self.lookup(reference, task.base_url)
        if key is not None:
            return Resolution(ResolutionKind.RESOLVED, key)

        if (
            is_absolute_http(reference)
            and is_off_origin(reference, self.page_url)
            and (task.is_image or looks_like_image(reference))
        ):
            local_path = self.harvester.reserve(reference)
            self._memo[(reference, task.base_url)] = local_path
            logger.debug("Queued external image %s as %s", reference, local_path)
            return Resolution(ResolutionKind.RESOLVED, local_path)

        candidate = self.candidate_for(reference, task.base_url)
        logger.info("Could not find resource: %s (original: %s)", candidate, reference)
        self.warnings.append(
            CloneWarning(REFERENCE_UNRESOLVED, f"{reference} -> {candidate or '?'}")
        )
        return UNRESOLVED
