"""Rewriting of resource references inside the rendered document."""

from __future__ import annotations

import base64
import logging
import posixpath
import re
from typing import Dict, Iterator, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .models import ReferenceRewriteTask
from .paths import canonical_path, href_for, split_fragment
from .resolver import ReferenceResolver, Resolution, ResolutionKind
from .stylesheets import rewrite_css
from .utils import contains_any

logger = logging.getLogger("pagepack")

RESOURCE_ATTRIBUTES = ("href", "src", "poster", "data-src", "data-bg", "data-anim-src")
SRCSET_ATTRIBUTES = ("srcset", "data-srcset", "imagesrcset")
IMAGE_TAGS = ("img", "source", "picture", "image")

_SRCSET_URL = re.compile(r"[\s,]*(\S+)")
_SRCSET_DESCRIPTOR = re.compile(r"[^,]*")

_PLACEHOLDER_SVG = (
    '<svg width="100" height="100" xmlns="http://www.w3.org/2000/svg">'
    '<rect width="100" height="100" fill="#ddd"/>'
    '<text x="50" y="50" font-size="12" text-anchor="middle" dy=".3em">Image</text>'
    "</svg>"
)
PLACEHOLDER_IMAGE = "data:image/svg+xml;base64," + base64.b64encode(
    _PLACEHOLDER_SVG.encode("utf-8")
).decode("ascii")
PLACEHOLDER_OPACITY = "0.5"


def set_style_property(tag: Tag, name: str, value: str) -> None:
    """Set one declaration in the inline ``style`` attribute, keeping the rest."""
    declarations: Dict[str, str] = {}
    for declaration in tag.get("style", "").split(";"):
        prop, sep, prop_value = declaration.partition(":")
        if sep and prop.strip():
            declarations[prop.strip().lower()] = prop_value.strip()
    declarations[name] = value
    tag["style"] = "; ".join(f"{prop}: {val}" for prop, val in declarations.items())


def apply_placeholder(tag: Tag, attribute: str) -> None:
    if attribute in ("src", "href"):
        tag[attribute] = PLACEHOLDER_IMAGE
        set_style_property(tag, "opacity", PLACEHOLDER_OPACITY)
    else:
        del tag[attribute]


def document_base_url(soup: BeautifulSoup, page_url: str) -> str:
    """Honour ``<base href>`` and drop it, since archived paths are root-relative."""
    base = soup.find("base", href=True)
    if base is None:
        return page_url
    base_url = urljoin(page_url, base["href"])
    base.decompose()
    return base_url


def _has_resource_attribute(tag: Tag) -> bool:
    return any(tag.has_attr(attribute) for attribute in RESOURCE_ATTRIBUTES + SRCSET_ATTRIBUTES)


def iter_rewrite_tasks(soup: BeautifulSoup, base_url: str) -> Iterator[ReferenceRewriteTask]:
    for tag in soup.find_all(_has_resource_attribute):
        for attribute in RESOURCE_ATTRIBUTES + SRCSET_ATTRIBUTES:
            value = tag.get(attribute)
            if not value:
                continue
            yield ReferenceRewriteTask(
                source=tag,
                attribute=attribute,
                reference=value,
                base_url=base_url,
                is_image=tag.name in IMAGE_TAGS or attribute == "poster",
            )


def _srcset_entries(value: str) -> List[List[str]]:
    """Split a srcset into ``[url]`` / ``[url, descriptor]`` entries.

    Follows the HTML parsing rules: a URL runs up to the next whitespace and
    may contain commas; only a comma after the descriptor (or trailing the
    URL itself) separates candidates.
    """
    entries = []
    position = 0
    while True:
        match = _SRCSET_URL.match(value, position)
        if match is None:
            break
        url = match.group(1)
        position = match.end()
        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            described = _SRCSET_DESCRIPTOR.match(value, position)
            descriptor = described.group(0).strip()
            position = described.end() + 1
        if url:
            entries.append([url, descriptor] if descriptor else [url])
    return entries


def srcset_references(value: str) -> List[str]:
    return [entry[0] for entry in _srcset_entries(value)]


def queue_proxy_originals(soup: BeautifulSoup, resolver: ReferenceResolver, base_url: str) -> int:
    """Queue the originals behind every optimized image before rewriting."""
    queued = 0
    for task in iter_rewrite_tasks(soup, base_url):
        if task.attribute in SRCSET_ATTRIBUTES:
            references = srcset_references(task.reference)
        else:
            references = [task.reference]
        for reference in references:
            if not resolver.is_image_proxy(reference):
                continue
            if resolver.queue_proxy_original(reference, base_url):
                queued += 1
    if queued:
        logger.info("Found %d original image(s) behind optimized URLs", queued)
    return queued


def _rewrite_srcset(task: ReferenceRewriteTask, resolver: ReferenceResolver) -> Optional[str]:
    kept = []
    for entry in _srcset_entries(task.reference):
        reference, descriptor = entry[0], entry[1:]
        resolution = resolver.resolve(
            ReferenceRewriteTask(task.source, task.attribute, reference, task.base_url, True)
        )
        if resolution.kind is ResolutionKind.RESOLVED:
            _, fragment = split_fragment(reference)
            reference = href_for(resolution.key) + fragment
        elif resolution.kind in (ResolutionKind.REMOVED, ResolutionKind.PLACEHOLDER):
            continue
        kept.append(" ".join([reference] + descriptor))
    return ", ".join(kept) or None


def _apply(task: ReferenceRewriteTask, resolution: Resolution) -> bool:
    tag, attribute = task.source, task.attribute
    kind = resolution.kind
    if kind is ResolutionKind.RESOLVED:
        _, fragment = split_fragment(task.reference.strip())
        tag[attribute] = href_for(resolution.key) + fragment
        return True
    if kind is ResolutionKind.REMOVED:
        del tag[attribute]
        return True
    if kind is ResolutionKind.PLACEHOLDER:
        apply_placeholder(tag, attribute)
        return True
    if kind is ResolutionKind.UNRESOLVED and tag.name == "img" and attribute == "src":
        apply_placeholder(tag, attribute)
        return True
    return False


def rewrite_markup(soup: BeautifulSoup, resolver: ReferenceResolver, base_url: str) -> int:
    """Point every resource-bearing attribute at its archived copy.

    Returns the number of attributes that were changed.
    """
    changed = 0
    for task in iter_rewrite_tasks(soup, base_url):
        if task.attribute in SRCSET_ATTRIBUTES:
            value = _rewrite_srcset(task, resolver)
            if value is None:
                del task.source[task.attribute]
            else:
                task.source[task.attribute] = value
            if value != task.reference:
                changed += 1
            continue
        if _apply(task, resolver.resolve(task)):
            changed += 1
    changed += rewrite_inline_styles(soup, resolver, base_url)
    logger.info("Rewrote %d reference(s) in the document", changed)
    return changed


def rewrite_inline_styles(soup: BeautifulSoup, resolver: ReferenceResolver, base_url: str) -> int:
    """Run ``style`` attributes and ``<style>`` blocks through the CSS rewriter."""
    doc_dir = posixpath.dirname(canonical_path(base_url, resolver.max_path_length))
    changed = 0
    for tag in soup.find_all(style=True):
        style = tag["style"]
        if "url(" not in style:
            continue
        updated = rewrite_css(
            style, resolver, doc_dir, output_dir="", source_url=base_url, label="style attribute"
        )
        if updated != style:
            tag["style"] = updated
            changed += 1
    for block in soup.find_all("style"):
        if block.string is None or "url(" not in block.string:
            continue
        text = str(block.string)
        updated = rewrite_css(
            text, resolver, doc_dir, output_dir="", source_url=base_url, label="<style> block"
        )
        if updated != text:
            block.string = updated
            changed += 1
    return changed


def cleanup_residual_references(soup: BeautifulSoup, resolver: ReferenceResolver, base_url: str) -> int:
    """Remove optimized-image and API references the main pass left behind.

    Frameworks repeat image URLs across ``src``, ``srcset`` and preload
    ``<link>`` elements, so each of those is reconciled on its own here.
    """
    proxies = resolver.image_proxy_markers
    apis = resolver.api_markers
    removed = 0

    for img in soup.find_all("img"):
        srcset = img.get("srcset", "")
        if contains_any(srcset, proxies):
            del img["srcset"]
            removed += 1
        src = img.get("src", "")
        if contains_any(src, proxies):
            key = resolver.resolve_residual(src, base_url)
            if key is not None:
                logger.debug("Final cleanup: replacing %s with %s", src, key)
                img["src"] = href_for(key)
            else:
                logger.debug("Final cleanup: replacing %s with placeholder", src)
                apply_placeholder(img, "src")
            removed += 1
        elif contains_any(src, apis):
            del img["src"]
            removed += 1

    for link in soup.find_all("link"):
        if contains_any(link.get("imagesrcset", ""), proxies) or contains_any(link.get("href", ""), proxies):
            link.decompose()
            removed += 1

    for script in soup.find_all("script", src=True):
        if contains_any(script["src"], apis):
            script.decompose()
            removed += 1

    if removed:
        logger.info("Final cleanup touched %d residual reference(s)", removed)
    return removed
