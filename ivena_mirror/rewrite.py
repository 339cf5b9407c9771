"""Point asset references in captured HTML at the local cache."""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from .utils import cache_filename

ASSETS_PREFIX = "/assets/"
URL_ATTRIBUTES = ("href", "src")


def local_url(filename: str) -> str:
    return ASSETS_PREFIX + filename


def _strip_host(url: str) -> str:
    if "://" not in url and not url.startswith("//"):
        return url
    parts = urlsplit(url)
    stripped = parts.path
    if parts.query:
        stripped += "?" + parts.query
    return stripped


def alias_forms(url: str) -> List[str]:
    """String forms under which ``url`` may appear in an attribute value.

    Absolute form, host-stripped form, leading-slash-stripped form and bare
    filename, all lower-cased and in that order.
    """
    lowered = url.strip().lower()
    host_stripped = _strip_host(lowered)
    slash_stripped = host_stripped[1:] if host_stripped.startswith("/") else host_stripped
    forms: List[str] = []
    for form in (lowered, host_stripped, slash_stripped, cache_filename(lowered)):
        if form and form not in forms:
            forms.append(form)
    return forms


def build_alias_map(resources: Iterable[str]) -> Dict[str, str]:
    """Map every alias of every resource to its ``/assets/<filename>`` URL.

    Insertion follows discovery order; a later resource sharing an alias
    overwrites the earlier entry.
    """
    mapping: Dict[str, str] = {}
    for resource_url in resources:
        if resource_url.startswith("data:"):
            continue
        filename = cache_filename(resource_url)
        if not filename:
            continue
        target = local_url(filename)
        for alias in alias_forms(resource_url):
            mapping[alias] = target
    return mapping


def resolve_alias(value: str, alias_map: Dict[str, str]) -> str:
    """Local URL for an attribute value, or the value unchanged."""
    for form in alias_forms(value):
        target = alias_map.get(form)
        if target is not None:
            return target
    return value


def rewrite_html(html: str, alias_map: Dict[str, str]) -> Tuple[str, int]:
    """Rewrite ``href``/``src`` attributes that reference cached assets.

    Returns the serialized document and the number of attribute values changed.
    Already rewritten values resolve to themselves, so a second pass is a no-op.
    """
    if not alias_map:
        return html, 0
    soup = BeautifulSoup(html, "html.parser")
    replacements = 0
    for attribute in URL_ATTRIBUTES:
        for tag in soup.find_all(attrs={attribute: True}):
            value = tag.get(attribute)
            if not isinstance(value, str) or value.startswith("data:"):
                continue
            target = resolve_alias(value, alias_map)
            if target != value:
                tag[attribute] = target
                replacements += 1
    return soup.decode(), replacements
