"""Merging a media metadata index with objects discovered in storage.

Listing a bucket prefix can surface uploads that never made it into the
metadata JSON. Merging is kept as a pure function so the listing job and its
tests do not need a bucket.
"""

from typing import Any, Iterable, Mapping


def reconcile(known_items: Iterable[Mapping[str, Any]], discovered_items: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Known items first, in order, then discovered items whose ``url`` is new.

    Discovered duplicates (by url) are collapsed to their first occurrence;
    items without a url are ignored. Inputs are not mutated.
    """
    merged = [dict(item) for item in known_items]
    seen = {item.get("url") for item in merged if item.get("url")}
    for item in discovered_items:
        url = item.get("url")
        if not url or url in seen:
            continue
        seen.add(url)
        merged.append(dict(item))
    return merged
