"""
Supported source sites. Only public index and detail pages are scraped; no authentication.

Each site: id, name, base_url, index_path, link_patterns, image_path_markers, image_skip_markers.
link_patterns are regexes matched against the href path; an href is kept if any matches.
"""

import re

SITES = [
    {
        "id": "karasuemlak",
        "name": "Karasu Emlak",
        "base_url": "https://www.karasuemlak.net",
        "index_path": "/ilanlar",
        "link_patterns": [
            r"/ilan/[^/?#]+",
            r"/ilanlar/[^/?#]+",
            r"/emlak/[^/?#]+",
            r"/listings?/[^/?#]+",
            r"/propert(?:y|ies)/[^/?#]+",
        ],
        "image_path_markers": ["/uploads/", "/upload/", "/media/"],
        "image_skip_markers": ["logo", "icon", "favicon", "sprite"],
    },
]


def get_site(site_id: str | None = None) -> dict:
    """Return the site config by id (default: first site)."""
    if site_id is None:
        return SITES[0]
    for site in SITES:
        if site["id"] == site_id:
            return site
    raise KeyError(f"Unknown site: {site_id}")


def compile_link_patterns(site: dict) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in site["link_patterns"]]
