"""Home page section definitions backed by upstream listing endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class HomeSectionDefinition:
    """Describes one listing rail shown on the home page."""

    key: str
    title: str
    endpoint: str
    params: Mapping[str, str | int] = field(default_factory=dict)


HOME_SECTIONS: tuple[HomeSectionDefinition, ...] = (
    HomeSectionDefinition(key="latest", title="Latest", endpoint="/latest"),
    HomeSectionDefinition(key="trending", title="Trending", endpoint="/trending"),
    HomeSectionDefinition(key="foryou", title="For You", endpoint="/foryou"),
    HomeSectionDefinition(key="random", title="Random Picks", endpoint="/randomdrama"),
    HomeSectionDefinition(key="vip", title="VIP", endpoint="/vip"),
    HomeSectionDefinition(
        key="dubindo",
        title="Dub Indo",
        endpoint="/dubindo",
        params={"classify": "terbaru", "page": 1},
    ),
)

HOME_SECTION_MAP: dict[str, HomeSectionDefinition] = {
    definition.key: definition for definition in HOME_SECTIONS
}

DEFAULT_HOME_SECTION_KEYS: tuple[str, ...] = ("latest", "trending", "foryou", "random")

# Sections whose items are advertised in the sitemap.
SITEMAP_SECTION_KEYS: tuple[str, ...] = ("vip", "latest", "trending", "foryou")
