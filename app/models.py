"""Pydantic models describing normalized catalog payloads."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SourceKind = Literal["file", "hls"]


class _Snapshot(BaseModel):
    """Immutable record serialised to the UI with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class CatalogCard(_Snapshot):
    """Summary of one title for grid or rail display."""

    id: str
    name: str = ""
    cover_url: str = ""
    synopsis: str = ""
    popularity_label: str = ""
    tags: tuple[str, ...] = ()
    episode_count: int = Field(default=0, ge=0)
    shelf_date: str = ""
    corner_badge: str | None = None


class Episode(_Snapshot):
    """One playable chapter of a title."""

    id: str
    index_in_title: int = Field(default=0, ge=0)
    index_label: str = ""
    display_name: str = ""
    unlocked: bool = False
    duration_seconds: int = Field(default=0, ge=0)
    primary_video_url: str = ""
    streaming_playlist_url: str = ""
    has_streaming_playlist: bool = False
    cover_url: str = ""


class TitleDetail(_Snapshot):
    """Full metadata for one title, including its chapters."""

    id: str
    name: str = ""
    cover_url: str = ""
    synopsis: str = ""
    view_count: int = Field(default=0, ge=0)
    follow_count: int = Field(default=0, ge=0)
    episode_count: int = Field(default=0, ge=0)
    tags: tuple[str, ...] = ()
    performers: tuple[dict[str, Any], ...] = ()
    recommended: tuple[CatalogCard, ...] = ()
    episodes: tuple[Episode, ...] = ()


class Language(_Snapshot):
    """A content language offered by the upstream catalog."""

    code: str
    name: str = ""


class VideoSource(_Snapshot):
    label: str
    url: str
    kind: SourceKind = "file"


class PlaybackSources(_Snapshot):
    """Playable variants of a single episode."""

    episode_id: str
    sources: tuple[VideoSource, ...] = ()
    best: str = ""

    @classmethod
    def from_episode(cls, episode: Episode) -> "PlaybackSources":
        """Return direct-file then HLS variants; ``best`` is the first one."""

        sources: list[VideoSource] = []
        if episode.primary_video_url:
            sources.append(
                VideoSource(label="MP4", url=episode.primary_video_url, kind="file")
            )
        if episode.has_streaming_playlist and episode.streaming_playlist_url:
            sources.append(
                VideoSource(label="HLS", url=episode.streaming_playlist_url, kind="hls")
            )
        best = sources[0].url if sources else ""
        return cls(episode_id=episode.id, sources=tuple(sources), best=best)


class PlaybackInfo(_Snapshot):
    """Signed playback record for one episode of a title."""

    code: str
    id: str = ""
    name: str = ""
    episode: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    sources: tuple[VideoSource, ...] = ()
    best: str = ""
    expires: int = Field(default=0, ge=0)
    expires_in: int = Field(default=0, ge=0)


class HomePage(_Snapshot):
    """Home page sections gathered from several listing endpoints."""

    sections: dict[str, tuple[CatalogCard, ...]] = Field(default_factory=dict)
    failed: tuple[str, ...] = ()
    hero: CatalogCard | None = None

    def all_cards(self) -> list[CatalogCard]:
        cards: list[CatalogCard] = []
        for items in self.sections.values():
            cards.extend(items)
        return cards
