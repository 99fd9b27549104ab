"""Normalizers turning heterogeneous upstream JSON into stable records.

Every field the upstream has been seen to spell differently is resolved from
an ordered tuple of candidate paths, first non-empty value wins. Keeping the
candidates in the constants below means the set of tolerated upstream shapes
can be audited in one place. None of these functions raise on malformed
input; at worst they return an empty sequence or a record of defaults.
"""

from __future__ import annotations

import enum
import logging
import re
from typing import Any, Sequence

from .models import CatalogCard, Episode, Language, PlaybackInfo, TitleDetail, VideoSource
from .utils import (
    FieldPath,
    as_text,
    coerce_bool,
    coerce_count,
    dig,
    first_list,
    first_non_empty,
    to_absolute_url,
)

logger = logging.getLogger(__name__)

CARD_ID_FIELDS: tuple[FieldPath, ...] = ("bookId", "id", "code", "book_id")
CARD_NAME_FIELDS: tuple[FieldPath, ...] = ("bookName", "name", "title")
CARD_COVER_FIELDS: tuple[FieldPath, ...] = (
    "coverWap",
    "cover",
    "bookCover",
    "coverUrl",
    "cover_url",
    "poster",
    "thumb",
    "image",
    "img",
)
CARD_SYNOPSIS_FIELDS: tuple[FieldPath, ...] = (
    "introduction",
    "summary",
    "description",
    "desc",
)
CARD_POPULARITY_FIELDS: tuple[FieldPath, ...] = (
    "playCount",
    ("rankVo", "hotCode"),
)
CARD_EPISODE_COUNT_FIELDS: tuple[FieldPath, ...] = (
    "chapterCount",
    "episodes",
    "totalEpisode",
    "episodeCount",
)
CARD_TAG_FIELDS: tuple[FieldPath, ...] = ("tags", "tagNames", "tagV3s")
CARD_SHELF_DATE_FIELDS: tuple[FieldPath, ...] = ("shelfTime", "shelfDate", "releaseDate")
CARD_BADGE_FIELDS: tuple[FieldPath, ...] = (("corner", "name"), "cornerName", "badge")

DETAIL_BOOK_PATHS: tuple[FieldPath, ...] = (("data", "book"), "book", "data")
DETAIL_TAG_FIELDS: tuple[FieldPath, ...] = ("tags", "tagV3s")
DETAIL_VIEW_FIELDS: tuple[FieldPath, ...] = ("viewCount", "playCount", "views")
DETAIL_FOLLOW_FIELDS: tuple[FieldPath, ...] = (
    "followCount",
    "favorites",
    "collectCount",
)
DETAIL_PERFORMER_FIELDS: tuple[FieldPath, ...] = ("performerList", "performers", "actors")
DETAIL_RECOMMEND_FIELDS: tuple[FieldPath, ...] = (
    "recommends",
    "recommendList",
    "recommend",
)

EPISODE_LIST_PATHS: tuple[FieldPath, ...] = (
    (),
    "data",
    ("data", "chapterList"),
    ("data", "book", "chapterList"),
    "chapterList",
    ("data", "episodes"),
    "episodes",
    ("data", "list"),
)
EPISODE_ID_FIELDS: tuple[FieldPath, ...] = ("chapterId", "id", "episodeId", "vid")
EPISODE_INDEX_FIELDS: tuple[FieldPath, ...] = ("chapterIndex", "index")
EPISODE_NUMBER_FIELDS: tuple[FieldPath, ...] = ("episode", "episodeNo", "num")
EPISODE_LABEL_FIELDS: tuple[FieldPath, ...] = ("chapterIndexStr", "indexStr")
EPISODE_NAME_FIELDS: tuple[FieldPath, ...] = ("chapterName", "name", "title")
EPISODE_UNLOCK_FIELDS: tuple[FieldPath, ...] = ("unlock", "isUnlock", "unlocked")
EPISODE_LOCK_FIELDS: tuple[FieldPath, ...] = ("locked", "isLock", "isCharge")
EPISODE_DURATION_FIELDS: tuple[FieldPath, ...] = ("duration", "durationSeconds", "videoDuration")
EPISODE_VIDEO_FIELDS: tuple[FieldPath, ...] = ("mp4", "videoPath", "videoUrl", "url")
EPISODE_PLAYLIST_FIELDS: tuple[FieldPath, ...] = ("m3u8Url", "m3u8", "hlsUrl")
EPISODE_PLAYLIST_FLAG_FIELDS: tuple[FieldPath, ...] = ("m3u8Flag", "hasM3u8", "hls")
EPISODE_COVER_FIELDS: tuple[FieldPath, ...] = ("chapterImg", "cover", "coverUrl", "img")

LANGUAGE_CODE_FIELDS: tuple[FieldPath, ...] = ("code", "lang", "language", "id", "value")
LANGUAGE_NAME_FIELDS: tuple[FieldPath, ...] = ("name", "label", "title", "nativeName")

PLAYBACK_RECORD_PATHS: tuple[FieldPath, ...] = ("data",)
RESOLUTION_RE = re.compile(r"(\d{3,4})")


class EnvelopeShape(enum.Enum):
    """Wrapper shapes a listing response arrives in."""

    ARRAY = "array"
    DATA = "data"
    LIST = "list"
    ITEMS = "items"
    UNKNOWN = "unknown"


# Checked in this order; the first key holding a list wins.
_ENVELOPE_KEYS: tuple[tuple[EnvelopeShape, str], ...] = (
    (EnvelopeShape.DATA, "data"),
    (EnvelopeShape.LIST, "list"),
    (EnvelopeShape.ITEMS, "items"),
)


def classify_envelope(raw: Any) -> EnvelopeShape:
    if isinstance(raw, list):
        return EnvelopeShape.ARRAY
    if isinstance(raw, dict):
        for shape, key in _ENVELOPE_KEYS:
            if isinstance(raw.get(key), list):
                return shape
    return EnvelopeShape.UNKNOWN


def normalize_list_envelope(raw: Any) -> list[Any]:
    """Return the raw items of a listing response, whatever its wrapper."""

    shape = classify_envelope(raw)
    if shape is EnvelopeShape.ARRAY:
        return list(raw)
    if shape is EnvelopeShape.UNKNOWN:
        return []
    return list(raw[shape.value])


def _tag_names(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    names: list[str] = []
    for entry in value:
        if isinstance(entry, dict):
            entry = first_non_empty(entry, ("tagName", "name", "label"))
        text = as_text(entry)
        if text:
            names.append(text)
    return tuple(names)


def _optional_text(value: Any) -> str | None:
    text = as_text(value)
    return text or None


def normalize_card(item: Any) -> CatalogCard:
    """Convert one listing item into a card; ``id`` is empty when unresolvable."""

    if not isinstance(item, dict):
        return CatalogCard(id="")

    return CatalogCard(
        id=as_text(first_non_empty(item, CARD_ID_FIELDS)),
        name=as_text(first_non_empty(item, CARD_NAME_FIELDS)),
        cover_url=to_absolute_url(first_non_empty(item, CARD_COVER_FIELDS)),
        synopsis=as_text(first_non_empty(item, CARD_SYNOPSIS_FIELDS)),
        popularity_label=as_text(first_non_empty(item, CARD_POPULARITY_FIELDS)),
        tags=_tag_names(first_non_empty(item, CARD_TAG_FIELDS)),
        episode_count=coerce_count(first_non_empty(item, CARD_EPISODE_COUNT_FIELDS)),
        shelf_date=as_text(first_non_empty(item, CARD_SHELF_DATE_FIELDS)),
        corner_badge=_optional_text(first_non_empty(item, CARD_BADGE_FIELDS)),
    )


def normalize_cards(raw: Any) -> list[CatalogCard]:
    """Normalize a listing response, dropping items without an id."""

    cards: list[CatalogCard] = []
    for item in normalize_list_envelope(raw):
        card = normalize_card(item)
        if card.id:
            cards.append(card)
    return cards


def _locate_book(raw: Any) -> dict[str, Any]:
    for path in DETAIL_BOOK_PATHS:
        candidate = dig(raw, path)
        if isinstance(candidate, dict) and candidate:
            return candidate
    return raw if isinstance(raw, dict) else {}


def _nested_list(book: dict[str, Any], raw: Any, fields: Sequence[FieldPath]) -> list[Any]:
    """Look for a list on the book record, then on the ``data`` wrapper."""

    containers = [book]
    wrapper = dig(raw, "data")
    if isinstance(wrapper, dict) and wrapper is not book:
        containers.append(wrapper)
    for container in containers:
        found = first_list(container, fields)
        if found:
            return found
    return []


def normalize_detail(raw: Any, *, fallback_id: str = "") -> TitleDetail:
    """Normalize a detail response into a :class:`TitleDetail` snapshot."""

    book = _locate_book(raw)

    primary_tags = _tag_names(book.get("tags"))
    secondary_tags = _tag_names(book.get("tagV3s"))
    tags = primary_tags or secondary_tags

    performers = tuple(
        entry for entry in _nested_list(book, raw, DETAIL_PERFORMER_FIELDS)
        if isinstance(entry, dict)
    )
    recommended = tuple(normalize_cards(_nested_list(book, raw, DETAIL_RECOMMEND_FIELDS)))
    episodes = tuple(normalize_episodes(raw))

    episode_count = coerce_count(first_non_empty(book, CARD_EPISODE_COUNT_FIELDS))
    if not episode_count:
        episode_count = len(episodes)

    return TitleDetail(
        id=as_text(first_non_empty(book, CARD_ID_FIELDS)) or fallback_id,
        name=as_text(first_non_empty(book, CARD_NAME_FIELDS)),
        cover_url=to_absolute_url(first_non_empty(book, CARD_COVER_FIELDS)),
        synopsis=as_text(first_non_empty(book, CARD_SYNOPSIS_FIELDS)),
        view_count=coerce_count(first_non_empty(book, DETAIL_VIEW_FIELDS)),
        follow_count=coerce_count(first_non_empty(book, DETAIL_FOLLOW_FIELDS)),
        episode_count=episode_count,
        tags=tags,
        performers=performers,
        recommended=recommended,
        episodes=episodes,
    )


def _cdn_video_path(entry: dict[str, Any]) -> Any:
    """Return the default (or first) video path advertised in ``cdnList``."""

    cdn_list = entry.get("cdnList")
    if not isinstance(cdn_list, list):
        return None
    fallback = None
    for cdn in cdn_list:
        paths = dig(cdn, "videoPathList")
        if not isinstance(paths, list):
            continue
        for option in paths:
            if not isinstance(option, dict) or not option.get("videoPath"):
                continue
            if coerce_bool(option.get("isDefault")):
                return option["videoPath"]
            if fallback is None:
                fallback = option["videoPath"]
    return fallback


def _episode_index(entry: dict[str, Any], position: int) -> int:
    index = first_non_empty(entry, EPISODE_INDEX_FIELDS)
    if index is not None:
        return coerce_count(index)
    number = first_non_empty(entry, EPISODE_NUMBER_FIELDS)
    if number is not None and coerce_count(number) > 0:
        return coerce_count(number) - 1
    return position


def _unlocked(entry: dict[str, Any]) -> bool:
    for path in EPISODE_UNLOCK_FIELDS:
        value = dig(entry, path)
        if value is not None:
            return coerce_bool(value)
    for path in EPISODE_LOCK_FIELDS:
        value = dig(entry, path)
        if value is not None:
            return not coerce_bool(value)
    return False


def normalize_episode(entry: Any, position: int = 0) -> Episode:
    if not isinstance(entry, dict):
        return Episode(id="")

    index = _episode_index(entry, position)
    playlist_url = to_absolute_url(first_non_empty(entry, EPISODE_PLAYLIST_FIELDS))
    playlist_flag = first_non_empty(entry, EPISODE_PLAYLIST_FLAG_FIELDS)
    video = first_non_empty(entry, EPISODE_VIDEO_FIELDS) or _cdn_video_path(entry)

    return Episode(
        id=as_text(first_non_empty(entry, EPISODE_ID_FIELDS)),
        index_in_title=index,
        index_label=as_text(first_non_empty(entry, EPISODE_LABEL_FIELDS)) or f"{index + 1:03d}",
        display_name=as_text(first_non_empty(entry, EPISODE_NAME_FIELDS)) or f"EP {index + 1}",
        unlocked=_unlocked(entry),
        duration_seconds=coerce_count(first_non_empty(entry, EPISODE_DURATION_FIELDS)),
        primary_video_url=to_absolute_url(video),
        streaming_playlist_url=playlist_url,
        has_streaming_playlist=(
            coerce_bool(playlist_flag) if playlist_flag is not None else bool(playlist_url)
        ),
        cover_url=to_absolute_url(first_non_empty(entry, EPISODE_COVER_FIELDS)),
    )


def normalize_episodes(raw: Any) -> list[Episode]:
    """Normalize a chapter list; entries without an id are always dropped."""

    entries = first_list(raw, EPISODE_LIST_PATHS) or []
    episodes: list[Episode] = []
    for position, entry in enumerate(entries):
        episode = normalize_episode(entry, position)
        if episode.id:
            episodes.append(episode)
    if len(episodes) != len(entries):
        logger.debug("Dropped %d chapter(s) without an id", len(entries) - len(episodes))
    return episodes


def _resolution(label: str) -> int:
    match = RESOLUTION_RE.search(label)
    return int(match.group(1)) if match else 0


def _video_sources(video: Any) -> tuple[VideoSource, ...]:
    if not isinstance(video, dict):
        return ()
    sources: list[VideoSource] = []
    for label, url in video.items():
        resolved = to_absolute_url(url) if isinstance(url, str) else ""
        if not resolved:
            continue
        kind = "hls" if ".m3u8" in resolved.lower() else "file"
        sources.append(VideoSource(label=str(label), url=resolved, kind=kind))
    return tuple(sources)


def normalize_playback(raw: Any, *, code: str, episode: int) -> PlaybackInfo:
    """Normalize a signed playback response; ``best`` is the highest resolution."""

    record = first_non_empty(raw, PLAYBACK_RECORD_PATHS)
    if not isinstance(record, dict):
        return PlaybackInfo(code=code, episode=max(0, episode))

    sources = _video_sources(record.get("video"))
    best = ""
    if sources:
        best = max(sources, key=lambda source: _resolution(source.label)).url

    return PlaybackInfo(
        code=code,
        id=as_text(record.get("id")),
        name=as_text(record.get("name")),
        episode=coerce_count(record.get("episode")) or max(0, episode),
        total=coerce_count(record.get("total")),
        sources=sources,
        best=best,
        expires=coerce_count(record.get("expires")),
        expires_in=coerce_count(record.get("expires_in")),
    )


def normalize_languages(raw: Any) -> list[Language]:
    """Normalize the upstream language list; entries may be codes or records."""

    languages: list[Language] = []
    seen: set[str] = set()
    for entry in normalize_list_envelope(raw):
        if isinstance(entry, dict):
            code = as_text(first_non_empty(entry, LANGUAGE_CODE_FIELDS))
            name = as_text(first_non_empty(entry, LANGUAGE_NAME_FIELDS))
        else:
            code = name = as_text(entry)
        if not code or code in seen:
            continue
        seen.add(code)
        languages.append(Language(code=code, name=name or code))
    return languages
