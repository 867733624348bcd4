"""
Webhook payload inspection.

Emby (and its webhook plugins) send differently shaped bodies depending on
the event and version. These helpers pull the interesting fields from
whichever place they appear, classify "new content" events and compute a
deduplication key so one movie or one series only triggers one alert.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

INGESTION_EVENT_MARKERS = ("library", "itemadded", "newitem", "newlibrarycontent")
TEST_EVENT_MARKERS = ("webhooktest", "notificationtest")

MEDIA_MOVIE = "movie"
MEDIA_SERIES = "series"
MEDIA_OTHER = "other"


def as_obj(value: Any) -> Optional[Dict[str, Any]]:
    """Return the value if it is a JSON object, else None"""
    if isinstance(value, dict):
        return value
    return None


def pick_text(source: Optional[Dict[str, Any]], keys: Iterable[str]) -> Optional[str]:
    """First non-blank string value among ``keys``, stripped"""
    if not source:
        return None
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value is not None:
            return value
    return None


def is_test_event(event_type: str) -> bool:
    lowered = event_type.lower()
    return any(marker in lowered for marker in TEST_EVENT_MARKERS)


def classify_media_kind(item_type: Optional[str]) -> str:
    lowered = (item_type or "").lower()
    if "movie" in lowered:
        return MEDIA_MOVIE
    if "episode" in lowered or "series" in lowered or "season" in lowered:
        return MEDIA_SERIES
    return MEDIA_OTHER


@dataclass
class IngestionInfo:
    is_ingestion_event: bool
    media_kind: str
    dedup_key: Optional[str]
    item_id: Optional[str]
    series_id: Optional[str]
    series_name: Optional[str]
    year: Optional[str]
    item_title: Optional[str]
    item_type: Optional[str]
    library_name: Optional[str]
    added_at: Optional[str]


def build_dedup_key(
    media_kind: str,
    item_id: Optional[str],
    item_title: Optional[str],
    year: Optional[str],
    series_id: Optional[str],
    series_name: Optional[str],
) -> Optional[str]:
    if media_kind == MEDIA_MOVIE:
        if item_id:
            return f"movie:{item_id}"
        if item_title:
            return f"movie-title:{item_title.lower()}:{year or 'unknown'}"
        return None
    if media_kind == MEDIA_SERIES:
        if series_id:
            return f"series:{series_id}"
        if series_name:
            return f"series-name:{series_name.lower()}"
        if item_title:
            return f"series-title:{item_title.lower()}"
    return None


def parse_ingestion_info(event_type: str, body: Dict[str, Any]) -> IngestionInfo:
    payload = as_obj(body.get("payload")) or {}
    items = payload.get("Items")
    first_item = as_obj(items[0]) if isinstance(items, list) and items else None
    item = as_obj(payload.get("Item")) or first_item or as_obj(body.get("Item")) or {}

    item_id = _first(
        pick_text(payload, ["ItemId", "itemId", "Id", "id"]),
        pick_text(item, ["Id", "id"]),
        pick_text(body, ["ItemId", "itemId", "Id", "id"]),
    )
    series_id = _first(
        pick_text(payload, ["SeriesId", "seriesId"]),
        pick_text(item, ["SeriesId", "seriesId"]),
    )
    item_title = _first(
        pick_text(payload, ["ItemName", "itemName", "Name", "name"]),
        pick_text(item, ["Name", "name"]),
        pick_text(body, ["ItemName", "itemName", "Name", "name"]),
    )
    series_name = _first(
        pick_text(payload, ["SeriesName", "seriesName"]),
        pick_text(item, ["SeriesName", "seriesName"]),
    )
    year = _first(
        pick_text(payload, ["ProductionYear", "Year", "year"]),
        pick_text(item, ["ProductionYear", "Year", "year"]),
    )
    item_type = _first(
        pick_text(payload, ["ItemType", "itemType", "Type", "type"]),
        pick_text(item, ["Type", "type"]),
        pick_text(body, ["ItemType", "itemType", "Type", "type"]),
    )
    library_name = _first(
        pick_text(payload, ["LibraryName", "libraryName", "CollectionName"]),
        pick_text(body, ["LibraryName", "libraryName", "CollectionName"]),
    )
    added_at = _first(
        pick_text(payload, ["DateCreated", "CreatedAt", "createdAt"]),
        pick_text(item, ["DateCreated", "CreatedAt", "createdAt"]),
        pick_text(body, ["eventTime", "EventTime", "DateCreated", "CreatedAt"]),
    )

    lowered = event_type.lower()
    by_event_type = any(marker in lowered for marker in INGESTION_EVENT_MARKERS)
    by_payload_hint = bool(item_title and (library_name or item_type))

    media_kind = classify_media_kind(item_type)

    return IngestionInfo(
        is_ingestion_event=by_event_type or by_payload_hint,
        media_kind=media_kind,
        dedup_key=build_dedup_key(media_kind, item_id, item_title, year, series_id, series_name),
        item_id=item_id,
        series_id=series_id,
        series_name=series_name,
        year=year,
        item_title=item_title,
        item_type=item_type,
        library_name=library_name,
        added_at=added_at,
    )
