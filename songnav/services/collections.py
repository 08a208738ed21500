"""
Church Song Navigator - Collection Helpers

Glue between the HTTP layer and the repository:

- decoding the admin page's flat form (``song_<i>_title``,
  ``song_<i>_audioUrl``, ``song_<i>_visible``, ``song_<i>_sheet_<j>``) into
  an ordered list of :class:`~songnav.models.SongInput`
- choosing which collections the homepage shows as "this week" and
  "next week"
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from songnav.models import SongInput

_TITLE_KEY = re.compile(r"^song_(\d+)_title$")
_SHEET_KEY = re.compile(r"^song_(\d+)_sheet_(\d+)$")

CURRENT_WEEK_PLACEHOLDER = "未设置本周"
NEXT_WEEK_PLACEHOLDER = "未设置下周"


def _text(value: Any) -> str:
    """Form values may be files when a client misbehaves; treat those as empty."""
    return value if isinstance(value, str) else ""


def parse_song_form(form: Mapping[str, Any]) -> List[SongInput]:
    """
    Decode the indexed song fields of a submitted form.

    Songs are ordered by their numeric index and sheets by theirs.  Gaps in
    the numbering (a row removed in the browser) are skipped rather than
    ending the list.
    """
    song_indexes = set()
    sheets: Dict[int, Dict[int, str]] = {}

    for key in form.keys():
        match = _TITLE_KEY.match(key)
        if match:
            song_indexes.add(int(match.group(1)))
            continue
        match = _SHEET_KEY.match(key)
        if match:
            song_idx, sheet_idx = int(match.group(1)), int(match.group(2))
            sheets.setdefault(song_idx, {})[sheet_idx] = _text(form.get(key))

    songs: List[SongInput] = []
    for idx in sorted(song_indexes):
        song_sheets = sheets.get(idx, {})
        songs.append(
            SongInput(
                title=_text(form.get(f"song_{idx}_title")),
                audio_url=_text(form.get(f"song_{idx}_audioUrl")),
                visible=f"song_{idx}_visible" in form,
                sheet_urls=[song_sheets[j] for j in sorted(song_sheets)],
            )
        )
    return songs


def _placeholder(label: str) -> Dict[str, Any]:
    return {"id": None, "collection_week_label": label, "songs": []}


def select_weeks(
    collections: List[Dict[str, Any]],
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Pick ``(current_week, next_week)`` from collections sorted newest first.

    The newest collection is next week and the second newest is this week:
    the operator prepares next Sunday's songs while this Sunday's are still
    on display.  A lone collection is shown as this week.
    """
    if len(collections) > 1:
        return collections[1], collections[0]
    if collections:
        return collections[0], _placeholder(NEXT_WEEK_PLACEHOLDER)
    return _placeholder(CURRENT_WEEK_PLACEHOLDER), _placeholder(NEXT_WEEK_PLACEHOLDER)


def visible_songs(collection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Songs of a collection that are marked visible, in order."""
    if not collection:
        return []
    return [s for s in collection.get("songs") or [] if s.get("visible")]


def build_week_view(collection: Dict[str, Any], key: str) -> Dict[str, Any]:
    """
    Shape one week for the homepage template.

    ``playlist`` holds only songs with audio; each song row carries the
    index of its playlist entry (or None) so the play button and the
    prev/next controls walk the same list.  ``slides`` flattens every
    visible song's sheets for the carousel.
    """
    songs = visible_songs(collection)
    playlist: List[Dict[str, str]] = []
    rows: List[Dict[str, Any]] = []
    slides: List[Dict[str, Any]] = []

    for song in songs:
        audio_url = song.get("audio_url") or ""
        playlist_index = None
        if audio_url:
            playlist_index = len(playlist)
            playlist.append({"title": song["title"], "url": audio_url})
        rows.append({"title": song["title"], "playlist_index": playlist_index})
        for sheet in song.get("sheets") or []:
            slides.append({"title": song["title"], "image_url": sheet["image_url"]})

    return {
        "key": key,
        "label": collection.get("collection_week_label", ""),
        "songs": rows,
        "playlist": playlist,
        "slides": slides,
    }
