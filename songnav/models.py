"""
Church Song Navigator - Request Models

Pydantic models describing the snapshot the admin submits when saving a
weekly collection.  The admin page posts a flat form (``song_<i>_title``
etc.) which ``services.collections.parse_song_form`` decodes into these
same models; API clients may post the nested JSON shape directly.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SongInput(BaseModel):
    """One song in a collection snapshot, with its sheet URLs in order."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    audio_url: str = Field(default="", alias="audioUrl")
    visible: bool = True
    sheet_urls: List[str] = Field(default_factory=list, alias="sheetUrls")


class CollectionSave(BaseModel):
    """JSON body accepted by ``POST /admin/save``."""

    model_config = ConfigDict(populate_by_name=True)

    week_label: str = Field(default="", alias="weekLabel")
    church_name: Optional[str] = Field(default=None, alias="churchName")
    collection_id: Optional[int] = Field(default=None, alias="collectionId")
    songs: List[SongInput] = Field(default_factory=list)
