from typing import List

from pydantic import BaseModel, ConfigDict


class Entry(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    link: str = ""   # upstream link carries the numeric id (…?id=123&…)
    category: str = ""  # quality tag, e.g. "WEB-DL 1080p"
    pub_date: str = ""

    def with_link(self, link: str) -> "Entry":
        return self.model_copy(update={"link": link})


class Feed(BaseModel):
    title: str = ""
    link: str = ""
    description: str = ""
    entries: List[Entry] = []


class CachedFile(BaseModel):
    identity: str
    path: str
    created: bool = False  # False when the file was already on disk
