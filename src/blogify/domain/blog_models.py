from __future__ import annotations

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Keys rendered in dedicated sections; anything else is shown as metadata
KNOWN_POST_FIELDS = (
    "title",
    "content",
    "meta_description",
    "tags",
    "seo_keywords",
    "word_count",
    "search_sources",
    "reading_time",
    "difficulty",
    "category",
)


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


class StructuredPost(BaseModel):
    """Blog artifact recovered from an assistant reply. Never persisted."""

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    content: Optional[str] = None
    meta_description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    seo_keywords: List[str] = Field(default_factory=list)
    word_count: Optional[Union[int, str]] = None
    reading_time: Optional[str] = None
    difficulty: Optional[str] = None
    category: Optional[str] = None
    search_sources: Optional[Union[List[Any], int, str]] = None

    @field_validator("title", "content", "meta_description", "reading_time", "difficulty", "category", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return value if isinstance(value, str) else str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _unique_tags(cls, value: Any) -> List[str]:
        # Tags behave as a set; keep first occurrence order for display
        seen = set()
        out: List[str] = []
        for tag in _as_string_list(value):
            if tag in seen:
                continue
            seen.add(tag)
            out.append(tag)
        return out

    @field_validator("seo_keywords", mode="before")
    @classmethod
    def _keyword_list(cls, value: Any) -> List[str]:
        return _as_string_list(value)

    @field_validator("word_count", mode="before")
    @classmethod
    def _word_count(cls, value: Any) -> Optional[Union[int, str]]:
        if value is None or isinstance(value, (int, str)) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return str(value)

    @field_validator("search_sources", mode="before")
    @classmethod
    def _sources(cls, value: Any) -> Optional[Union[List[Any], int, str]]:
        if value is None or isinstance(value, (list, int, str)) and not isinstance(value, bool):
            return value
        return str(value)

    def extra_fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def source_count(self) -> Optional[int]:
        if isinstance(self.search_sources, list):
            return len(self.search_sources)
        if isinstance(self.search_sources, int):
            return self.search_sources
        return None
