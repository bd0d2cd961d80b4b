from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator


class SearchResult(BaseModel):
    title: str = ""
    content: str = ""
    url: str = ""
    score: Optional[float] = None

    @field_validator("title", "content", "url", mode="before")
    @classmethod
    def _text_or_blank(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("score", mode="before")
    @classmethod
    def _numeric_score(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        try:
            return float(value)
        except ValueError:
            return None


class StepEvent(BaseModel):
    kind: Literal["step"] = "step"
    name: str = ""


class IntentEvent(BaseModel):
    kind: Literal["intent"] = "intent"
    is_blog_request: bool = False


class SearchResultsEvent(BaseModel):
    kind: Literal["search_results"] = "search_results"
    results: List[SearchResult] = Field(default_factory=list)

    @field_validator("results", mode="before")
    @classmethod
    def _object_items(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [item for item in value if isinstance(item, (dict, SearchResult))]
        return value


class DeltaEvent(BaseModel):
    kind: Literal["delta"] = "delta"
    content: str = ""


class OtherEvent(BaseModel):
    """Event kind the client does not know yet; kept for observability only."""

    kind: Literal["other"] = "other"
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


StreamEvent = Union[StepEvent, IntentEvent, SearchResultsEvent, DeltaEvent, OtherEvent]
