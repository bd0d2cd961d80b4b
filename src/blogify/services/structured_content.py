"""Recover a structured blog post embedded in an assistant reply.

Extraction is an ordered chain of independent attempts (whole text, fenced
block, first balanced brace span); the first attempt that yields a JSON
object wins. Every function here is pure, so results can be cached by input.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import markdown as md
from pydantic import ValidationError as ModelValidationError

from ..domain.blog_models import KNOWN_POST_FIELDS, StructuredPost

logger = logging.getLogger("blogify.content")

_FENCE_RE = re.compile(r"```(?:json)?\n([\s\S]*?)\n```", re.IGNORECASE)

Attempt = Callable[[str], Optional[Dict[str, Any]]]


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_whole(text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(text)


def parse_fenced(text: str) -> Optional[Dict[str, Any]]:
    match = _FENCE_RE.search(text)
    if not match:
        return None
    return _loads_object(match.group(1))


def parse_balanced(text: str) -> Optional[Dict[str, Any]]:
    """Parse the shortest brace-balanced span starting at the first ``{``.

    Braces inside string literals are counted too; if that first candidate
    is not valid JSON the attempt fails rather than scanning further.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    for idx in range(start, len(text)):
        ch = text[idx]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        if depth == 0:
            return _loads_object(text[start : idx + 1])
    return None


EXTRACTION_CHAIN: Tuple[Tuple[str, Attempt], ...] = (
    ("whole", parse_whole),
    ("fenced", parse_fenced),
    ("balanced", parse_balanced),
)


def extract_structured_content(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    for name, attempt in EXTRACTION_CHAIN:
        result = attempt(text)
        if result is not None:
            logger.debug("structured_content_found", extra={"strategy": name})
            return result
    return None


def parse_structured_post(text: Optional[str]) -> Optional[StructuredPost]:
    data = extract_structured_content(text)
    if data is None:
        return None
    try:
        return StructuredPost.model_validate(data)
    except ModelValidationError as exc:
        logger.debug("structured_post_invalid", extra={"err": str(exc)})
        return None


def _format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def post_to_markdown(post: StructuredPost) -> str:
    lines: List[str] = []
    if post.title:
        lines.append(f"# {post.title}")
        lines.append("")
    facts: List[str] = []
    if post.reading_time:
        facts.append(post.reading_time)
    if post.word_count is not None:
        facts.append(f"{post.word_count} words")
    if post.difficulty:
        facts.append(post.difficulty)
    if post.category:
        facts.append(post.category)
    if facts:
        lines.append(" · ".join(facts))
        lines.append("")
    if post.meta_description:
        lines.append(f"> {post.meta_description}")
        lines.append("")
    if post.content:
        lines.append(post.content)
        lines.append("")
    if post.tags:
        lines.append("## Tags")
        lines.append("")
        lines.append(", ".join(f"`{tag}`" for tag in post.tags))
        lines.append("")
    if post.seo_keywords:
        lines.append(f"## SEO Keywords ({len(post.seo_keywords)})")
        lines.append("")
        lines.extend(f"- {kw}" for kw in post.seo_keywords)
        lines.append("")
    sources = post.source_count()
    if sources is not None:
        lines.append(f"Research sources: {sources}")
        lines.append("")
    extras = {k: v for k, v in post.extra_fields().items() if k not in KNOWN_POST_FIELDS}
    if extras:
        lines.append("## Blog Metadata")
        lines.append("")
        for key, value in extras.items():
            lines.append(f"- **{key.replace('_', ' ')}**: {_format_value(value)}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def render_message(text: str, *, html: bool = False) -> str:
    """Render a finished message as markdown (or HTML).

    Replies carrying a structured post get the post layout; anything else is
    passed through as the markdown the agent wrote.
    """
    post = parse_structured_post(text)
    body = post_to_markdown(post) if post is not None else text
    if not html:
        return body
    return md.markdown(body, extensions=["extra", "tables", "toc"])


_FILENAME_UNSAFE_RE = re.compile(r"[\s/\\]+")


def post_filename(post: Optional[StructuredPost], *, html: bool = False) -> str:
    """File name for an exported post: the title lowercased, whitespace as dashes."""
    title = post.title.strip() if post is not None else ""
    stem = _FILENAME_UNSAFE_RE.sub("-", title).strip("-").lower() or "blog-post"
    return f"{stem}.{'html' if html else 'md'}"
