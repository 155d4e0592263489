"""
Per-platform copy derived from a single unified draft.

``format_for_platform`` turns the user's unified text into a payload the
platform adapter's ``validate`` accepts:

- Instagram: blank lines collapsed, clamped, follow call-to-action appended.
- Facebook: long paragraphs folded, engagement question appended.
- LinkedIn: emojis removed, sentences capitalised, hashtags appended.
- YouTube draft: first sentence as title, structured description.

Forbidden terms and angle brackets are removed before any styling, and
every result is clamped to the adapter's own limits.
"""

import logging
import re
from typing import Dict, Iterable, List, Union

from crosspost.exceptions import ValidationError
from crosspost.platforms.base import Platform, PlatformText
from crosspost.platforms.blocklist import strip_forbidden_terms
from crosspost.platforms.facebook import FacebookPageAdapter
from crosspost.platforms.instagram import InstagramBusinessAdapter
from crosspost.platforms.linkedin import LinkedInAdapter
from crosspost.platforms.youtube import DESCRIPTION_MAX, TITLE_MAX

logger = logging.getLogger(__name__)

UNIFIED_TEXT_MAX = 5000
ELLIPSIS = "..."

INSTAGRAM_CTA = "\U0001f447 Follow us for more updates"
FACEBOOK_QUESTION = "What do you think? Share below!"
FACEBOOK_FOLD_AT = 150
LINKEDIN_HASHTAGS = ("#industry", "#insights", "#growth", "#strategy", "#teamwork")
YOUTUBE_TITLE_TARGET = 80

_EMOJI_RE = re.compile(
    "[\U0001f300-\U0001faff\u2600-\u26ff\u2700-\u27bf"
    "\ufe00-\ufe0f\u200d]+",
    flags=re.UNICODE,
)
_SENTENCE_START_RE = re.compile(r"(^|[.!?]\s+)([a-z])")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_BLANK_LINES_RE = re.compile(r"\n{2,}")


# =============================================================================
# HELPERS
# =============================================================================


def sanitize(text: str) -> str:
    """Drop forbidden terms and angle brackets."""
    return strip_forbidden_terms(text).replace("<", "").replace(">", "").strip()


def clamp(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)].rstrip() + ELLIPSIS


def _fold_paragraphs(text: str) -> str:
    paragraphs = [p for p in re.split(r"\n+", text) if p]
    return "\n".join(
        p[:FACEBOOK_FOLD_AT] + ELLIPSIS if len(p) > FACEBOOK_FOLD_AT else p
        for p in paragraphs
    )


def _capitalize_sentences(text: str) -> str:
    return _SENTENCE_START_RE.sub(lambda m: m.group(1) + m.group(2).upper(), text)


# =============================================================================
# PER-PLATFORM FORMATTERS
# =============================================================================


def format_instagram(text: str) -> str:
    body = _BLANK_LINES_RE.sub("\n\n", text)
    body = clamp(body, InstagramBusinessAdapter.max_length - len(INSTAGRAM_CTA) - 1)
    return f"{body}\n{INSTAGRAM_CTA}"


def format_facebook(text: str) -> str:
    limit = FacebookPageAdapter.max_length
    if len(text) > limit:
        return clamp(text, limit)
    return clamp(f"{_fold_paragraphs(text)}\n{FACEBOOK_QUESTION}", limit)


def format_linkedin(text: str) -> str:
    tags = " ".join(LINKEDIN_HASHTAGS)
    body = _BLANK_LINES_RE.sub("\n\n", _capitalize_sentences(text))
    body = clamp(body, LinkedInAdapter.max_length - len(tags) - 2)
    return f"{body}\n\n{tags}"


def format_youtube(text: str) -> Dict[str, str]:
    first_sentence = _SENTENCE_SPLIT_RE.split(text, maxsplit=1)[0]
    title = first_sentence[:min(YOUTUBE_TITLE_TARGET, TITLE_MAX)].strip()
    key_points = "\n- ".join(line for line in re.split(r"\n+", text) if line)
    description = f"Overview\n{text}\n\nKey Points\n- {key_points}\n\nLinks & Credits\n"
    return {"title": title, "description": clamp(description, DESCRIPTION_MAX)}


# =============================================================================
# PUBLIC API
# =============================================================================


def format_for_platform(platform: Union[Platform, str], unified_text: str) -> PlatformText:
    """Derive the platform payload for *platform* from *unified_text*.

    Raises:
        UnknownPlatformError: For an unsupported platform.
        ValidationError: If nothing publishable is left after sanitising.
    """
    platform = Platform.parse(platform)
    source = _EMOJI_RE.sub("", unified_text) if platform is Platform.LINKEDIN else unified_text
    text = sanitize(source)
    if not text:
        raise ValidationError("Unified text has no publishable content")

    if platform is Platform.INSTAGRAM_BUSINESS:
        return format_instagram(text)
    if platform is Platform.FACEBOOK_PAGE:
        return format_facebook(text)
    if platform is Platform.LINKEDIN:
        return format_linkedin(text)
    return format_youtube(text)


def format_multiple(
    platforms: Iterable[Union[Platform, str]], unified_text: str
) -> Dict[str, PlatformText]:
    """Format *unified_text* for each platform, keyed by platform value.

    Raises:
        ValidationError: If the text is empty or longer than
            ``UNIFIED_TEXT_MAX``, or no platform is given.
    """
    if not isinstance(unified_text, str) or not unified_text.strip() or len(unified_text) > UNIFIED_TEXT_MAX:
        raise ValidationError(f"Unified text required and must be <= {UNIFIED_TEXT_MAX} chars")
    selected: List[Platform] = [Platform.parse(p) for p in platforms or []]
    if not selected:
        raise ValidationError("Platforms required")

    formatted = {p.value: format_for_platform(p, unified_text) for p in selected}
    logger.debug("[FORMAT] Derived copy for %s", ", ".join(formatted))
    return formatted
