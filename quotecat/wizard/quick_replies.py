"""Quick-reply suggestions.

Two sources:
- parse_quick_replies(): the service's own [QUICK_REPLIES: "a", "b"] tag
- suggest(): keyword heuristic over the reply text, used only when the
  service supplied nothing

suggest() is deterministic: rules are checked in order, first match wins.
"""

from __future__ import annotations

import re

MAX_QUICK_REPLIES = 4

_TAG_RE = re.compile(r"\[QUICK_REPLIES:\s*(.+?)\]", re.DOTALL)
_TAG_STRIP_RE = re.compile(r"\s*\[QUICK_REPLIES:\s*.+?\]", re.DOTALL)
_QUOTED_RE = re.compile(r"[\"']([^\"']+)[\"']")


def parse_quick_replies(text: str) -> tuple[str, list[str] | None]:
    """Extract a quick-reply tag from text.

    Returns (clean_text, replies). replies is None when the tag is absent
    or carries no quoted options.
    """
    match = _TAG_RE.search(text)
    if not match:
        return text, None

    options = [m.strip() for m in _QUOTED_RE.findall(match.group(1)) if m.strip()]
    clean = _TAG_STRIP_RE.sub("", text, count=1).strip()
    return clean, (options[:MAX_QUICK_REPLIES] if options else None)


# ---------------------------------------------------------------------------
# Heuristic rules
# ---------------------------------------------------------------------------


def _has_any(text: str, words: tuple[str, ...]) -> bool:
    return any(w in text for w in words)


_BUDGET = ("budget", "finish level", "quality level", "price range", "high-end", "mid-range")
_DIMENSIONS = ("square feet", "square foot", "sq ft", "sqft", "dimensions", "how big", "how large",
               "measurements", "size of")
_SCOPE = ("full remodel", "scope", "refresh", "partial", "gut", "everything or")
_PREFERENCE = ("prefer", "preference", "which type", "which kind", "style", "do you like")
_CONFIRM = ("sound good", "look good", "look right", "does that work", "should i add", "shall i",
            "want me to", "ready to", "confirm")
_PROJECT_TYPE = ("what kind of project", "what type of project", "what are you working on",
                 "what project", "which room")
_FOLLOW_UP = ("anything else", "something else", "what else", "anything more")
_LABOR = ("labor", "hours", "hourly rate", "per hour")


def _preference_replies(text: str) -> list[str]:
    if "tile" in text:
        return ["Ceramic", "Porcelain", "Natural stone", "Not sure"]
    if _has_any(text, ("fixture", "faucet")):
        return ["Chrome", "Brushed nickel", "Matte black", "Not sure"]
    if _has_any(text, ("paint", "color", "colour")):
        return ["Neutral", "Bold", "Match existing", "Not sure"]
    if _has_any(text, ("floor", "flooring")):
        return ["Hardwood", "Vinyl plank", "Tile", "Carpet"]
    if _has_any(text, ("cabinet", "countertop")):
        return ["Stock", "Semi-custom", "Custom", "Not sure"]
    return ["Show me options", "No preference"]


def suggest(reply_text: str) -> list[str]:
    """Suggest up to four short replies for an assistant message.

    Returns [] when no rule matches.
    """
    text = (reply_text or "").lower()
    if not text.strip():
        return []

    if _has_any(text, _BUDGET):
        replies = ["Budget", "Standard", "Premium"]
    elif _has_any(text, _DIMENSIONS):
        replies = ["Small (under 50 sq ft)", "Medium (50-150 sq ft)", "Large (150+ sq ft)", "Not sure"]
    elif _has_any(text, _SCOPE):
        replies = ["Full remodel", "Cosmetic refresh", "Partial update"]
    elif _has_any(text, _PREFERENCE):
        replies = _preference_replies(text)
    elif _has_any(text, _CONFIRM):
        replies = ["Yes", "No", "Make changes"]
    elif _has_any(text, _PROJECT_TYPE):
        replies = ["Bathroom", "Kitchen", "Deck", "Other"]
    elif _has_any(text, _FOLLOW_UP):
        replies = ["That's everything", "Add more items"]
    elif _has_any(text, _LABOR):
        replies = ["Use my default rate", "Skip labor"]
    else:
        replies = []

    return replies[:MAX_QUICK_REPLIES]
