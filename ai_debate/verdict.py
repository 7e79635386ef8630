"""Judge output parsing: reasoning, verdict, and winner."""

import re

from ai_debate.models import Role, Verdict

_NO_VERDICT = "No verdict provided."

_SECTION_RE = re.compile(r"^#{1,6}\s*(?P<title>[^\n]+?)\s*$", re.MULTILINE)
_WINNER_RE = re.compile(r"winner\s*[:：]\s*[*_`]*\s*(pro|con)\b", re.IGNORECASE)


def split_sections(text: str) -> dict[str, str]:
    """Split Markdown into ``{heading: body}`` for every heading found."""
    sections: dict[str, str] = {}
    matches = list(_SECTION_RE.finditer(text))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections[match.group("title").strip().lower()] = text[match.end():end].strip()
    return sections


def parse_verdict(text: str) -> Verdict:
    """Extract the judge's reasoning, verdict and winner.

    The winner is read from a ``Winner: Pro`` / ``Winner: Con`` line,
    preferring the verdict section when present.
    """
    sections = split_sections(text)
    reasoning = sections.get("reasoning", "")
    verdict = sections.get("verdict") or _NO_VERDICT

    match = _WINNER_RE.search(sections.get("verdict", "")) or _WINNER_RE.search(text)
    winner = Role(match.group(1).lower()) if match else None
    return Verdict(reasoning=reasoning, verdict=verdict, winner=winner)
