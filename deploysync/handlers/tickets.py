"""Ticket identifier extraction from commit messages. No I/O."""

from __future__ import annotations

import re
from collections.abc import Iterable

from deploysync.schemas.events import Commit


def parse_ticket_prefixes(raw: str | Iterable[str] | None) -> list[str]:
    """``"hq, eng"`` -> ``["HQ", "ENG"]``."""
    if not raw:
        return []
    parts = raw.split(",") if isinstance(raw, str) else raw
    prefixes: list[str] = []
    for part in parts:
        prefix = part.strip().upper()
        if prefix and prefix not in prefixes:
            prefixes.append(prefix)
    return prefixes


def build_ticket_pattern(prefixes: Iterable[str]) -> re.Pattern[str] | None:
    """One case-insensitive pattern for all prefixes, or None if there are none."""
    alternatives = "|".join(re.escape(p) for p in parse_ticket_prefixes(list(prefixes)))
    if not alternatives:
        return None
    return re.compile(rf"(?:{alternatives})-\d+", re.IGNORECASE)


def _find(message: str, pattern: re.Pattern[str] | None) -> list[str]:
    if pattern is None or not message:
        return []
    found: list[str] = []
    for match in pattern.finditer(message):
        ticket = match.group(0).upper()
        if ticket not in found:
            found.append(ticket)
    return found


def extract_from_message(message: str, prefixes: Iterable[str]) -> set[str]:
    return set(_find(message, build_ticket_pattern(prefixes)))


def extract_from_commits(
    commits: Iterable[Commit], prefixes: Iterable[str]
) -> tuple[list[str], dict[str, set[str]]]:
    """Tickets in order of first appearance, plus the authors that mentioned each."""
    pattern = build_ticket_pattern(prefixes)
    tickets: list[str] = []
    authors: dict[str, set[str]] = {}
    for commit in commits:
        for ticket in _find(commit.message, pattern):
            if ticket not in authors:
                tickets.append(ticket)
                authors[ticket] = set()
            if commit.author:
                authors[ticket].add(commit.author)
    return tickets, authors
