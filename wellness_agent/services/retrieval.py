"""Keyword retriever over the clinic policy manual.

Loads POLICIES.md and splits it into one chunk per ``###`` section.  Chunks
are scored by keyword overlap with the question, with a bonus when a query
word appears in the section heading.  Scores are normalized to ``[0, 1]``.

Any retriever implementing :class:`~wellness_agent.collaborators.PolicyRetriever`
(e.g. a vector store) can replace it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from wellness_agent.collaborators import RetrievedChunk
from wellness_agent.config import POLICIES_PATH
from wellness_agent.exceptions import RetrievalError

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9']+")

_STOPWORDS = frozenset(
    {
        "the", "and", "for", "are", "you", "your", "what", "when", "where", "which",
        "who", "how", "can", "does", "with", "this", "that", "have", "has", "there",
        "about", "any", "our", "from", "will", "would", "should", "could", "tell",
        "please", "policy", "policies",
    }
)


def _load_policy_manual(path: Path) -> str:
    """Read the policy manual, or return an empty string if it is missing.

    Raises:
        RetrievalError: The manual exists but cannot be read.
    """
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("Policy manual not found at %s", path)
        return ""
    except (OSError, UnicodeDecodeError) as exc:
        raise RetrievalError(f"Policy manual at {path} could not be read: {exc}") from exc


def split_into_sections(content: str) -> list[dict[str, str]]:
    """Split the markdown manual into ``{"heading", "body"}`` sections.

    Each ``###`` heading starts a section; the preamble before the first one
    is dropped.
    """
    sections: list[dict[str, str]] = []
    parts = re.split(r"###\s+(.+?)(?=\n)", content)

    # parts[0] is the preamble, then alternating heading/body pairs
    for i in range(1, len(parts), 2):
        heading = parts[i].strip()
        body = parts[i + 1] if i + 1 < len(parts) else ""
        # Drop any following chapter heading and horizontal rules
        body = re.split(r"\n##\s", body)[0]
        body = re.sub(r"\n---\s*$", "", body.strip()).strip()
        sections.append({"heading": heading, "body": body})

    return sections


def _keywords(text: str) -> set[str]:
    return {w for w in _WORD.findall(text.lower()) if len(w) > 2 and w not in _STOPWORDS}


class KeywordPolicyRetriever:
    """Scores policy sections by keyword overlap."""

    def __init__(self, path: Path = POLICIES_PATH, content: str | None = None) -> None:
        self._source = path.name
        manual = content if content is not None else _load_policy_manual(path)
        self._sections = split_into_sections(manual)
        logger.debug("Loaded %d policy sections from %s", len(self._sections), self._source)

    def retrieve(self, query: str, k: int) -> list[RetrievedChunk]:
        query_words = _keywords(query)
        if not query_words or not self._sections or k <= 0:
            return []

        scored: list[tuple[float, int, dict[str, str]]] = []
        for index, section in enumerate(self._sections, start=1):
            text = f"{section['heading']} {section['body']}".lower()
            matches = sum(1 for w in query_words if w in text)
            # Bonus for a query word in the heading
            heading_lower = section["heading"].lower()
            if any(w in heading_lower for w in query_words if len(w) > 3):
                matches += 2
            if matches:
                score = min(1.0, matches / (len(query_words) + 2))
                scored.append((score, index, section))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            RetrievedChunk(
                content=f"{section['heading']}\n{section['body']}",
                score=score,
                page_number=index,
                source_ref=f"{self._source}, section {index}: {section['heading']}",
            )
            for score, index, section in scored[:k]
        ]
