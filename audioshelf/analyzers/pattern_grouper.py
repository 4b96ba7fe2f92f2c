"""Smart grouping of individually selected files by shared filename patterns.

Files picked one by one carry no folder structure. When three or more of
them share a meaningful word span ("chapter 1 - my book", "chapter 2 - my
book", ...) they are gathered into a synthetic folder named after the span.

The assignment is greedy: patterns are ranked by how many files they cover,
then by length, and each file is claimed by the first pattern that still
covers at least MIN_GROUP_SIZE unclaimed files.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence


logger = logging.getLogger("shelf.grouper")

MIN_CANDIDATES = 2
MIN_GROUP_SIZE = 3
MIN_SINGLE_WORD_LENGTH = 4

STOP_WORDS = {
    "the", "and", "or", "of", "to", "in", "for", "with", "by", "at",
    "on", "as", "is", "was", "are", "were", "ch", "cd",
}


@dataclass
class SmartGroup:
    name: str
    key: str
    pattern: str
    files: List[Path] = field(default_factory=list)


def tokenize(stem: str) -> List[str]:
    cleaned = stem.lower().replace("_", " ").replace("-", " ").replace(".", " ")
    return [
        word
        for word in cleaned.split()
        if len(word) > 2 and not word.isdigit() and word not in STOP_WORDS
    ]


def extract_patterns(stem: str) -> List[str]:
    """Candidate patterns for one filename stem: long words, 2- and 3-word spans."""
    words = tokenize(stem)
    patterns: List[str] = []
    for i, word in enumerate(words):
        if len(word) >= MIN_SINGLE_WORD_LENGTH:
            patterns.append(word)
        if i < len(words) - 1:
            patterns.append(f"{word} {words[i + 1]}")
        if i < len(words) - 2:
            patterns.append(f"{word} {words[i + 1]} {words[i + 2]}")
    return patterns


def folder_name_for(pattern: str) -> str:
    return " ".join(word.capitalize() for word in pattern.split(" ")).strip()


class PatternGrouper:
    """Proposes synthetic folders for loose files sharing filename patterns."""

    def group(self, files: Sequence[Path]) -> List[SmartGroup]:
        if len(files) < MIN_CANDIDATES:
            return []

        # dicts keep insertion order, so ties resolve by first appearance
        pattern_files: Dict[str, Dict[Path, None]] = {}
        for path in files:
            for pattern in extract_patterns(path.stem):
                pattern_files.setdefault(pattern, {})[path] = None

        candidates = [(p, list(fs)) for p, fs in pattern_files.items() if len(fs) >= MIN_GROUP_SIZE]
        candidates.sort(key=lambda item: (-len(item[1]), -len(item[0])))

        groups: List[SmartGroup] = []
        claimed: set[Path] = set()
        for pattern, group_files in candidates:
            available = [f for f in group_files if f not in claimed]
            if len(available) < MIN_GROUP_SIZE:
                continue
            group = SmartGroup(
                name=folder_name_for(pattern),
                key=f"smart_group_{uuid.uuid4()}",
                pattern=pattern,
                files=available,
            )
            groups.append(group)
            claimed.update(available)
            logger.info(f"Smart group '{group.name}' with {len(available)} files")

        return groups
