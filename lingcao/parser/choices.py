"""Numbered player-choice extraction from the tail of narrator output."""

import re

from pydantic import BaseModel, Field

CHOICE_RE = re.compile(r"^(?:[1-4]|[A-Da-d])[.、．]\s*(.+)$")
HEADER_RE = re.compile(r"选择|选项|你可以|接下来|你的行动")
MIN_CHOICES = 2


class ChoiceExtraction(BaseModel):
    clean_text: str
    choices: list[str] = Field(default_factory=list)


def _is_choice(line: str) -> bool:
    return bool(CHOICE_RE.match(line.strip()))


def _ends_with_choice_run(lines: list[str]) -> bool:
    """True if the last non-blank lines already form a run of >= 2 choices."""
    count = 0
    for line in reversed(lines):
        if not line.strip():
            continue
        if not _is_choice(line):
            break
        count += 1
    return count >= MIN_CHOICES


def extract_choices(text: str) -> ChoiceExtraction:
    """Pull the trailing numbered options (1. … / A、…) out of text.

    Fewer than two option lines means no options: the text is returned as-is.
    Otherwise one header line such as "你的选择：" directly above the options
    is dropped too, together with the blank line before it.
    """
    lines = text.split("\n")
    choices: list[str] = []
    start = len(lines)

    for i in range(len(lines) - 1, -1, -1):
        trimmed = lines[i].strip()
        if not trimmed:
            continue
        match = CHOICE_RE.match(trimmed)
        if not match:
            break
        choices.insert(0, match.group(1).strip())
        start = i

    if len(choices) < MIN_CHOICES:
        return ChoiceExtraction(clean_text=text, choices=[])

    cut = start
    # Skip the blank lines between the header and the first option.
    header = cut - 1
    while header >= 0 and not lines[header].strip():
        header -= 1
    if header >= 0 and HEADER_RE.search(lines[header]) and not _ends_with_choice_run(lines[:header]):
        cut = header
        if cut > 0 and not lines[cut - 1].strip():
            cut -= 1

    return ChoiceExtraction(clean_text="\n".join(lines[:cut]).strip(), choices=choices)
