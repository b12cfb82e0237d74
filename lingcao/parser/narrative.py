"""Narrator output parsing into display narrative, stat deltas and speaker.

Line format:
  【名字】（动作）"台词"        tagged dialogue line, 名字 must be a known character
  【叶青霜 好感+10】你好        stat bracket; trailing prose stays narrative
  【叶青霜】好感+5 信任+2       name bracket followed only by tokens, a stat line
  【获得 隐匿符x2】             item gain
  anything else                narrative prose

The first tagged dialogue line decides the speaker. Without one, the character
whose name appears earliest in the narrative is used instead.
"""

import html
import re

from pydantic import BaseModel, Field

from lingcao.catalog import ITEMS, item_by_name
from lingcao.models import Character, Item, ItemGain, StatDelta

from .stats import SIGNED_RE, extract_stat_deltas, is_stat_only

TAG_RE = re.compile(r"^[【\[]([^\]】]+)[】\]]\s*(.*)$")
ITEM_GAIN_RE = re.compile(r"^获得[\s:：]*(.+)$")
ITEM_COUNT_RE = re.compile(r"^(.+?)\s*[x×*]\s*(\d+)$")
ITEM_SPLIT_RE = re.compile(r"[、,，\s]+")

# Action in full/half-width parens or asterisks; dialogue in straight or curly quotes.
INLINE_RE = re.compile(r'（[^（）\n]*）|\([^()\n]*\)|\*[^*\n]+\*|"[^"\n]*"|“[^”\n]*”')


class ParsedNarrative(BaseModel):
    narrative: str
    stat_deltas: list[StatDelta] = Field(default_factory=list)
    speaker_id: str | None = None
    speaker_color: str | None = None
    markup: str = ""
    stat_markup: str = ""
    item_gains: list[ItemGain] = Field(default_factory=list)


def _escape(text: str) -> str:
    return html.escape(text, quote=True)


def render_inline(text: str) -> str:
    """Wrap action, dialogue and narration runs in semantic spans."""
    parts: list[str] = []
    pos = 0
    for match in INLINE_RE.finditer(text):
        if match.start() > pos:
            parts.append(f'<span class="narration">{_escape(text[pos:match.start()])}</span>')
        token = match.group(0)
        css = "dialogue" if token[0] in '"“' else "action"
        parts.append(f'<span class="{css}">{_escape(token)}</span>')
        pos = match.end()
    if pos < len(text):
        parts.append(f'<span class="narration">{_escape(text[pos:])}</span>')
    return "".join(parts)


def render_markup(lines: list[str], characters: dict[str, Character]) -> str:
    """Render cleaned narrative lines as escaped HTML paragraphs."""
    names = {c.name: c for c in characters.values()}
    blocks: list[str] = []
    for line in lines:
        if not line.strip():
            continue
        tag = TAG_RE.match(line)
        char = names.get(tag.group(1).strip()) if tag else None
        if char is not None:
            blocks.append(
                f'<p class="char-line" data-speaker="{_escape(char.id)}"'
                f' style="border-color:{_escape(char.theme_color)}">'
                f'<span class="char-name">{_escape(char.name)}</span>'
                f"{render_inline(tag.group(2))}</p>"
            )
        else:
            blocks.append(f"<p>{render_inline(line)}</p>")
    return "\n".join(blocks)


def render_stat_changes(
    deltas: list[StatDelta],
    gains: list[ItemGain],
    characters: dict[str, Character],
    items: dict[str, Item] = ITEMS,
) -> str:
    """Render stat deltas and item gains as colored badges."""
    parts: list[str] = []
    for d in deltas:
        char = characters.get(d.char_id)
        meta = char.stat_meta(d.stat_key) if char else None
        if char is None or meta is None:
            continue
        css = "stat-up" if d.delta >= 0 else "stat-down"
        parts.append(
            f'<span class="stat-change" style="color:{_escape(meta.color)}">'
            f"{_escape(meta.icon)} {_escape(char.name)} {_escape(meta.label)}</span>"
            f'<span class="{css}">{d.delta:+d}</span>'
        )
    for gain in gains:
        item = items.get(gain.item_id)
        if item is not None:
            parts.append(
                f'<div class="item-gain">{_escape(item.icon)} 获得 {_escape(item.name)} x{gain.count}</div>'
            )
    if not parts:
        return ""
    return f'<div class="stat-changes">{"".join(parts)}</div>'


def parse_item_gains(label: str) -> list[ItemGain]:
    """Resolve `获得 A、B x2` style labels. Unknown item names are dropped."""
    match = ITEM_GAIN_RE.match(label.strip())
    if not match:
        return []
    gains: list[ItemGain] = []
    for name in ITEM_SPLIT_RE.split(match.group(1)):
        if not name:
            continue
        count = 1
        counted = ITEM_COUNT_RE.match(name)
        if counted:
            name, count = counted.group(1), int(counted.group(2))
        item = item_by_name(name.strip("「」『』《》"))
        if item is not None and count > 0:
            gains.append(ItemGain(item_id=item.id, count=count))
    return gains


def parse(
    text: str,
    characters: dict[str, Character],
    *,
    focus: str | None = None,
) -> ParsedNarrative:
    """Split one block of model or player text into narrative and state changes.

    Never raises on malformed markup: unrecognised brackets stay narrative and
    unresolvable stat labels are dropped.
    """
    if not text or not text.strip():
        return ParsedNarrative(narrative="")

    names = {c.name: cid for cid, c in characters.items()}
    narrative_lines: list[str] = []
    gains: list[ItemGain] = []
    speaker_id: str | None = None

    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            narrative_lines.append("")
            continue

        tag = TAG_RE.match(line)
        if not tag:
            narrative_lines.append(line)
            continue

        label, rest = tag.group(1).strip(), tag.group(2)

        if label.startswith("获得"):
            gains.extend(parse_item_gains(label))
            if rest.strip():
                narrative_lines.append(rest)
            continue

        if SIGNED_RE.search(label):
            # Pure stat bracket; deltas come from extract_stat_deltas below.
            if rest.strip():
                narrative_lines.append(rest)
            continue

        if label in names:
            if rest and is_stat_only(rest):
                continue
            if speaker_id is None:
                speaker_id = names[label]

        narrative_lines.append(line)

    narrative = "\n".join(narrative_lines).strip()
    # Collapse the blank runs left behind by removed stat lines.
    narrative = re.sub(r"\n{3,}", "\n\n", narrative)

    if speaker_id is None and narrative:
        hits = [(narrative.find(c.name), cid) for cid, c in characters.items() if c.name in narrative]
        if hits:
            speaker_id = min(hits)[1]

    deltas = extract_stat_deltas(text, characters, focus=focus)
    lines = narrative.split("\n") if narrative else []
    return ParsedNarrative(
        narrative=narrative,
        stat_deltas=deltas,
        speaker_id=speaker_id,
        speaker_color=characters[speaker_id].theme_color if speaker_id else None,
        markup=render_markup(lines, characters),
        stat_markup=render_stat_changes(deltas, gains, characters),
        item_gains=gains,
    )
