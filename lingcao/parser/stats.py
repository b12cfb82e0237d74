"""Stat-delta extraction from bracketed markers in model output.

Accepted shapes (square or 【】 brackets):
  【叶青霜 好感+10】          name + tokens inside the bracket
  【叶青霜】好感+10 信任-5     name bracket, tokens right after it
  【好感度+10 信任度-5】       tokens only, resolved through the global table
  【提示】觊觎+5               unknown label, token right after it, global

A token is LABEL SIGN DIGITS. Labels match a StatMeta label exactly or with
the 度/值 suffix. Anything that cannot be resolved is dropped.
"""

import re

from lingcao.models import Character, StatDelta

_LABEL = r"[^\s\d+\-,，、;；。:：【】\[\]]+?"
_TOKEN = _LABEL + r"\s*[:：]?\s*[+-]\d+"
_GAP = r"[\s,，、;；]*"

# The trailing text is captured in a lookahead so adjacent brackets on one
# line are still visited by finditer.
BRACKET_RE = re.compile(r"[【\[]([^\]】\n]+)[】\]](?=([^\n]*))")
SIGNED_RE = re.compile(r"[+-]\d+")
TOKEN_RE = re.compile(r"(" + _LABEL + r")\s*[:：]?\s*([+-])(\d+)")
TOKEN_RUN_RE = re.compile(r"^\s*(?:" + _TOKEN + _GAP + r")+")
STAT_ONLY_RE = re.compile(r"^\s*(?:" + _TOKEN + _GAP + r")+$")


def build_label_table(characters: dict[str, Character]) -> dict[str, list[tuple[str, str]]]:
    """Flatten every character's StatMeta into label → [(char_id, key), ...].

    Candidates keep roster order, so the first entry is the default when a
    label is shared (both 叶青霜 and 赤璃 have 好感).
    """
    table: dict[str, list[tuple[str, str]]] = {}
    for char_id, char in characters.items():
        for meta in char.stat_metas:
            for label in (meta.label, f"{meta.label}度", f"{meta.label}值"):
                table.setdefault(label, []).append((char_id, meta.key))
    return table


def split_name_prefix(text: str, characters: dict[str, Character]) -> tuple[str | None, str]:
    """If text starts with a character name, return (char_id, remainder)."""
    stripped = text.strip()
    # Longest name first so a name that prefixes another cannot shadow it.
    for char_id, char in sorted(characters.items(), key=lambda kv: -len(kv[1].name)):
        if stripped.startswith(char.name):
            return char_id, stripped[len(char.name):]
    return None, stripped


def is_stat_only(text: str) -> bool:
    return bool(STAT_ONLY_RE.match(text))


def extract_stat_deltas(
    text: str,
    characters: dict[str, Character],
    *,
    focus: str | None = None,
) -> list[StatDelta]:
    """Scan text for stat markers and resolve them to (char_id, key, delta).

    Resolution order: character-scoped first (the bracket names a character),
    global label table second. On the global path a shared label resolves to
    the focused character when it declares that label.
    """
    if not text:
        return []

    names = {c.name: cid for cid, c in characters.items()}
    table = build_label_table(characters)
    deltas: list[StatDelta] = []

    def resolve(label: str, char_id: str | None) -> tuple[str, str] | None:
        if char_id is not None:
            meta = characters[char_id].meta_for_label(label)
            return (char_id, meta.key) if meta else None
        candidates = table.get(label)
        if not candidates:
            return None
        for cid, key in candidates:
            if cid == focus:
                return cid, key
        return candidates[0]

    def collect(tokens_text: str, char_id: str | None) -> None:
        for label, sign, digits in TOKEN_RE.findall(tokens_text):
            target = resolve(label, char_id)
            if target is None:
                continue
            magnitude = int(digits, 10)
            deltas.append(StatDelta(
                char_id=target[0],
                stat_key=target[1],
                delta=magnitude if sign == "+" else -magnitude,
            ))

    for match in BRACKET_RE.finditer(text):
        inner = match.group(1).strip()
        trailing = match.group(2)

        if inner in names:
            run = TOKEN_RUN_RE.match(trailing)
            if run:
                collect(run.group(0), names[inner])
            continue

        if SIGNED_RE.search(inner):
            char_id, body = split_name_prefix(inner, characters)
            collect(body, char_id)
            continue

        run = TOKEN_RUN_RE.match(trailing)
        if run:
            collect(run.group(0), None)

    return deltas
