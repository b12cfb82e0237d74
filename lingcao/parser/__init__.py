"""Narrator output parsing.

Turns one block of model-generated (or player-authored) text into:
  1. a cleaned display narrative plus escaped HTML markup,
  2. stat deltas resolved through each character's StatMeta,
  3. the detected active speaker,
  4. item gains,
and separately extracts the trailing numbered choices.

Everything here is lenient: model output is not guaranteed well-formed, so
unrecognised markup is dropped or left as prose, never raised.
"""

from .choices import ChoiceExtraction, extract_choices  # noqa: F401
from .narrative import (  # noqa: F401
    ParsedNarrative,
    parse,
    parse_item_gains,
    render_inline,
    render_markup,
    render_stat_changes,
)
from .stats import build_label_table, extract_stat_deltas  # noqa: F401
