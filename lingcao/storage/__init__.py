"""File-based JSON storage.

Data layout:
  data/
    saves/
      lingcao-save.json   The single versioned save blob
    config.json           App settings (LLM connection, engine tuning)

Saves: save_game() writes {"version": 1, ...state}, keeping the newest 30 log
entries and 50 story records. load_game() returns None for a missing,
corrupt or differently-versioned blob; absent fields take model defaults.

Config: get_config() returns defaults (seeded from the environment) merged
with stored values. update_config() merges each group key by key.
"""

# Re-export all public symbols so `from lingcao import storage` keeps working.

from .core import (  # noqa: F401
    data_dir,
    init_storage,
    saves_dir,
)

from .saves import (  # noqa: F401
    SAVE_KEY,
    SAVE_VERSION,
    clear_save,
    delete_blob,
    dump_state,
    has_save,
    load_game,
    read_blob,
    save_game,
    write_blob,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)
