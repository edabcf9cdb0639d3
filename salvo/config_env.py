"""Load ``.env`` files for the CLI."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

ENV_FILES = (".env", ".env.local")


def load_env() -> None:
    """Load ``.env`` then ``.env.local``; variables already set in the process win."""
    for name in ENV_FILES:
        path = find_dotenv(name, usecwd=True)
        if path:
            load_dotenv(path, override=False)

    config_dir = os.getenv("SALVO_CONFIG_DIR")
    if config_dir:
        # Relative to the working directory, so later chdirs don't move it.
        os.environ["SALVO_CONFIG_DIR"] = str(Path(config_dir).expanduser().resolve())


__all__ = ["load_env", "ENV_FILES"]
