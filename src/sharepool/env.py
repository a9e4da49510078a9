# src/sharepool/env.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_LOADED = False


def _dotenv_path(explicit: Optional[str]) -> Path:
    return Path(explicit or os.getenv("SHAREPOOL_DOTENV_PATH") or ".env").expanduser()


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """Merge a .env file into os.environ the first time it is called.

    The file is `dotenv_path`, else SHAREPOOL_DOTENV_PATH, else ./.env.
    Variables already set in the environment keep their values. Returns True
    only when a non-empty file was read on this call.
    """
    global _LOADED
    if _LOADED:
        return False
    _LOADED = True

    path = _dotenv_path(dotenv_path)
    return path.is_file() and load_dotenv(dotenv_path=path, override=False)


def reset_dotenv_state() -> None:
    global _LOADED
    _LOADED = False
