from __future__ import annotations

import os

from .constants import CHANNEL_NAME_MAX_LEN, NAME_MAX_CHARS


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def _clean_token(value, max_chars: int) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars and len(s) > int(max_chars):
        return None

    # Names end up inside relayed lines; a stray control character would
    # split or garble them on the receiving side.
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in s):
        return None

    return s


def normalize_name(value, *, max_chars: int = NAME_MAX_CHARS) -> str | None:
    return _clean_token(value, max_chars)


def normalize_channel(value, *, max_len: int = CHANNEL_NAME_MAX_LEN) -> str | None:
    return _clean_token(value, max_len)
