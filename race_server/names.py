"""Cleanup for client-supplied display text (usernames and car models).

Usernames are broadcast to every connected client, so they are normalised,
length-capped and run through ``better-profanity`` before they are stored.
Anything unusable falls back to the default.
"""

from __future__ import annotations

import re
import unicodedata

from better_profanity import profanity

DEFAULT_USERNAME = "Racer"
DEFAULT_MODEL = "mercedes.glb"

MAX_USERNAME_LENGTH = 20
MAX_MODEL_LENGTH = 64

# Default better-profanity word list
profanity.load_censor_words()

# Zero-width and invisible characters, plus control characters
_INVISIBLE_RE = re.compile("[\u200b-\u200f\u2060\ufeff\u00ad\u034f\u061c]+")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]+")


def _normalise(text: str) -> str:
    """Strip invisible chars and apply NFKC Unicode normalisation."""
    text = _INVISIBLE_RE.sub("", text)
    text = _CONTROL_RE.sub("", text)
    return unicodedata.normalize("NFKC", text).strip()


def clean_username(raw: object, default: str = DEFAULT_USERNAME) -> str:
    """Return a broadcast-safe username, or *default*."""
    if not isinstance(raw, str):
        return default
    name = _normalise(raw)[:MAX_USERNAME_LENGTH].strip()
    if not name or profanity.contains_profanity(name):
        return default
    return name


def clean_model(raw: object, default: str = DEFAULT_MODEL) -> str:
    """Return a car model identifier, or *default*.

    Model names are asset file names chosen from a client-side list, so only
    the length and invisible characters are policed here.
    """
    if not isinstance(raw, str):
        return default
    model = _normalise(raw)[:MAX_MODEL_LENGTH]
    return model or default
