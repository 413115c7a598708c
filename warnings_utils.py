"""Warnings helpers for decoder and encoder calls."""

from __future__ import annotations

import logging
import warnings
from contextlib import contextmanager
from typing import Iterator


@contextmanager
def codec_warnings(fail: bool, logger: logging.Logger) -> Iterator[None]:
    """Scope Pillow warnings to one codec call.

    With ``fail`` every warning (decompression bomb, corrupt EXIF, ...) is
    raised as an exception. Otherwise warnings are logged at WARNING level
    instead of being printed.
    """
    with warnings.catch_warnings(record=not fail) as caught:
        warnings.simplefilter("error" if fail else "always")
        yield
    for warning in caught or ():
        logger.warning("%s: %s", warning.category.__name__, warning.message)
