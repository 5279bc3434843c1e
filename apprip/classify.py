"""
classify.py
Image reference -> database engine kind.
Case-sensitive substring match, first pattern wins, anything else is 'none'.
"""
from __future__ import annotations
from typing import Tuple
from .types import EngineKind

PATTERNS: Tuple[Tuple[str, EngineKind], ...] = (
    ("postgres", EngineKind.POSTGRES),
    ("mysql", EngineKind.MYSQL),
    ("mariadb", EngineKind.MYSQL),
    ("mongo", EngineKind.MONGO),
    ("redis", EngineKind.REDIS),
)


def classify(image) -> EngineKind:
    if not isinstance(image, str) or not image:
        return EngineKind.NONE
    for pattern, kind in PATTERNS:
        if pattern in image:
            return kind
    return EngineKind.NONE
