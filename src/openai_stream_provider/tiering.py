from __future__ import annotations

from enum import Enum


class ModelType(str, Enum):
    LARGE = "large"
    SMALL = "small"
