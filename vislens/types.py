"""Enums for vislens."""

from enum import StrEnum


class ImageFormat(StrEnum):
    PNG = "png"
    JPEG = "jpeg"


class ArtifactRole(StrEnum):
    BASELINE = "baseline"
    CURRENT = "current"
    DIFF = "diff"
