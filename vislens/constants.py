"""Shared defaults for capture, diffing and storage."""

DEFAULT_VIEWPORT_WIDTH = 1280
DEFAULT_VIEWPORT_HEIGHT = 720

# Height used for every breakpoint of a responsive run
RESPONSIVE_VIEWPORT_HEIGHT = 768
DEFAULT_BREAKPOINTS = (320, 768, 1024, 1440)
DEFAULT_SETTLE_MS = 500

RESPONSIVE_PRESETS: dict[str, tuple[int, int]] = {
    "mobile": (375, 667),
    "tablet": (768, 1024),
    "desktop": (1440, 900),
}
FALLBACK_PRESET = (1200, 800)

DEFAULT_THRESHOLD = 0.1
DEFAULT_DIFF_COLOR = (255, 0, 0)

# Storage namespaces
BASELINE_PREFIX = "baselines"
CURRENT_PREFIX = "current"
DIFF_PREFIX = "diffs"
IMAGE_SUFFIX = ".png"
META_SUFFIX = ".json"

MAX_NAME_LENGTH = 200
