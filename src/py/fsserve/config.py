from os import getenv

from .utils.io import DEFAULT_ENCODING  # NOQA: F401

PORT: int = int(getenv("PORT", 4000))

HOST: str = getenv("HOST", "localhost")

# Value of `Cache-Control: max-age` for served files, in seconds
MAX_AGE: int = int(getenv("FSSERVE_MAX_AGE", 2))

LOG_REQUESTS: bool = getenv("FSSERVE_LOG_REQUESTS", "1") == "1"

# Fallback extensions and SSI extensions used by the command line
EXTENSIONS: list[str] = ["html", "shtml"]
SSI_EXTENSIONS: list[str] = ["shtml"]

# EOF
