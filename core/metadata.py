"""
BlackGem Core Metadata
----------------------
Houses global metadata for versioning and module registration.
Read by the `/`, `/health` and `/status/summary` endpoints so every
surface reports the same identity.
"""

from datetime import date

__project__ = "BlackGem"
__version__ = "1.0.0"
__maintainer__ = "BlackGem Engineering"
__updated__ = date.today().isoformat()

MODULES = [
    "auth",
    "funds",
    "deals",
    "investors",
    "capital",
    "portfolio",
    "reports",
    "copilot",
    "billing",
    "audit",
]

CORE_METADATA = {
    "project": __project__,
    "version": __version__,
    "maintainer": __maintainer__,
    "updated": __updated__,
    "modules": MODULES,
    "description": (
        "BlackGem is a multi-tenant operating platform for search funds and "
        "lower mid-market private equity: deal pipeline, LP relationships, "
        "capital activity, portfolio monitoring, reporting and an AI copilot."
    ),
}


def get_metadata() -> dict:
    """Return current system metadata as a dict."""
    return CORE_METADATA
