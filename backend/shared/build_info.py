"""Build metadata reported by the health endpoint.

APP_VERSION and GIT_COMMIT may be injected by the deployment environment.
Otherwise the version comes from the installed package metadata.
"""

import os
from importlib import metadata

DISTRIBUTION_NAME = "wakegate"


def _installed_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "dev"


APP_VERSION: str = os.environ.get("APP_VERSION") or _installed_version()
GIT_COMMIT: str = os.environ.get("GIT_COMMIT", "unknown")
