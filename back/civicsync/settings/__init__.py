# Standard library imports
import os

# Local application imports
from civicsync.settings.dev import DevSettings
from civicsync.settings.production import ProductionSettings


def get_settings() -> DevSettings | ProductionSettings:
    """
    Return an instance of the appropriate settings class
    based on the ENVIRONMENT variable. Staging runs with production settings.
    """
    env = os.environ.get("ENVIRONMENT", "dev").lower()
    if env in ("production", "staging"):
        return ProductionSettings()  # type: ignore[call-arg]
    return DevSettings()  # type: ignore[call-arg]


settings = get_settings()
