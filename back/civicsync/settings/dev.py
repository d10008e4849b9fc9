# Local application imports
from civicsync.settings.common import CommonSettings


class DevSettings(CommonSettings):
    DEBUG_MODE: bool = True
