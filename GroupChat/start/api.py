import GroupChat.api.routes as _api
from GroupChat.config import config
from GroupChat.core.logging import auto_configure


def api(port=config.DEFAULT_API_PORT):
    """
    Start the admin api on its own.

    Args:
        port (int): Port number for the api server (default: 8766).
    """
    auto_configure()
    _api.run(api_port=port)
