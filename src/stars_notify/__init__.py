"""
GitHub Stars Notify

Watches GitHub repositories for new stargazers and announces them on Discord
and Slack, with hot configuration reload.
"""

__version__ = "1.0.0"

from .config import Config, load_config, parse_config
from .exceptions import StarsNotifyError

__all__ = [
    "Config",
    "load_config",
    "parse_config",
    "StarsNotifyError",
]
