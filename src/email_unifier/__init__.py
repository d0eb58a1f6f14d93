"""Email Unifier - provider-agnostic email and thread synchronization.

This package normalizes messages from Gmail, Outlook and an SES inbound
webhook channel into canonical records, groups them into stable
conversation threads and keeps them consistent across incremental syncs.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from email_unifier.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
