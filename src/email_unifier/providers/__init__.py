"""Provider adapters and transport protocol.

One :class:`ProviderAdapter` per provider hides the native payload shape
from the rest of the pipeline.
"""

from email_unifier.models import Provider
from email_unifier.providers.base import (
    FetchPage,
    MessageFlags,
    NativePayload,
    ProviderAdapter,
    ProviderClient,
)
from email_unifier.providers.gmail import GmailAdapter
from email_unifier.providers.outlook import OutlookAdapter
from email_unifier.providers.ses import SesAdapter

_ADAPTERS: dict[Provider, ProviderAdapter] = {
    Provider.GMAIL: GmailAdapter(),
    Provider.OUTLOOK: OutlookAdapter(),
    Provider.SES: SesAdapter(),
}


def get_adapter(provider: Provider | str) -> ProviderAdapter:
    """Return the shared adapter for ``provider``.

    Raises:
        ValueError: If the provider is unknown.
    """
    return _ADAPTERS[Provider(provider)]


__all__ = [
    "FetchPage",
    "GmailAdapter",
    "MessageFlags",
    "NativePayload",
    "OutlookAdapter",
    "ProviderAdapter",
    "ProviderClient",
    "SesAdapter",
    "get_adapter",
]
