"""Provider registry.

Each supported tool registers its provider class here by name. Callers get
fresh provider instances through ``get_provider`` and ``get_all_providers``.
"""

from typing import Type
from .base import SessionProvider

# Registry of all available providers
_PROVIDERS: dict[str, Type[SessionProvider]] = {}


def register_provider(provider_class: Type[SessionProvider]) -> Type[SessionProvider]:
    """Decorator to register a provider class."""
    _PROVIDERS[provider_class.name] = provider_class
    return provider_class


def get_provider(name: str) -> SessionProvider | None:
    """Get an instance of a provider by name."""
    provider_class = _PROVIDERS.get(name)
    if provider_class:
        return provider_class()
    return None


def get_all_providers() -> list[SessionProvider]:
    """Get instances of all registered providers."""
    return [cls() for cls in _PROVIDERS.values()]


def get_available_providers() -> list[SessionProvider]:
    """Get instances of all available (installed) providers."""
    return [p for p in get_all_providers() if p.is_available()]


# Import order is the scan and report order
from . import cursor  # noqa: F401, E402
from . import claude_code  # noqa: F401, E402
from . import opencode  # noqa: F401, E402

# Names of every registered tool: cursor, claude-code, opencode
PROVIDER_NAMES: tuple[str, ...] = tuple(_PROVIDERS)
