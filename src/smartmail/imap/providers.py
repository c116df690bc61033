# =============================================================================
# Provider Registry
# =============================================================================
# Connection presets for mail providers that users pick by name instead of
# typing host and port. All presets use implicit TLS on port 993.
# =============================================================================

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderPreset:
    """IMAP connection preset for a known provider."""
    host: str
    port: int = 993
    secure: bool = True


PROVIDERS: dict[str, ProviderPreset] = {
    "gmx": ProviderPreset(host="imap.gmx.net"),
    "webde": ProviderPreset(host="imap.web.de"),
    "gmail": ProviderPreset(host="imap.gmail.com"),
}


def get_provider(key: str) -> ProviderPreset | None:
    """
    Look up a provider preset.

    Args:
        key: Provider key such as "gmx". Case-insensitive.

    Returns:
        The preset, or None for unknown providers.
    """
    return PROVIDERS.get(key.lower())
