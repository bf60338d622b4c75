"""
Exception types raised by the detection chain and enforcement layer.

Core components raise these; Discord-facing handlers catch and log them per
attachment or per guild.
"""


class ScanGuardError(Exception):
    """Base class for all scanguard errors."""


class DownloadFailure(ScanGuardError):
    """Image could not be fetched, or exceeded the configured size limit."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to download {url}: {reason}")
        self.url = url
        self.reason = reason


class HashComputationError(ScanGuardError):
    """Image bytes could not be decoded for perceptual hashing."""


class ProviderFailure(ScanGuardError):
    """A classifier provider call failed (network, status, timeout or payload)."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class EnforcementFailure(ScanGuardError):
    """A ban or timeout could not be applied in a guild."""

    def __init__(self, guild_id: int, user_id: int | str, reason: str) -> None:
        super().__init__(f"Enforcement against {user_id} in guild {guild_id} failed: {reason}")
        self.guild_id = guild_id
        self.user_id = user_id
        self.reason = reason


class SchedulerShutdown(ScanGuardError):
    """The scan scheduler shut down before this request was admitted."""
