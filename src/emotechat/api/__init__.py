"""API clients for Twitch Helix."""

from .base import ApiError, BaseApiClient
from .twitch import IdentityResolutionError, TwitchApiClient

__all__ = [
    "ApiError",
    "BaseApiClient",
    "IdentityResolutionError",
    "TwitchApiClient",
]
