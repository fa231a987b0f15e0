from __future__ import annotations


class StreakServiceError(Exception):
    """Base exception for all streak-service errors."""


class GatewayError(StreakServiceError):
    """Failures talking to the Whop API (transport, HTTP status, GraphQL errors)."""


class MessageSendError(GatewayError):
    """A chat message could not be delivered to the channel."""


class MessageFetchError(GatewayError):
    """Chat messages could not be listed for the channel."""


class RewardIssueError(GatewayError):
    """The promo code for a streak reward could not be created."""


class ConfigValidationError(StreakServiceError):
    """Invalid experience configuration submitted through the admin API."""


class InvalidSignatureError(StreakServiceError):
    """Missing or mismatching scheduler signature on a cron trigger."""
