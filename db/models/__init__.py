from .user import User, SubscriptionTier

__all__ = ["User", "SubscriptionTier"]
