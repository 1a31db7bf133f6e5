"""
Error taxonomy shared by the lifecycle service and the renewal scanner.
"""


class SubscriptionError(Exception):
    pass


class InvalidTermError(SubscriptionError, ValueError):
    """Subscription term is malformed or already lapsed."""


class NotFoundError(SubscriptionError, LookupError):
    pass


class StoreUnavailableError(SubscriptionError):
    """Repository call failed."""


class StoreNotReadyError(StoreUnavailableError):
    """Readiness probe did not succeed within its retry budget."""


class CacheUnavailableError(SubscriptionError):
    """Cache backend failed (as opposed to a clean miss)."""


class BrokerUnavailableError(SubscriptionError):
    """Broker connection or channel setup failed after retries."""


class PublishFailedError(SubscriptionError):
    pass
