from __future__ import annotations


class DiscountStoreError(Exception):
    """The discount store could not answer (unreachable, timed out, bad data)."""


class MalformedDiscountError(DiscountStoreError):
    """A stored discount row violates the discount invariants."""


class RedemptionError(Exception):
    pass


class UsageLimitReachedError(RedemptionError):
    pass


class AlreadyRedeemedError(RedemptionError):
    pass


class DiscountNotFoundError(RedemptionError):
    pass


class CartError(ValueError):
    pass
