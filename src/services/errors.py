"""Domain exceptions raised by the service layer.

Routes translate these into APIError responses; scripts log them.
"""


class ItemNotFoundError(Exception):
    """One or more cart lines did not resolve against the event catalog."""

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"Events not found in catalog: {', '.join(names)}")


class OrderNotFoundError(Exception):
    """No ledger entry exists for the given order id."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class IdentityNotFoundError(Exception):
    def __init__(self, identity_id: str) -> None:
        self.identity_id = identity_id
        super().__init__(f"Identity not found: {identity_id}")


class PersistenceError(Exception):
    """A datastore write failed."""


class UnknownTeamEventError(Exception):
    """Team rosters keyed to events that are not in the order."""

    def __init__(self, keys: list[str]) -> None:
        self.keys = keys
        super().__init__(f"Team rosters reference events not in the cart: {', '.join(keys)}")
