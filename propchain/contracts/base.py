"""
Common plumbing for ledger-hosted contracts.

Every contract is deployed on a Chain and gets an address at
construction. Mutating entry points are wrapped with ``transactional``
so a failing precondition anywhere in the call (including nested calls
into other contracts) rolls back the whole call. Queries are wrapped with
``view`` so they never observe a call that is still in flight.
"""

import functools
from typing import Any, Callable, Dict, TypeVar

from ..addresses import to_address
from ..chain import Chain
from ..logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def transactional(func: F) -> F:
    """Run a contract method inside its chain's transaction."""

    @functools.wraps(func)
    def wrapper(self: "Contract", *args: Any, **kwargs: Any) -> Any:
        with self.chain.transaction():
            return func(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def view(func: F) -> F:
    """Run a contract query under its chain's lock."""

    @functools.wraps(func)
    def wrapper(self: "Contract", *args: Any, **kwargs: Any) -> Any:
        with self.chain.view():
            return func(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class Contract:
    """
    Base class for ledger-hosted contracts.

    Subclasses validate their constructor arguments before calling
    ``super().__init__`` so a rejected deployment never registers an
    address.
    """

    CONTRACT_NAME = "Contract"

    def __init__(self, chain: Chain):
        self.chain = chain
        self.address = chain.register(self)

    def _emit(self, name: str, **args: Any) -> None:
        self.chain.emit(self.address, name, **args)

    def _sender(self, sender: str) -> str:
        return to_address(sender, "Invalid sender")

    def describe(self) -> Dict[str, Any]:
        """
        Describe this deployment for a manifest.

        Returns:
            Dictionary with the contract name and address
        """
        return {
            "contract_name": self.CONTRACT_NAME,
            "address": self.address,
        }

    def __repr__(self) -> str:
        return f"<{self.CONTRACT_NAME} at {self.address}>"
