"""
In-memory ledger that hosts the propchain contracts.

The ledger plays the role the EVM plays for the original contracts: it
holds ether balances, assigns contract addresses, keeps the event log and
gives every contract call all-or-nothing semantics under one global
ordering.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

from .addresses import ZERO_ADDRESS, derive_address, to_address, to_nonzero_address
from .config import ChainConfig
from .exceptions import (
    ContractNotFoundError,
    InsufficientFundsError,
    InvalidArgumentError,
)
from .logging import get_logger

logger = get_logger(__name__)

C = TypeVar("C")


@dataclass
class Event:
    """
    A log entry emitted by a contract.

    Attributes:
        address: Address of the emitting contract
        name: Event name (e.g. "EscrowFinalized")
        args: Event arguments
        block_number: Block the emitting transaction was committed in
        timestamp: Ledger time of the emitting transaction
    """

    address: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    block_number: int = 0
    timestamp: int = 0


@dataclass
class _Snapshot:
    balances: Dict[str, int]
    contracts: Dict[str, Any]
    contract_state: Dict[str, Dict[str, Any]]
    event_count: int
    nonce: int


class Chain:
    """
    Ledger shared by a set of deployed contracts.

    Attributes:
        config (ChainConfig): Ledger configuration
        chain_id (int): Chain identifier
        block_number (int): Number of committed transactions
    """

    def __init__(self, config: Optional[ChainConfig] = None):
        """
        Initialize an empty ledger.

        Args:
            config: Optional ledger configuration
        """
        self.config = config or ChainConfig()
        self.chain_id = self.config.chain_id
        self.block_number = 0

        self._lock = threading.RLock()
        self._depth = 0
        self._timestamp = self.config.genesis_timestamp
        self._nonce = 0
        self._balances: Dict[str, int] = {}
        self._contracts: Dict[str, Any] = {}
        self._events: List[Event] = []
        self._accounts: Dict[str, str] = {}

    # -- transactions -------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["Chain"]:
        """
        Run a block of ledger mutations atomically.

        The outermost transaction takes the ledger lock and snapshots every
        balance and every deployed contract. If the block raises, the
        snapshot is restored and the exception propagates. Nested
        transactions join the enclosing one.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield self
            except Exception as e:
                self._restore(snapshot)
                logger.warning(
                    "Transaction reverted: %s",
                    e,
                    extra={"extra": {"error": type(e).__name__, "block_number": self.block_number}},
                )
                raise
            else:
                self.block_number += 1
            finally:
                self._depth = 0

    @contextmanager
    def view(self) -> Iterator["Chain"]:
        """
        Hold the ledger lock for a read.

        Reads wait for any transaction running on another thread, so they
        only ever observe committed state.
        """
        with self._lock:
            yield self

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def _snapshot(self) -> _Snapshot:
        # Contracts reference each other and the ledger; pin those so the
        # copy only duplicates plain state.
        memo: Dict[int, Any] = {id(self): self}
        for contract in self._contracts.values():
            memo[id(contract)] = contract

        contract_state = {
            address: copy.deepcopy(vars(contract), memo)
            for address, contract in self._contracts.items()
        }
        return _Snapshot(
            balances=dict(self._balances),
            contracts=dict(self._contracts),
            contract_state=contract_state,
            event_count=len(self._events),
            nonce=self._nonce,
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        self._balances = snapshot.balances
        self._contracts = snapshot.contracts
        del self._events[snapshot.event_count:]
        self._nonce = snapshot.nonce

        for address, state in snapshot.contract_state.items():
            self._contracts[address].__dict__ = state

    # -- accounts -----------------------------------------------------------

    def create_account(self, label: str, balance: Optional[int] = None) -> str:
        """
        Create (or return) a deterministic externally-owned account.

        Args:
            label: Human-readable label, e.g. "seller"
            balance: Initial balance in wei (defaults to the configured one)

        Returns:
            Checksummed account address
        """
        with self._lock:
            if label in self._accounts:
                return self._accounts[label]

            address = derive_address(f"account:{self.chain_id}:{label}")
            self._accounts[label] = address
            initial = self.config.default_account_balance if balance is None else balance
            self._balances[address] = self._balances.get(address, 0) + initial
            logger.debug("Created account %s (%s)", label, address)
            return address

    def accounts(self) -> Dict[str, str]:
        """Return a copy of the label -> address map."""
        with self._lock:
            return dict(self._accounts)

    def fund(self, address: str, amount: int) -> None:
        """Credit an address out of thin air (faucet)."""
        address = to_address(address)
        if amount < 0:
            raise InvalidArgumentError("Amount cannot be negative")
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount

    def balance_of(self, address: str) -> int:
        """
        Get the ether balance of an address.

        Args:
            address: Account or contract address

        Returns:
            Balance in wei
        """
        address = to_address(address)
        with self._lock:
            return self._balances.get(address, 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move ether between two addresses.

        Args:
            sender: Paying address
            recipient: Receiving address (not the zero address)
            amount: Amount in wei

        Raises:
            InvalidArgumentError: On negative amounts or a zero recipient
            InsufficientFundsError: If the sender cannot cover the amount
        """
        sender = to_address(sender)
        recipient = to_nonzero_address(recipient, "Invalid recipient")
        if not isinstance(amount, int) or amount < 0:
            raise InvalidArgumentError("Amount cannot be negative")

        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                raise InsufficientFundsError(
                    f"Insufficient funds: {sender} has {available}, needs {amount}"
                )
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount

    # -- contracts ----------------------------------------------------------

    def register(self, contract: Any) -> str:
        """
        Assign an address to a newly constructed contract.

        Args:
            contract: Contract instance

        Returns:
            The contract's checksummed address
        """
        with self._lock:
            address = derive_address(f"contract:{self.chain_id}:{self._nonce}")
            self._nonce += 1
            self._contracts[address] = contract
            self._balances.setdefault(address, 0)
            logger.debug(
                "Deployed %s at %s",
                getattr(contract, "CONTRACT_NAME", type(contract).__name__),
                address,
            )
            return address

    def contract_at(self, address: str, expected: Optional[Type[C]] = None) -> C:
        """
        Resolve a contract by address.

        Args:
            address: Contract address
            expected: Optional class the contract must be an instance of

        Returns:
            The deployed contract

        Raises:
            ContractNotFoundError: If nothing matching is deployed there
        """
        with self._lock:
            contract = self._contracts.get(to_address(address))
        if contract is None or address == ZERO_ADDRESS:
            raise ContractNotFoundError(f"No contract deployed at {address}")
        if expected is not None and not isinstance(contract, expected):
            raise ContractNotFoundError(
                f"Contract at {address} is not a {expected.__name__}"
            )
        return contract

    def is_contract(self, address: str) -> bool:
        address = to_address(address)
        with self._lock:
            return address in self._contracts

    def contracts(self) -> List[Any]:
        """List all deployed contracts in deployment order."""
        with self._lock:
            return list(self._contracts.values())

    # -- clock --------------------------------------------------------------

    def now(self) -> int:
        """Current ledger timestamp in seconds."""
        with self._lock:
            return self._timestamp

    def increase_time(self, seconds: int) -> int:
        """
        Advance the ledger clock.

        Args:
            seconds: Non-negative number of seconds

        Returns:
            The new timestamp
        """
        if seconds < 0:
            raise InvalidArgumentError("Cannot move time backwards")
        with self._lock:
            self._timestamp += seconds
            return self._timestamp

    # -- events -------------------------------------------------------------

    def emit(self, source: str, name: str, **args: Any) -> Event:
        """Append an event to the log."""
        with self._lock:
            event = Event(
                address=source,
                name=name,
                args=args,
                block_number=self.block_number + 1,
                timestamp=self._timestamp,
            )
            self._events.append(event)
        logger.debug("%s emitted %s %s", source, name, args)
        return event

    def events(
        self,
        name: Optional[str] = None,
        source: Optional[str] = None,
    ) -> List[Event]:
        """
        Query the event log.

        Args:
            name: Optional event name filter
            source: Optional emitting-contract address filter

        Returns:
            Matching events, oldest first
        """
        if source is not None:
            source = to_address(source)
        with self._lock:
            return [
                e for e in self._events
                if (name is None or e.name == name)
                and (source is None or e.address == source)
            ]
