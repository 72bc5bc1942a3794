"""
FractionalToken contract: fungible shares of one certified property.

The full supply is minted once, to the owner who fractionalized the
property. Supply only ever goes down (burns), and balances always add up
to the current total supply.
"""

from typing import Dict

from ..addresses import to_address, to_nonzero_address
from ..chain import Chain
from ..exceptions import InsufficientFundsError, InvalidArgumentError, UnauthorizedError
from .base import Contract, transactional, view


class FractionalToken(Contract):
    """
    ERC-20 style share ledger for a fractionalized property.

    Attributes:
        name (str): Token name
        symbol (str): Token symbol
        decimals (int): Display decimals (18)
        property_id (int): Property the shares represent
        minter (str): Factory allowed to burn without allowance
        retired (bool): Set when the property left the factory's custody
    """

    CONTRACT_NAME = "FractionalToken"
    DECIMALS = 18

    def __init__(
        self,
        chain: Chain,
        name: str,
        symbol: str,
        total_supply: int,
        property_id: int,
        initial_holder: str,
        minter: str,
    ):
        """
        Deploy the token and mint the full supply.

        Args:
            chain: Ledger to deploy on
            name: Token name (e.g. "Property Token")
            symbol: Token symbol (e.g. "PTKN")
            total_supply: Fixed supply in smallest units
            property_id: Property the shares represent
            initial_holder: Receives the full supply
            minter: Factory contract address
        """
        if not name:
            raise InvalidArgumentError("Token name is required")
        if not symbol:
            raise InvalidArgumentError("Token symbol is required")
        if not isinstance(total_supply, int) or total_supply <= 0:
            raise InvalidArgumentError("Total supply must be greater than 0")
        initial_holder = to_nonzero_address(initial_holder, "Invalid holder")
        minter = to_nonzero_address(minter, "Invalid minter")

        super().__init__(chain)

        self.name = name
        self.symbol = symbol
        self.decimals = self.DECIMALS
        self.property_id = property_id
        self.minter = minter
        self.retired = False
        self._total_supply = total_supply
        self._balances: Dict[str, int] = {initial_holder: total_supply}
        self._allowances: Dict[str, Dict[str, int]] = {}

        self._emit("Transfer", from_=None, to=initial_holder, value=total_supply)

    @property
    @view
    def total_supply(self) -> int:
        return self._total_supply

    @view
    def balance_of(self, account: str) -> int:
        return self._balances.get(to_address(account), 0)

    @view
    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(to_address(owner), {}).get(to_address(spender), 0)

    @view
    def holders(self) -> Dict[str, int]:
        """Non-zero balances keyed by holder."""
        return {a: b for a, b in self._balances.items() if b}

    @transactional
    def transfer(self, to: str, amount: int, *, sender: str) -> None:
        self._transfer(self._sender(sender), to, amount)

    @transactional
    def approve(self, spender: str, amount: int, *, sender: str) -> None:
        sender = self._sender(sender)
        spender = to_nonzero_address(spender, "Approve to the zero address")
        if amount < 0:
            raise InvalidArgumentError("Amount cannot be negative")
        self._allowances.setdefault(sender, {})[spender] = amount
        self._emit("Approval", owner=sender, spender=spender, value=amount)

    @transactional
    def transfer_from(self, from_: str, to: str, amount: int, *, sender: str) -> None:
        """
        Move shares on behalf of ``from_`` using the sender's allowance.

        Raises:
            InsufficientFundsError: If the allowance or the balance is too low
        """
        sender = self._sender(sender)
        from_ = to_address(from_)
        allowed = self.allowance(from_, sender)
        if allowed < amount:
            raise InsufficientFundsError("Insufficient allowance")
        self._allowances[from_][sender] = allowed - amount
        self._transfer(from_, to, amount)

    @transactional
    def burn(self, amount: int, *, sender: str) -> None:
        self._burn(self._sender(sender), amount)

    @transactional
    def burn_from(self, account: str, amount: int, *, sender: str) -> None:
        """Burn shares of any holder; minter only."""
        if self._sender(sender) != self.minter:
            raise UnauthorizedError("Only minter")
        self._burn(to_address(account), amount)

    @transactional
    def retire(self, *, sender: str) -> None:
        """Mark the token as detached from its property; minter only."""
        if self._sender(sender) != self.minter:
            raise UnauthorizedError("Only minter")
        self.retired = True
        self._emit("Retired", property_id=self.property_id)

    def _transfer(self, from_: str, to: str, amount: int) -> None:
        to = to_nonzero_address(to, "Transfer to the zero address")
        if not isinstance(amount, int) or amount < 0:
            raise InvalidArgumentError("Amount cannot be negative")
        balance = self._balances.get(from_, 0)
        if balance < amount:
            raise InsufficientFundsError("Transfer amount exceeds balance")

        self._balances[from_] = balance - amount
        self._balances[to] = self._balances.get(to, 0) + amount
        self._emit("Transfer", from_=from_, to=to, value=amount)

    def _burn(self, account: str, amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidArgumentError("Burn amount must be greater than 0")
        balance = self._balances.get(account, 0)
        if balance < amount:
            raise InsufficientFundsError("Burn amount exceeds balance")

        self._balances[account] = balance - amount
        self._total_supply -= amount
        self._emit("Transfer", from_=account, to=None, value=amount)
