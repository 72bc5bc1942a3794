"""StampFeeCollector contract: collects stamp duty and forwards it to the admin."""

from dataclasses import dataclass
from typing import List, Optional

from ..addresses import to_nonzero_address
from ..chain import Chain
from ..exceptions import InvalidArgumentError, UnauthorizedError
from ..logging import get_logger
from .base import Contract, transactional, view

logger = get_logger(__name__)


@dataclass(frozen=True)
class StampFeeReceipt:
    payer: str
    token_id: int
    amount: int
    timestamp: int


class StampFeeCollector(Contract):
    """
    Forwards every stamp-fee payment to the current admin.

    Attributes:
        admin (str): Fee recipient
        total_collected (int): Sum of all fees paid, in wei
    """

    CONTRACT_NAME = "StampFeeCollector"

    def __init__(self, chain: Chain, admin: str):
        admin = to_nonzero_address(admin, "Admin cannot be zero address")
        super().__init__(chain)

        self.admin = admin
        self.total_collected = 0
        self._receipts: List[StampFeeReceipt] = []

    @transactional
    def pay_stamp_fee(self, token_id: int, *, value: int, sender: str) -> StampFeeReceipt:
        """
        Pay the stamp fee for a property transaction.

        Args:
            token_id: Property the fee relates to
            value: Attached fee in wei (must be positive)
            sender: Payer

        Returns:
            The recorded receipt
        """
        sender = self._sender(sender)
        if value <= 0:
            raise InvalidArgumentError("Fee required")

        self.chain.transfer(sender, self.admin, value)
        receipt = StampFeeReceipt(
            payer=sender, token_id=token_id, amount=value, timestamp=self.chain.now()
        )
        self._receipts.append(receipt)
        self.total_collected += value

        self._emit(
            "StampFeePaid",
            payer=sender,
            token_id=token_id,
            amount=value,
            timestamp=receipt.timestamp,
        )
        logger.info("Stamp fee of %d paid for property %d by %s", value, token_id, sender)
        return receipt

    @transactional
    def update_admin(self, new_admin: str, *, sender: str) -> None:
        if self._sender(sender) != self.admin:
            raise UnauthorizedError("Only admin")
        new_admin = to_nonzero_address(new_admin, "Admin cannot be zero")

        old_admin, self.admin = self.admin, new_admin
        self._emit("AdminUpdated", old_admin=old_admin, new_admin=new_admin)
        logger.info("Stamp fee admin changed %s -> %s", old_admin, new_admin)

    @view
    def get_receipts(self, token_id: Optional[int] = None) -> List[StampFeeReceipt]:
        if token_id is None:
            return list(self._receipts)
        return [r for r in self._receipts if r.token_id == token_id]
