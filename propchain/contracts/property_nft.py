"""
PropertyNFT contract: property registry and certification.

Each minted token is one real-estate property. A property starts out
pending and becomes certified once the surveyor, the notary and the
valuation authority (IVSL) have each signed it. Only certified
properties can change hands.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Set

from web3 import Web3

from ..addresses import ZERO_ADDRESS, to_address, to_nonzero_address
from ..chain import Chain
from ..exceptions import (
    AlreadySignedError,
    IncorrectPaymentError,
    InvalidArgumentError,
    InvalidStateError,
    NotApprovedError,
    NotAuthorizedError,
    NotCertifiedError,
    NotOwnerError,
    TokenNotFoundError,
    UnauthorizedError,
)
from ..logging import get_logger
from .base import Contract, transactional, view

logger = get_logger(__name__)


class Role(Enum):
    """Certification roles. Values are the on-chain role names."""

    SURVEYOR = "SURVEYOR_ROLE"
    NOTARY = "NOTARY_ROLE"
    IVSL = "IVSL_ROLE"


# Order in which a holder of several roles fills signature slots
SIGNING_ORDER = (Role.SURVEYOR, Role.NOTARY, Role.IVSL)


def role_id(role: Role) -> str:
    """keccak256 of the role name, as a 0x-prefixed hex string."""
    return Web3.to_hex(Web3.keccak(text=role.value))


class PoaLevel(IntEnum):
    """Power-of-attorney levels; each level includes the ones below it."""

    NONE = 0
    VIEW = 1
    MANAGE = 2
    TRANSFER = 3


@dataclass
class RoleSignature:
    signed: bool = False
    signer: str = ZERO_ADDRESS


@dataclass
class SignatureStatus:
    """Per-role signature status of a property."""

    surveyor_signed: bool
    surveyor_signer: str
    notary_signed: bool
    notary_signer: str
    ivsl_signed: bool
    ivsl_signer: str

    @property
    def all_signed(self) -> bool:
        return self.surveyor_signed and self.notary_signed and self.ivsl_signed


@dataclass
class PropertyMetadata:
    ipfs_hash: str
    db_hash: str


@dataclass
class PropertyRecord:
    """
    A minted property.

    Attributes:
        token_id: Token identifier
        owner: Current owner
        metadata: Off-chain content hashes
        signatures: Signature slot per certification role
        minted_at: Ledger timestamp at mint
    """

    token_id: int
    owner: str
    metadata: PropertyMetadata
    signatures: Dict[Role, RoleSignature] = field(
        default_factory=lambda: {role: RoleSignature() for role in SIGNING_ORDER}
    )
    minted_at: int = 0

    @property
    def certified(self) -> bool:
        return all(sig.signed for sig in self.signatures.values())


@dataclass
class RentAgreement:
    amount: int
    period: int
    recipient: str
    next_due: int
    last_paid_at: Optional[int] = None


@dataclass
class PowerOfAttorney:
    agent: str
    level: PoaLevel
    active: bool
    valid_from: int
    valid_until: int


class PermissionTable:
    """Capability set keyed by address."""

    def __init__(self):
        self._roles: Dict[str, Set[Role]] = {}

    def grant(self, role: Role, account: str) -> bool:
        """Grant a role; returns False if the account already had it."""
        held = self._roles.setdefault(account, set())
        if role in held:
            return False
        held.add(role)
        return True

    def revoke(self, role: Role, account: str) -> bool:
        """Revoke a role; returns False if the account did not have it."""
        held = self._roles.get(account)
        if not held or role not in held:
            return False
        held.discard(role)
        if not held:
            del self._roles[account]
        return True

    def has(self, role: Role, account: str) -> bool:
        return role in self._roles.get(account, ())

    def roles_of(self, account: str) -> Set[Role]:
        return set(self._roles.get(account, ()))

    def members(self, role: Role) -> List[str]:
        return sorted(a for a, roles in self._roles.items() if role in roles)


class PropertyNFT(Contract):
    """
    Property registry with three-party certification and ERC-721 custody.

    Attributes:
        admin (str): Account allowed to mint and to manage roles
        name (str): Collection name
        symbol (str): Collection symbol
        next_token_id (int): Id the next mint will receive
        permissions (PermissionTable): Role holders
    """

    CONTRACT_NAME = "PropertyNFT"
    NAME = "RealEstateNFT"
    SYMBOL = "RE-NFT"

    def __init__(self, chain: Chain, admin: str):
        """
        Deploy the registry.

        Args:
            chain: Ledger to deploy on
            admin: Admin account (mints properties, grants roles)
        """
        admin = to_nonzero_address(admin, "Invalid admin address")
        super().__init__(chain)

        self.admin = admin
        self.name = self.NAME
        self.symbol = self.SYMBOL
        self.next_token_id = 0
        self.permissions = PermissionTable()

        self._properties: Dict[int, PropertyRecord] = {}
        self._token_approvals: Dict[int, str] = {}
        self._operator_approvals: Dict[str, Set[str]] = {}
        self._rents: Dict[int, RentAgreement] = {}
        self._poas: Dict[int, Dict[str, PowerOfAttorney]] = {}

    # -- roles --------------------------------------------------------------

    def _only_admin(self, sender: str) -> str:
        sender = self._sender(sender)
        if sender != self.admin:
            raise UnauthorizedError("Only admin")
        return sender

    @transactional
    def grant_role(self, role: Role, account: str, *, sender: str) -> None:
        """
        Grant a certification role.

        Args:
            role: Role to grant
            account: Account receiving the role
            sender: Caller (must be the admin)
        """
        self._only_admin(sender)
        account = to_nonzero_address(account, "Invalid account")
        if self.permissions.grant(Role(role), account):
            self._emit("RoleGranted", role=role_id(Role(role)), account=account)
            logger.info("Granted %s to %s", Role(role).name, account)

    @transactional
    def revoke_role(self, role: Role, account: str, *, sender: str) -> None:
        self._only_admin(sender)
        account = to_address(account)
        if self.permissions.revoke(Role(role), account):
            self._emit("RoleRevoked", role=role_id(Role(role)), account=account)
            logger.info("Revoked %s from %s", Role(role).name, account)

    @view
    def has_role(self, role: Role, account: str) -> bool:
        return self.permissions.has(Role(role), to_address(account))

    # -- minting and certification -----------------------------------------

    @transactional
    def mint_property(self, to: str, ipfs_hash: str, db_hash: str, *, sender: str) -> int:
        """
        Mint a new, uncertified property.

        Args:
            to: Initial owner
            ipfs_hash: Content hash of the property documents
            db_hash: Content hash of the registry database record
            sender: Caller (must be the admin)

        Returns:
            The new token id

        Raises:
            UnauthorizedError: If the sender is not the admin
            InvalidArgumentError: On a zero owner or empty hashes
        """
        self._only_admin(sender)
        to = to_nonzero_address(to, "Invalid owner")
        if not ipfs_hash or not db_hash:
            raise InvalidArgumentError("Metadata hashes required")

        token_id = self.next_token_id
        self.next_token_id += 1
        self._properties[token_id] = PropertyRecord(
            token_id=token_id,
            owner=to,
            metadata=PropertyMetadata(ipfs_hash=ipfs_hash, db_hash=db_hash),
            minted_at=self.chain.now(),
        )

        self._emit("Transfer", from_=ZERO_ADDRESS, to=to, token_id=token_id)
        self._emit("PropertyMinted", token_id=token_id, owner=to, ipfs_hash=ipfs_hash)
        logger.info("Minted property %d to %s", token_id, to)
        return token_id

    @transactional
    def sign_property(self, token_id: int, *, sender: str) -> None:
        """
        Record the sender's certification signature.

        A sender holding several roles fills the first unsigned slot among
        its roles, in surveyor, notary, IVSL order.

        Args:
            token_id: Property to sign
            sender: Role holder

        Raises:
            NotAuthorizedError: If the sender holds no certification role
            AlreadySignedError: If every role the sender holds already signed
        """
        sender = self._sender(sender)
        roles = self.permissions.roles_of(sender)
        if not roles:
            raise NotAuthorizedError()

        record = self._require_property(token_id)
        for role in SIGNING_ORDER:
            if role in roles and not record.signatures[role].signed:
                record.signatures[role] = RoleSignature(signed=True, signer=sender)
                break
        else:
            raise AlreadySignedError()

        self._emit("PropertySigned", token_id=token_id, role=role.name, signer=sender)
        logger.info("Property %d signed by %s (%s)", token_id, sender, role.name)

        if record.certified:
            self._emit("PropertyCertified", token_id=token_id)
            logger.info("Property %d certified", token_id)

    @view
    def is_fully_signed(self, token_id: int) -> bool:
        return self._require_property(token_id).certified

    is_certified = is_fully_signed

    @view
    def get_signature_status(self, token_id: int) -> SignatureStatus:
        sigs = self._require_property(token_id).signatures
        return SignatureStatus(
            surveyor_signed=sigs[Role.SURVEYOR].signed,
            surveyor_signer=sigs[Role.SURVEYOR].signer,
            notary_signed=sigs[Role.NOTARY].signed,
            notary_signer=sigs[Role.NOTARY].signer,
            ivsl_signed=sigs[Role.IVSL].signed,
            ivsl_signer=sigs[Role.IVSL].signer,
        )

    @view
    def get_metadata(self, token_id: int) -> PropertyMetadata:
        metadata = self._require_property(token_id).metadata
        return PropertyMetadata(ipfs_hash=metadata.ipfs_hash, db_hash=metadata.db_hash)

    @view
    def token_uri(self, token_id: int) -> str:
        return self._require_property(token_id).metadata.ipfs_hash

    # -- ownership ----------------------------------------------------------

    @view
    def exists(self, token_id: int) -> bool:
        return token_id in self._properties

    @view
    def owner_of(self, token_id: int) -> str:
        return self._require_property(token_id).owner

    @view
    def balance_of(self, owner: str) -> int:
        owner = to_address(owner)
        return sum(1 for p in self._properties.values() if p.owner == owner)

    @view
    def tokens_of_owner(self, owner: str) -> List[int]:
        owner = to_address(owner)
        return sorted(t for t, p in self._properties.items() if p.owner == owner)

    @property
    @view
    def total_supply(self) -> int:
        return len(self._properties)

    @transactional
    def approve(self, to: str, token_id: int, *, sender: str) -> None:
        """
        Approve an address to move one property (zero address clears).

        Args:
            to: Approved address
            token_id: Property id
            sender: Owner or an approved operator of the owner
        """
        sender = self._sender(sender)
        to = to_address(to)
        owner = self.owner_of(token_id)
        if to == owner:
            raise InvalidArgumentError("Approval to current owner")
        if sender != owner and not self.is_approved_for_all(owner, sender):
            raise NotApprovedError("Not owner nor approved for all")

        self._token_approvals[token_id] = to
        self._emit("Approval", owner=owner, approved=to, token_id=token_id)

    @view
    def get_approved(self, token_id: int) -> str:
        self._require_property(token_id)
        return self._token_approvals.get(token_id, ZERO_ADDRESS)

    @transactional
    def set_approval_for_all(self, operator: str, approved: bool, *, sender: str) -> None:
        sender = self._sender(sender)
        operator = to_nonzero_address(operator, "Invalid operator")
        if operator == sender:
            raise InvalidArgumentError("Approve to caller")

        operators = self._operator_approvals.setdefault(sender, set())
        if approved:
            operators.add(operator)
        else:
            operators.discard(operator)
        self._emit("ApprovalForAll", owner=sender, operator=operator, approved=approved)

    @view
    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return to_address(operator) in self._operator_approvals.get(to_address(owner), ())

    def _is_authorized(self, spender: str, token_id: int) -> bool:
        owner = self._properties[token_id].owner
        return (
            spender == owner
            or self._token_approvals.get(token_id) == spender
            or self.is_approved_for_all(owner, spender)
            or self.has_poa(token_id, spender, PoaLevel.TRANSFER)
        )

    @transactional
    def transfer_from(self, from_: str, to: str, token_id: int, *, sender: str) -> None:
        """
        Transfer a certified property.

        The single-token approval, every power of attorney and any rent
        agreement end with the transfer.

        Args:
            from_: Current owner
            to: New owner
            token_id: Property id
            sender: Owner, approved address, operator, or TRANSFER agent

        Raises:
            NotCertifiedError: If the property is still pending certification
            NotApprovedError: If the sender may not move the property
            InvalidArgumentError: On a wrong owner or a zero recipient
        """
        sender = self._sender(sender)
        from_ = to_address(from_)
        to = to_nonzero_address(to, "Transfer to the zero address")
        record = self._require_property(token_id)

        if not record.certified:
            raise NotCertifiedError()
        if record.owner != from_:
            raise InvalidArgumentError("Transfer from incorrect owner")
        if not self._is_authorized(sender, token_id):
            raise NotApprovedError("Caller is not token owner or approved")

        record.owner = to
        self._token_approvals.pop(token_id, None)
        self._poas.pop(token_id, None)
        rent_cleared = self._rents.pop(token_id, None) is not None

        self._emit("Transfer", from_=from_, to=to, token_id=token_id)
        if rent_cleared:
            self._emit("RentCleared", token_id=token_id)
        logger.info("Property %d transferred %s -> %s", token_id, from_, to)

    # -- rent ---------------------------------------------------------------

    @transactional
    def set_rent(
        self,
        token_id: int,
        amount: int,
        period: int,
        recipient: str,
        *,
        sender: str,
    ) -> None:
        """
        Configure periodic rent for a property.

        Args:
            token_id: Property id
            amount: Rent per period in wei
            period: Period length in seconds
            recipient: Address rent is forwarded to
            sender: Owner or an agent with MANAGE power
        """
        sender = self._sender(sender)
        record = self._require_property(token_id)
        if sender != record.owner and not self.has_poa(token_id, sender, PoaLevel.MANAGE):
            raise NotOwnerError()
        if amount <= 0:
            raise InvalidArgumentError("Rent amount must be greater than 0")
        if period <= 0:
            raise InvalidArgumentError("Rent period must be greater than 0")
        recipient = to_nonzero_address(recipient, "Invalid rent recipient")

        self._rents[token_id] = RentAgreement(
            amount=amount,
            period=period,
            recipient=recipient,
            next_due=self.chain.now() + period,
        )
        self._emit("RentSet", token_id=token_id, amount=amount, period=period, recipient=recipient)

    @transactional
    def clear_rent(self, token_id: int, *, sender: str) -> None:
        sender = self._sender(sender)
        record = self._require_property(token_id)
        if sender != record.owner and not self.has_poa(token_id, sender, PoaLevel.MANAGE):
            raise NotOwnerError()
        if self._rents.pop(token_id, None) is None:
            raise InvalidStateError("Rent not set")
        self._emit("RentCleared", token_id=token_id)

    @transactional
    def pay_rent(self, token_id: int, *, value: int, sender: str) -> None:
        """
        Pay one period of rent; the payment is forwarded to the recipient.

        Args:
            token_id: Property id
            value: Attached payment in wei (must equal the rent amount)
            sender: Payer
        """
        sender = self._sender(sender)
        self._require_property(token_id)
        rent = self._rents.get(token_id)
        if rent is None:
            raise InvalidStateError("Rent not set")
        if value != rent.amount:
            raise IncorrectPaymentError("Incorrect rent amount")

        self.chain.transfer(sender, rent.recipient, value)
        rent.next_due += rent.period
        rent.last_paid_at = self.chain.now()
        self._emit("RentPaid", token_id=token_id, payer=sender, amount=value)

    @view
    def get_rent(self, token_id: int) -> Optional[RentAgreement]:
        self._require_property(token_id)
        return self._rents.get(token_id)

    @view
    def is_rent_active(self, token_id: int) -> bool:
        """True while rent is configured and not in arrears."""
        rent = self.get_rent(token_id)
        return rent is not None and self.chain.now() <= rent.next_due

    # -- power of attorney -------------------------------------------------

    @transactional
    def set_poa(
        self,
        token_id: int,
        agent: str,
        level: int,
        active: bool,
        valid_from: int,
        valid_until: int,
        *,
        sender: str,
    ) -> None:
        """
        Grant, update or deactivate a power of attorney.

        Args:
            token_id: Property id
            agent: Agent acting for the owner
            level: PoaLevel value
            active: Whether the power is in force
            valid_from: Start of the validity window (timestamp)
            valid_until: End of the validity window (timestamp)
            sender: Property owner
        """
        sender = self._sender(sender)
        record = self._require_property(token_id)
        if sender != record.owner:
            raise NotOwnerError()
        agent = to_nonzero_address(agent, "Invalid agent")
        if agent == record.owner:
            raise InvalidArgumentError("Owner cannot be own agent")
        try:
            poa_level = PoaLevel(level)
        except ValueError:
            raise InvalidArgumentError(f"Invalid PoA level: {level}")
        if valid_until <= valid_from:
            raise InvalidArgumentError("Invalid validity window")

        self._poas.setdefault(token_id, {})[agent] = PowerOfAttorney(
            agent=agent,
            level=poa_level,
            active=active,
            valid_from=valid_from,
            valid_until=valid_until,
        )
        self._emit("PoASet", token_id=token_id, agent=agent, level=int(poa_level), active=active)

    @view
    def get_poa(self, token_id: int, agent: str) -> Optional[PowerOfAttorney]:
        self._require_property(token_id)
        return self._poas.get(token_id, {}).get(to_address(agent))

    @view
    def has_poa(self, token_id: int, agent: str, level: PoaLevel = PoaLevel.VIEW) -> bool:
        poa = self._poas.get(token_id, {}).get(to_address(agent))
        if poa is None or not poa.active:
            return False
        now = self.chain.now()
        return poa.valid_from <= now <= poa.valid_until and poa.level >= level

    # -- helpers ------------------------------------------------------------

    def _require_property(self, token_id: int) -> PropertyRecord:
        record = self._properties.get(token_id)
        if record is None:
            raise TokenNotFoundError(f"Property {token_id} does not exist")
        return record
