"""Tests for HybridEscrow and EscrowFactory."""

import logging
import threading

import pytest
from web3 import Web3

from propchain.chain import Chain
from propchain.contracts import (
    AssetKind,
    EscrowFactory,
    EscrowState,
    FractionalAsset,
    FractionalToken,
    HybridEscrow,
    PropertyNFT,
    WholeAsset,
)
from propchain.exceptions import (
    AlreadyDepositedError,
    ContractNotFoundError,
    EscrowIncompleteError,
    IncorrectPaymentError,
    InsufficientFundsError,
    InvalidArgumentError,
    NoActiveEscrowError,
    NotApprovedError,
    OnlyBuyerError,
    OnlySellerError,
    UnauthorizedError,
    WrongAssetKindError,
)

PRICE = Web3.to_wei(1, "ether")


@pytest.fixture
def nft_escrow(
    property_nft: PropertyNFT, escrow_factory: EscrowFactory, accounts, certified_property: int
) -> HybridEscrow:
    """1 ETH escrow of the certified property, escrow approved by the seller."""
    escrow = escrow_factory.create_nft_escrow(
        accounts["buyer"], accounts["seller"], PRICE, certified_property, sender=accounts["buyer"]
    )
    property_nft.approve(escrow.address, certified_property, sender=accounts["seller"])
    return escrow


class TestEscrowFactory:
    """Tests for escrow creation and indexing."""

    def test_create_escrow(self, escrow_factory: EscrowFactory, nft_escrow: HybridEscrow, accounts) -> None:
        assert escrow_factory.get_total_escrows() == 1
        assert escrow_factory.get_escrows() == [nft_escrow.address]
        assert escrow_factory.get_escrow(nft_escrow.address) is nft_escrow
        assert escrow_factory.get_user_escrows(accounts["buyer"]) == [nft_escrow.address]
        assert escrow_factory.get_user_escrows(accounts["seller"]) == [nft_escrow.address]
        assert escrow_factory.get_user_escrows(accounts["alice"]) == []
        assert nft_escrow.escrow_type == AssetKind.WHOLE
        assert nft_escrow.get_status().state == EscrowState.CREATED

    def test_create_validation(self, escrow_factory: EscrowFactory, accounts) -> None:
        buyer, seller = accounts["buyer"], accounts["seller"]

        with pytest.raises(InvalidArgumentError, match="Buyer and seller must differ"):
            escrow_factory.create_nft_escrow(buyer, buyer, PRICE, 0, sender=buyer)
        with pytest.raises(InvalidArgumentError, match="Price must be greater than 0"):
            escrow_factory.create_nft_escrow(buyer, seller, 0, 0, sender=buyer)
        with pytest.raises(InvalidArgumentError, match="Fraction amount"):
            escrow_factory.create_escrow(buyer, seller, PRICE, FractionalAsset(accounts["alice"], 0), sender=buyer)
        with pytest.raises(InvalidArgumentError, match="Invalid fraction token"):
            escrow_factory.create_fractional_escrow(buyer, seller, PRICE, accounts["alice"], 10, sender=buyer)

        assert escrow_factory.get_total_escrows() == 0

    def test_unknown_escrow(self, escrow_factory: EscrowFactory, accounts) -> None:
        with pytest.raises(ContractNotFoundError):
            escrow_factory.get_escrow(accounts["alice"])


class TestNftEscrow:
    """Tests for whole-property escrows."""

    def test_full_flow(
        self, chain: Chain, property_nft: PropertyNFT, nft_escrow: HybridEscrow, accounts, certified_property: int
    ) -> None:
        buyer, seller = accounts["buyer"], accounts["seller"]
        buyer_before, seller_before = chain.balance_of(buyer), chain.balance_of(seller)

        nft_escrow.deposit_payment(value=PRICE, sender=buyer)
        assert nft_escrow.get_status().state == EscrowState.BUYER_DEPOSITED
        assert chain.balance_of(nft_escrow.address) == PRICE

        nft_escrow.deposit_nft_asset(sender=seller)
        assert nft_escrow.get_status() == (True, True, EscrowState.BOTH_DEPOSITED)
        assert property_nft.owner_of(certified_property) == nft_escrow.address

        nft_escrow.finalize(sender=buyer)

        assert property_nft.owner_of(certified_property) == buyer
        assert chain.balance_of(buyer) == buyer_before - PRICE
        assert chain.balance_of(seller) == seller_before + PRICE
        assert chain.balance_of(nft_escrow.address) == 0
        assert nft_escrow.state == EscrowState.FINALIZED
        assert not nft_escrow.is_active()

    def test_finalize_logs_structured_context(self, nft_escrow: HybridEscrow, accounts, caplog) -> None:
        nft_escrow.deposit_payment(value=PRICE, sender=accounts["buyer"])
        nft_escrow.deposit_asset(sender=accounts["seller"])

        with caplog.at_level(logging.INFO, logger="propchain.contracts.escrow"):
            nft_escrow.finalize(sender=accounts["buyer"])

        record = next(r for r in caplog.records if r.getMessage().endswith("finalized"))
        assert record.extra["escrow"] == nft_escrow.address
        assert record.extra["price"] == PRICE

    def test_seller_first(self, nft_escrow: HybridEscrow, accounts) -> None:
        nft_escrow.deposit_asset(sender=accounts["seller"])

        assert nft_escrow.state == EscrowState.SELLER_DEPOSITED
        assert nft_escrow.is_seller_deposited()
        assert not nft_escrow.is_buyer_deposited()

    def test_finalize_requires_both_deposits(self, nft_escrow: HybridEscrow, accounts) -> None:
        nft_escrow.deposit_payment(value=PRICE, sender=accounts["buyer"])

        with pytest.raises(EscrowIncompleteError, match="Escrow not complete"):
            nft_escrow.finalize(sender=accounts["buyer"])

    def test_only_buyer_finalizes(self, nft_escrow: HybridEscrow, accounts) -> None:
        nft_escrow.deposit_payment(value=PRICE, sender=accounts["buyer"])
        nft_escrow.deposit_asset(sender=accounts["seller"])

        with pytest.raises(OnlyBuyerError):
            nft_escrow.finalize(sender=accounts["seller"])

    def test_second_finalize_fails(self, nft_escrow: HybridEscrow, accounts) -> None:
        nft_escrow.deposit_payment(value=PRICE, sender=accounts["buyer"])
        nft_escrow.deposit_asset(sender=accounts["seller"])
        nft_escrow.finalize(sender=accounts["buyer"])

        with pytest.raises(NoActiveEscrowError):
            nft_escrow.finalize(sender=accounts["buyer"])
        with pytest.raises(NoActiveEscrowError):
            nft_escrow.cancel(sender=accounts["seller"])

    def test_deposit_guards(self, nft_escrow: HybridEscrow, accounts) -> None:
        buyer, seller = accounts["buyer"], accounts["seller"]

        with pytest.raises(OnlyBuyerError):
            nft_escrow.deposit_payment(value=PRICE, sender=seller)
        with pytest.raises(IncorrectPaymentError):
            nft_escrow.deposit_payment(value=PRICE - 1, sender=buyer)
        with pytest.raises(OnlySellerError):
            nft_escrow.deposit_asset(sender=buyer)
        with pytest.raises(WrongAssetKindError):
            nft_escrow.deposit_fractional_asset(sender=seller)

        nft_escrow.deposit_payment(value=PRICE, sender=buyer)
        with pytest.raises(AlreadyDepositedError):
            nft_escrow.deposit_payment(value=PRICE, sender=buyer)

    def test_deposit_without_approval(
        self, property_nft: PropertyNFT, escrow_factory: EscrowFactory, accounts, certified_property: int
    ) -> None:
        escrow = escrow_factory.create_nft_escrow(
            accounts["buyer"], accounts["seller"], PRICE, certified_property, sender=accounts["buyer"]
        )

        with pytest.raises(NotApprovedError):
            escrow.deposit_asset(sender=accounts["seller"])
        assert not escrow.seller_deposited
        assert property_nft.owner_of(certified_property) == accounts["seller"]

    def test_cancel_refunds_exactly(
        self, chain: Chain, property_nft: PropertyNFT, nft_escrow: HybridEscrow, accounts, certified_property: int
    ) -> None:
        buyer, seller = accounts["buyer"], accounts["seller"]
        buyer_before = chain.balance_of(buyer)
        nft_escrow.deposit_payment(value=PRICE, sender=buyer)
        nft_escrow.deposit_asset(sender=seller)

        nft_escrow.cancel(sender=seller)

        assert chain.balance_of(buyer) == buyer_before
        assert property_nft.owner_of(certified_property) == seller
        assert nft_escrow.state == EscrowState.CANCELLED
        with pytest.raises(NoActiveEscrowError):
            nft_escrow.deposit_payment(value=PRICE, sender=buyer)

    def test_cancel_with_nothing_deposited(self, chain: Chain, nft_escrow: HybridEscrow, accounts) -> None:
        nft_escrow.cancel(sender=accounts["buyer"])

        event = chain.events("EscrowCancelled")[-1]
        assert not event.args["payment_refunded"]
        assert not event.args["asset_returned"]

    def test_only_parties_cancel(self, nft_escrow: HybridEscrow, accounts) -> None:
        with pytest.raises(UnauthorizedError):
            nft_escrow.cancel(sender=accounts["stranger"])


class TestFractionalEscrow:
    """Tests for fractional-share escrows."""

    def test_full_flow(
        self,
        chain: Chain,
        escrow_factory: EscrowFactory,
        fractionalized: FractionalToken,
        accounts,
    ) -> None:
        buyer, seller = accounts["buyer"], accounts["seller"]
        escrow = escrow_factory.create_escrow(
            buyer, seller, PRICE, FractionalAsset(fractionalized.address, 100_000), sender=seller
        )
        fractionalized.approve(escrow.address, 100_000, sender=seller)

        escrow.deposit_fractional_asset(sender=seller)
        assert fractionalized.balance_of(escrow.address) == 100_000

        escrow.deposit_payment(value=PRICE, sender=buyer)
        escrow.finalize(sender=buyer)

        assert fractionalized.balance_of(buyer) == 100_000
        assert fractionalized.balance_of(seller) == 900_000
        assert escrow.escrow_type == AssetKind.FRACTIONAL

    def test_deposit_needs_allowance(self, escrow_factory: EscrowFactory, fractionalized: FractionalToken, accounts) -> None:
        escrow = escrow_factory.create_fractional_escrow(
            accounts["buyer"], accounts["seller"], PRICE, fractionalized.address, 100_000, sender=accounts["seller"]
        )

        with pytest.raises(InsufficientFundsError, match="allowance"):
            escrow.deposit_asset(sender=accounts["seller"])
        with pytest.raises(WrongAssetKindError):
            escrow.deposit_nft_asset(sender=accounts["seller"])

    def test_cancel_returns_shares(self, escrow_factory: EscrowFactory, fractionalized: FractionalToken, accounts) -> None:
        seller = accounts["seller"]
        escrow = escrow_factory.create_escrow(
            accounts["buyer"], seller, PRICE, FractionalAsset(fractionalized.address, 5), sender=seller
        )
        fractionalized.approve(escrow.address, 5, sender=seller)
        escrow.deposit_asset(sender=seller)

        escrow.cancel(sender=accounts["buyer"])

        assert fractionalized.balance_of(seller) == fractionalized.total_supply
        assert fractionalized.balance_of(escrow.address) == 0

    def test_whole_asset_is_value_object(self) -> None:
        assert WholeAsset(3) == WholeAsset(3)
        assert WholeAsset(3).kind == AssetKind.WHOLE


class TestConcurrency:
    """Competing calls are serialized by the ledger."""

    def test_concurrent_finalize_succeeds_once(self, chain: Chain, nft_escrow: HybridEscrow, accounts) -> None:
        nft_escrow.deposit_payment(value=PRICE, sender=accounts["buyer"])
        nft_escrow.deposit_asset(sender=accounts["seller"])
        seller_before = chain.balance_of(accounts["seller"])
        outcomes = []

        def finalize() -> None:
            try:
                nft_escrow.finalize(sender=accounts["buyer"])
                outcomes.append("ok")
            except NoActiveEscrowError:
                outcomes.append("stale")

        threads = [threading.Thread(target=finalize) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["ok"] + ["stale"] * 7
        assert chain.balance_of(accounts["seller"]) == seller_before + PRICE

    def test_reads_wait_for_uncommitted_transaction(
        self, chain: Chain, property_nft: PropertyNFT, accounts, pending_property: int
    ) -> None:
        signed = threading.Event()
        release = threading.Event()
        reads = []

        def sign_then_fail() -> None:
            try:
                with chain.transaction():
                    for signer in ("surveyor", "notary", "ivsl"):
                        property_nft.sign_property(pending_property, sender=accounts[signer])
                    signed.set()
                    release.wait(5)
                    raise RuntimeError("abort")
            except RuntimeError:
                pass

        writer = threading.Thread(target=sign_then_fail)
        writer.start()
        assert signed.wait(5)

        reader = threading.Thread(target=lambda: reads.append(property_nft.is_certified(pending_property)))
        reader.start()
        reader.join(0.2)
        assert reader.is_alive()

        release.set()
        writer.join()
        reader.join()

        assert reads == [False]
        assert not property_nft.is_certified(pending_property)
        assert not property_nft.get_signature_status(pending_property).surveyor_signed
