"""Sales, purchases and other animal transactions, with certificates and statistics."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Callable

from .config import MAX_CERTIFICATE_LEN, MAX_SPECIES_NAME_LEN, MAX_TRANSACTIONS
from .errors import InvalidParameterError, NotFoundError, OutOfCapacityError

CERTIFICATE_TYPE_SIZE = 32
CURRENCY_SIZE = 4
DEFAULT_CURRENCY = "EUR"


class TransactionType(IntEnum):
    """What happened to the animal."""

    PURCHASE = 0
    SALE = 1
    EXCHANGE = 2
    GIFT = 3
    BREEDING = 4
    DEATH = 5
    ESCAPE = 6


class TransactionStatus(IntEnum):
    """Progress of a transaction."""

    PENDING = 0
    COMPLETED = 1
    CANCELLED = 2
    REFUNDED = 3


@dataclass
class Transaction:
    """A movement of an animal into or out of the collection."""

    type: TransactionType = TransactionType.PURCHASE
    status: TransactionStatus = TransactionStatus.PENDING
    animal_id: int = 0
    animal_name: str = ""
    animal_species: str = ""
    transaction_date: int = 0
    amount: float = 0.0
    currency: str = DEFAULT_CURRENCY
    counterpart_name: str = ""
    counterpart_address: str = ""
    counterpart_phone: str = ""
    counterpart_email: str = ""
    cites_required: bool = False
    cites_permit_number: str = ""
    certificate_number: str = ""
    notes: str = ""
    documents: str = ""
    id: int = 0
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self) -> None:
        try:
            self.type = TransactionType(self.type)
            self.status = TransactionStatus(self.status)
        except ValueError as exc:
            raise InvalidParameterError(str(exc)) from None


@dataclass
class Certificate:
    """A document issued for a transaction."""

    transaction_id: int
    certificate_type: str
    issue_date: int
    id: int = 0
    certificate_number: str = ""
    expiry_date: int = 0
    issuing_authority: str = ""
    content: str = ""
    is_valid: bool = True


@dataclass
class FinancialStats:
    """Aggregated figures over all transactions."""

    total_transactions: int = 0
    sales_count: int = 0
    purchases_count: int = 0
    total_sales_amount: float = 0.0
    total_purchases_amount: float = 0.0
    net_profit: float = 0.0
    average_sale_price: float = 0.0
    average_purchase_price: float = 0.0
    transactions_this_month: int = 0
    revenue_this_month: float = 0.0
    last_transaction_date: int = 0


class TransactionManager:
    """In-memory transaction ledger with a fixed capacity."""

    def __init__(
        self,
        capacity: int = MAX_TRANSACTIONS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 0:
            raise InvalidParameterError("capacity must not be negative")
        self._capacity = capacity
        self._clock = clock
        self._transactions: list[Transaction] = []
        self._next_id = 1
        self._next_certificate_id = 1

    def __len__(self) -> int:
        return len(self._transactions)

    def _now(self) -> int:
        return int(self._clock())

    @staticmethod
    def _limit(max_count: int | None) -> int | None:
        if max_count is not None and max_count < 0:
            raise InvalidParameterError("max_count must not be negative")
        return max_count

    def _find(self, transaction_id: int) -> Transaction:
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction
        raise NotFoundError(f"no transaction with id {transaction_id}")

    def create(self, transaction: Transaction) -> Transaction:
        """Store ``transaction`` with a fresh id and timestamps, and return it."""
        if transaction is None:
            raise InvalidParameterError("transaction is required")
        if len(self._transactions) >= self._capacity:
            raise OutOfCapacityError("maximum number of transactions reached")
        transaction.id = self._next_id
        self._next_id += 1
        transaction.created_at = self._now()
        transaction.updated_at = transaction.created_at
        self._transactions.append(replace(transaction))
        return transaction

    def update(self, transaction: Transaction) -> None:
        """Replace the stored transaction that has ``transaction.id``."""
        if transaction is None:
            raise InvalidParameterError("transaction is required")
        for index, stored in enumerate(self._transactions):
            if stored.id == transaction.id:
                updated = replace(transaction)
                updated.updated_at = self._now()
                self._transactions[index] = updated
                return
        raise NotFoundError(f"no transaction with id {transaction.id}")

    def delete(self, transaction_id: int) -> None:
        """Remove a transaction, keeping the order of the others."""
        self._transactions.remove(self._find(transaction_id))

    def get(self, transaction_id: int) -> Transaction:
        """Return a copy of the transaction with ``transaction_id``."""
        return replace(self._find(transaction_id))

    def all(self, max_count: int | None = None) -> list[Transaction]:
        """Return copies in insertion order, at most ``max_count``."""
        return [replace(t) for t in self._transactions[: self._limit(max_count)]]

    def by_animal(self, animal_id: int, max_count: int | None = None) -> list[Transaction]:
        """Return copies of the transactions concerning one animal, at most ``max_count``."""
        limit = self._limit(max_count)
        found = [replace(t) for t in self._transactions if t.animal_id == animal_id]
        return found[:limit]

    def generate_certificate(self, transaction_id: int, certificate_type: str) -> Certificate:
        """Issue a certificate of ``certificate_type`` for a transaction."""
        if certificate_type is None:
            raise InvalidParameterError("certificate_type is required")
        now = self._now()
        certificate = Certificate(
            id=self._next_certificate_id,
            transaction_id=transaction_id,
            certificate_type=certificate_type[: CERTIFICATE_TYPE_SIZE - 1],
            issue_date=now,
            certificate_number=f"CERT-{transaction_id:06d}-{self._next_certificate_id:04d}",
        )
        self._next_certificate_id += 1
        try:
            transaction = self._find(transaction_id)
        except NotFoundError:
            return certificate
        lines = [
            f"Certificate: {certificate.certificate_type}",
            f"Transaction: {transaction.id} ({transaction.type.name})",
            f"Animal: {transaction.animal_name} ({transaction.animal_species})",
            f"Counterpart: {transaction.counterpart_name}",
        ]
        if transaction.cites_required:
            lines.append(f"CITES permit: {transaction.cites_permit_number}")
        certificate.content = "\n".join(lines)[: MAX_CERTIFICATE_LEN - 1]
        return certificate

    def validate(self, transaction: Transaction) -> tuple[bool, str]:
        """Check a transaction; return whether it is valid and, if not, why."""
        if transaction is None:
            raise InvalidParameterError("transaction is required")
        if transaction.amount < 0:
            return False, "amount must not be negative"
        if len(transaction.currency) >= CURRENCY_SIZE:
            return False, "currency must be a code of at most 3 characters"
        if len(transaction.animal_species) >= MAX_SPECIES_NAME_LEN:
            return False, f"species name must be shorter than {MAX_SPECIES_NAME_LEN} characters"
        if transaction.cites_required and not transaction.cites_permit_number:
            return False, "a CITES permit number is required"
        return True, ""

    def financial_stats(self) -> FinancialStats:
        """Compute sales and purchase statistics."""
        month = time.localtime(self._now())[:2]
        stats = FinancialStats(total_transactions=len(self._transactions))
        for transaction in self._transactions:
            if transaction.type is TransactionType.SALE:
                stats.sales_count += 1
                stats.total_sales_amount += transaction.amount
            elif transaction.type is TransactionType.PURCHASE:
                stats.purchases_count += 1
                stats.total_purchases_amount += transaction.amount
            if transaction.transaction_date:
                if time.localtime(transaction.transaction_date)[:2] == month:
                    stats.transactions_this_month += 1
                    if transaction.type is TransactionType.SALE:
                        stats.revenue_this_month += transaction.amount
                stats.last_transaction_date = max(
                    stats.last_transaction_date, transaction.transaction_date
                )
        stats.net_profit = stats.total_sales_amount - stats.total_purchases_amount
        if stats.sales_count:
            stats.average_sale_price = stats.total_sales_amount / stats.sales_count
        if stats.purchases_count:
            stats.average_purchase_price = stats.total_purchases_amount / stats.purchases_count
        return stats