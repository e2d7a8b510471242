"""
Billing Service
Bill issuance, line items, totals and the payment ledger
"""
import logging
import math
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from clinic_app.errors import AlreadyPaid, Conflict, InvalidInput, NotFound
from clinic_app.models import Bill, BillItem, Patient, Payment
from clinic_app.models.billing import (
    PAYMENT_METHODS,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
    SERVICE_TYPES,
)
from clinic_app.services.persistence import transaction
from clinic_app.services.sequence import BILL_PREFIX, next_sequence_number
from clinic_app.utils.fields import MAX_AMOUNT, as_int, as_money, as_text, one_of

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
TREND_MONTHS = 6


def to_money(value) -> Decimal:
    """Quantize to cents, rounding half up."""
    if value is None:
        return ZERO
    try:
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidInput(f'Invalid amount: {value!r}')


class Totals(NamedTuple):
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class PaymentResult(NamedTuple):
    payment_id: int
    total_paid: Decimal
    remaining_amount: Decimal
    payment_status: str

    def to_dict(self):
        return {
            'payment_id': self.payment_id,
            'total_paid': str(self.total_paid),
            'remaining_amount': str(self.remaining_amount),
            'payment_status': self.payment_status,
        }


def compute_totals(line_totals: Iterable[Decimal], discount, tax_percent) -> Totals:
    """
    subtotal = sum of line totals
    tax = (subtotal - discount) * tax_percent / 100
    total = subtotal - discount + tax
    """
    subtotal = to_money(sum(line_totals, ZERO))
    discount_amount = to_money(discount)
    tax_amount = to_money((subtotal - discount_amount) * Decimal(str(tax_percent)) / 100)
    total_amount = subtotal - discount_amount + tax_amount
    if max(subtotal, total_amount) > MAX_AMOUNT:
        raise InvalidInput('Bill total is out of range')
    return Totals(subtotal, discount_amount, tax_amount, total_amount)


def derive_payment_status(total_amount: Decimal, total_paid: Decimal) -> str:
    remaining = max(ZERO, total_amount - total_paid)
    if remaining == 0:
        return PAYMENT_PAID
    if total_paid > 0:
        return PAYMENT_PARTIAL
    return PAYMENT_PENDING


def _parse_item(raw: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise InvalidInput('Each item must be an object')
    service_type = one_of(*SERVICE_TYPES)(raw.get('service_type'))
    unit_price = as_money(raw.get('unit_price'))
    quantity = as_int(raw.get('quantity', 1))
    if unit_price < 0:
        raise InvalidInput('Unit price must not be negative')
    if quantity < 1:
        raise InvalidInput('Quantity must be at least 1')
    unit_price = to_money(unit_price)
    total_price = to_money(unit_price * quantity)
    if total_price > MAX_AMOUNT:
        raise InvalidInput('Item total is out of range')
    return {
        'service_type': service_type,
        'description': as_text(raw.get('description')),
        'unit_price': unit_price,
        'quantity': quantity,
        'total_price': total_price,
    }


class BillingEngine:
    """
    Bills carry a cached payment_status that is re-derived from the sum of
    the payment ledger on every payment; it is never adjusted incrementally.
    """

    def __init__(self, session, max_attempts: int = 3):
        self.session = session
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_bill(self, bill_id: int) -> Bill:
        bill = self.session.get(Bill, bill_id)
        if not bill:
            raise NotFound('Bill not found')
        return bill

    def get_total_paid(self, bill_id: int) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.bill_id == bill_id)
        ).scalar_one()
        return to_money(total)

    def get_remaining_amount(self, bill_id: int) -> Decimal:
        bill = self.get_bill(bill_id)
        return max(ZERO, to_money(bill.total_amount) - self.get_total_paid(bill_id))

    def get_payments(self, bill_id: int) -> List[Payment]:
        self.get_bill(bill_id)
        return self.session.execute(
            select(Payment)
            .where(Payment.bill_id == bill_id)
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
        ).scalars().all()

    # ------------------------------------------------------------------
    # Issuance and items
    # ------------------------------------------------------------------

    def create_bill(self, patient_id, items, discount=0, tax_percent=0,
                    notes=None, created_by: Optional[int] = None) -> Bill:
        """
        Issue a bill with its items. Discount is an absolute amount, tax a
        percentage applied after the discount.
        """
        if not items:
            raise InvalidInput('At least one bill item is required')
        patient_id = as_int(patient_id)
        parsed_items = [_parse_item(raw) for raw in items]

        discount = as_money(discount or 0)
        tax_percent = as_money(tax_percent or 0)
        if discount < 0 or tax_percent < 0:
            raise InvalidInput('Discount and tax must not be negative')

        totals = compute_totals((item['total_price'] for item in parsed_items), discount, tax_percent)
        if totals.discount_amount > totals.subtotal:
            raise InvalidInput('Discount cannot exceed the subtotal')

        patient = self.session.get(Patient, patient_id)
        if not patient or patient.deleted_at is not None:
            raise NotFound('Patient not found')

        for attempt in range(1, self.max_attempts + 1):
            try:
                with transaction(self.session):
                    bill = Bill(
                        bill_number=next_sequence_number(self.session, Bill, 'bill_number', BILL_PREFIX),
                        patient_id=patient_id,
                        subtotal=totals.subtotal,
                        discount_amount=totals.discount_amount,
                        tax_amount=totals.tax_amount,
                        total_amount=totals.total_amount,
                        # A bill with nothing to pay starts out settled
                        payment_status=derive_payment_status(totals.total_amount, ZERO),
                        notes=as_text(notes),
                        created_by=created_by,
                    )
                    bill.items = [BillItem(**item) for item in parsed_items]
                    self.session.add(bill)
                    self.session.flush()
            except IntegrityError as e:
                logger.warning("Bill number collision on attempt %d/%d: %s", attempt, self.max_attempts, e.orig)
                continue

            logger.info("Created bill %s for patient %s, total %s", bill.bill_number, patient_id, bill.total_amount)
            return bill

        raise Conflict('Could not allocate a bill number, please retry')

    def add_item(self, bill_id: int, service_type, description, unit_price, quantity=1) -> BillItem:
        bill = self.get_bill(bill_id)
        if bill.payment_status == PAYMENT_PAID:
            raise AlreadyPaid('Cannot change items on a paid bill')
        item = BillItem(**_parse_item({
            'service_type': service_type,
            'description': description,
            'unit_price': unit_price,
            'quantity': quantity,
        }))

        with transaction(self.session):
            bill.items.append(item)
            self.session.flush()
            self.recalculate_totals(bill)

        logger.info("Added %s item to bill %s", item.service_type, bill.bill_number)
        return item

    def remove_item(self, bill_id: int, item_id: int) -> Bill:
        bill = self.get_bill(bill_id)
        if bill.payment_status == PAYMENT_PAID:
            raise AlreadyPaid('Cannot change items on a paid bill')
        item = next((i for i in bill.items if i.id == item_id), None)
        if item is None:
            raise NotFound('Bill item not found')
        remaining_subtotal = sum((to_money(i.total_price) for i in bill.items if i.id != item_id), ZERO)
        if remaining_subtotal < to_money(bill.discount_amount):
            raise InvalidInput('Removing this item would leave the discount above the subtotal')

        with transaction(self.session):
            bill.items.remove(item)
            self.session.flush()
            self.recalculate_totals(bill)

        logger.info("Removed item %s from bill %s", item_id, bill.bill_number)
        return bill

    def recalculate_totals(self, bill: Bill) -> Bill:
        """
        Re-derive subtotal and total from the current items. Discount and tax
        amounts stay as issued. Runs inside the caller's transaction.
        """
        subtotal = self.session.execute(
            select(func.coalesce(func.sum(BillItem.total_price), 0)).where(BillItem.bill_id == bill.id)
        ).scalar_one()
        subtotal = to_money(subtotal)
        total_amount = subtotal - to_money(bill.discount_amount) + to_money(bill.tax_amount)
        if max(subtotal, total_amount) > MAX_AMOUNT:
            raise InvalidInput('Bill total is out of range')
        bill.subtotal = subtotal
        bill.total_amount = total_amount

        bill.payment_status = derive_payment_status(total_amount, self.get_total_paid(bill.id))
        bill.updated_at = datetime.utcnow()
        return bill

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(self, bill_id: int, amount, method, transaction_id=None,
                       notes=None, processed_by: Optional[int] = None) -> PaymentResult:
        """
        Append a payment and re-derive the bill status from the ledger sum.
        The payment row and the new status commit together.
        """
        amount = to_money(as_money(amount))
        if amount <= 0:
            raise InvalidInput('Payment amount must be greater than zero')
        method = one_of(*PAYMENT_METHODS)(method)

        with transaction(self.session):
            bill = self.session.execute(
                select(Bill).where(Bill.id == bill_id).with_for_update()
            ).scalar_one_or_none()
            if not bill:
                raise NotFound('Bill not found')
            if bill.payment_status == PAYMENT_PAID:
                raise AlreadyPaid('Bill is already paid')

            payment = Payment(
                bill_id=bill.id,
                amount=amount,
                payment_method=method,
                transaction_id=as_text(transaction_id),
                notes=as_text(notes),
                processed_by=processed_by,
            )
            self.session.add(payment)
            self.session.flush()

            total_amount = to_money(bill.total_amount)
            total_paid = self.get_total_paid(bill.id)
            remaining = max(ZERO, total_amount - total_paid)
            bill.payment_status = derive_payment_status(total_amount, total_paid)
            bill.updated_at = datetime.utcnow()
            result = PaymentResult(payment.id, total_paid, remaining, bill.payment_status)

        logger.info(
            "Payment %s of %s on bill %s: paid %s, remaining %s, status %s",
            result.payment_id, amount, bill.bill_number, total_paid, remaining, result.payment_status,
        )
        return result

    def get_outstanding(self, patient_id: int) -> List[Bill]:
        """Pending and partially paid bills for a patient, newest first."""
        return self.session.execute(
            select(Bill)
            .where(
                Bill.patient_id == patient_id,
                Bill.payment_status.in_((PAYMENT_PENDING, PAYMENT_PARTIAL)),
            )
            .order_by(Bill.created_at.desc(), Bill.id.desc())
        ).scalars().all()

    # ------------------------------------------------------------------
    # Listings and reports
    # ------------------------------------------------------------------

    def list_bills(self, status: Optional[str] = None, patient_id: Optional[int] = None,
                   page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = select(Bill)
        if status:
            query = query.where(Bill.payment_status == one_of(*PAYMENT_STATUSES)(status))
        if patient_id:
            query = query.where(Bill.patient_id == patient_id)

        total = self.session.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        bills = self.session.execute(
            query.order_by(Bill.created_at.desc(), Bill.id.desc()).limit(limit).offset((page - 1) * limit)
        ).scalars().all()
        return {
            'bills': bills,
            'total': total,
            'page': page,
            'limit': limit,
            'pages': math.ceil(total / limit) if limit else 0,
        }

    def payment_history(self, patient_id: Optional[int] = None, page: int = 1,
                        limit: int = 10) -> Dict[str, Any]:
        query = select(Payment).join(Bill, Payment.bill_id == Bill.id)
        if patient_id:
            query = query.where(Bill.patient_id == patient_id)

        total = self.session.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        payments = self.session.execute(
            query.order_by(Payment.payment_date.desc(), Payment.id.desc()).limit(limit).offset((page - 1) * limit)
        ).scalars().all()
        return {
            'payments': payments,
            'total': total,
            'page': page,
            'limit': limit,
            'pages': math.ceil(total / limit) if limit else 0,
        }

    def billing_stats(self, days: int = 30) -> Dict[str, Any]:
        """Totals per status over the window, paid revenue today and a monthly trend."""
        now = datetime.utcnow()
        window = self.session.execute(
            select(Bill.payment_status, Bill.total_amount).where(Bill.created_at >= now - timedelta(days=days))
        ).all()

        by_status = {status: ZERO for status in PAYMENT_STATUSES}
        for status, total in window:
            by_status[status] = by_status.get(status, ZERO) + to_money(total)

        today_start = datetime.combine(now.date(), datetime.min.time())
        today_paid = self.session.execute(
            select(Bill.total_amount).where(Bill.payment_status == PAYMENT_PAID, Bill.created_at >= today_start)
        ).scalars().all()

        # Grouped in Python so the same code runs on SQLite and PostgreSQL
        trend = OrderedDict()
        paid_rows = self.session.execute(
            select(Bill.created_at, Bill.total_amount)
            .where(Bill.payment_status == PAYMENT_PAID, Bill.created_at >= now - timedelta(days=31 * TREND_MONTHS))
            .order_by(Bill.created_at.desc())
        ).all()
        for created_at, total in paid_rows:
            month = created_at.strftime('%Y-%m')
            entry = trend.setdefault(month, {'month': month, 'revenue': ZERO, 'bills_count': 0})
            entry['revenue'] += to_money(total)
            entry['bills_count'] += 1

        return {
            'overview': {
                'total_revenue': str(by_status[PAYMENT_PAID]),
                'pending_amount': str(by_status[PAYMENT_PENDING]),
                'partially_paid_amount': str(by_status[PAYMENT_PARTIAL]),
                'total_bills': len(window),
            },
            'today': {
                'today_revenue': str(sum((to_money(t) for t in today_paid), ZERO)),
                'today_bills': len(today_paid),
            },
            'monthly_trends': [
                {'month': e['month'], 'revenue': str(e['revenue']), 'bills_count': e['bills_count']}
                for e in trend.values()
            ],
        }
