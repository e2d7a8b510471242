from decimal import Decimal

import pytest

from clinic_app.errors import AlreadyPaid, InvalidInput, NotFound
from clinic_app.models import Bill, Payment
from clinic_app.services.billing import (
    BillingEngine,
    compute_totals,
    derive_payment_status,
    to_money,
)

ITEMS = [
    {'service_type': 'Consultation', 'description': 'Consultation', 'unit_price': '100', 'quantity': 2},
    {'service_type': 'Lab Test', 'description': 'Blood panel', 'unit_price': '50', 'quantity': 1},
]


@pytest.fixture
def engine(session):
    return BillingEngine(session)


@pytest.fixture
def bill(engine, patient):
    return engine.create_bill(patient.id, ITEMS, discount=20, tax_percent=10)


class TestArithmetic:

    def test_totals(self):
        totals = compute_totals([Decimal('200'), Decimal('50')], 20, 10)

        assert totals.subtotal == Decimal('250.00')
        assert totals.discount_amount == Decimal('20.00')
        assert totals.tax_amount == Decimal('23.00')
        assert totals.total_amount == Decimal('253.00')

    def test_rounds_half_up_to_cents(self):
        assert to_money('0.125') == Decimal('0.13')
        assert to_money(Decimal('2.675')) == Decimal('2.68')
        assert to_money(None) == Decimal('0.00')

    def test_tax_on_fractional_amounts(self):
        totals = compute_totals([Decimal('33.33')], 0, Decimal('7.5'))

        assert totals.tax_amount == Decimal('2.50')
        assert totals.total_amount == Decimal('35.83')

    @pytest.mark.parametrize('total, paid, expected', [
        ('253', '0', 'Pending'),
        ('253', '100', 'Partially Paid'),
        ('253', '253', 'Paid'),
        ('253', '300', 'Paid'),
    ])
    def test_status_derivation(self, total, paid, expected):
        assert derive_payment_status(Decimal(total), Decimal(paid)) == expected


class TestCreateBill:

    def test_creates_bill_with_items_and_totals(self, bill):
        assert bill.bill_number == 'INV0001'
        assert bill.subtotal == Decimal('250')
        assert bill.discount_amount == Decimal('20')
        assert bill.tax_amount == Decimal('23')
        assert bill.total_amount == Decimal('253')
        assert bill.payment_status == 'Pending'
        assert [item.total_price for item in bill.items] == [Decimal('200'), Decimal('50')]

    def test_numbers_increment(self, engine, patient, bill):
        second = engine.create_bill(patient.id, ITEMS[:1])

        assert second.bill_number == 'INV0002'

    def test_continues_from_last_issued_number(self, engine, session, patient):
        session.add(Bill(bill_number='INV0047', patient_id=patient.id))
        session.commit()

        assert engine.create_bill(patient.id, ITEMS).bill_number == 'INV0048'

    def test_requires_items(self, engine, patient):
        with pytest.raises(InvalidInput):
            engine.create_bill(patient.id, [])

    def test_unknown_patient(self, engine):
        with pytest.raises(NotFound):
            engine.create_bill(999, ITEMS)

    @pytest.mark.parametrize('item', [
        {'service_type': 'Consultation', 'unit_price': '-1', 'quantity': 1},
        {'service_type': 'Consultation', 'unit_price': '10', 'quantity': 0},
        {'service_type': 'Massage', 'unit_price': '10', 'quantity': 1},
        {'service_type': 'Consultation', 'unit_price': 'ten', 'quantity': 1},
        {'service_type': 'Consultation', 'unit_price': '100', 'quantity': 2.9},
        {'service_type': 'Consultation', 'unit_price': '100', 'quantity': True},
        {'service_type': 'Consultation', 'unit_price': '1e30', 'quantity': 1},
        {'service_type': 'Consultation', 'unit_price': '100', 'quantity': 10 ** 20},
    ])
    def test_rejects_bad_items(self, engine, session, patient, item):
        with pytest.raises(InvalidInput):
            engine.create_bill(patient.id, [item])
        assert session.query(Bill).count() == 0

    def test_discount_cannot_exceed_subtotal(self, engine, patient):
        with pytest.raises(InvalidInput):
            engine.create_bill(patient.id, ITEMS, discount=300)

    def test_whole_number_float_quantity_is_accepted(self, engine, patient):
        bill = engine.create_bill(patient.id, [{'service_type': 'Medication', 'unit_price': '10', 'quantity': 3.0}])

        assert bill.items[0].quantity == 3
        assert bill.total_amount == Decimal('30')

    def test_free_bill_starts_settled(self, engine, patient):
        bill = engine.create_bill(patient.id, [{'service_type': 'Consultation', 'unit_price': '0'}])

        assert bill.payment_status == 'Paid'
        assert engine.get_outstanding(patient.id) == []


class TestItems:

    def test_add_item_holds_discount_and_tax(self, engine, bill):
        engine.add_item(bill.id, 'Medication', 'Antibiotics', '30', 1)
        bill = engine.get_bill(bill.id)

        assert bill.subtotal == Decimal('280')
        assert bill.discount_amount == Decimal('20')
        assert bill.tax_amount == Decimal('23')
        assert bill.total_amount == Decimal('283')
        assert len(bill.items) == 3

    def test_remove_item(self, engine, bill):
        lab = bill.items[1]

        engine.remove_item(bill.id, lab.id)
        bill = engine.get_bill(bill.id)

        assert bill.subtotal == Decimal('200')
        assert bill.total_amount == Decimal('203')
        assert len(bill.items) == 1

    def test_remove_item_cannot_push_subtotal_below_discount(self, engine, patient):
        bill = engine.create_bill(patient.id, ITEMS, discount=120)
        consultation = bill.items[0]

        with pytest.raises(InvalidInput):
            engine.remove_item(bill.id, consultation.id)

        bill = engine.get_bill(bill.id)
        assert len(bill.items) == 2
        assert bill.total_amount == Decimal('130')
        assert bill.payment_status == 'Pending'

    def test_removing_last_item_of_undiscounted_bill_settles_it(self, engine, patient):
        bill = engine.create_bill(patient.id, ITEMS[1:])

        engine.remove_item(bill.id, bill.items[0].id)
        bill = engine.get_bill(bill.id)

        assert bill.total_amount == Decimal('0')
        assert bill.payment_status == 'Paid'

    def test_remove_unknown_item(self, engine, bill):
        with pytest.raises(NotFound):
            engine.remove_item(bill.id, 12345)

    def test_paid_bill_items_are_locked(self, engine, bill):
        engine.record_payment(bill.id, '253', 'Cash')

        with pytest.raises(AlreadyPaid):
            engine.add_item(bill.id, 'Medication', 'Late charge', '5', 1)

    def test_item_change_after_partial_payment_rederives_status(self, engine, bill):
        engine.record_payment(bill.id, '200', 'Card')
        engine.remove_item(bill.id, bill.items[1].id)

        assert engine.get_bill(bill.id).payment_status == 'Partially Paid'
        assert engine.get_remaining_amount(bill.id) == Decimal('3.00')


class TestPayments:

    def test_partial_then_full_payment(self, engine, bill):
        first = engine.record_payment(bill.id, '100', 'Cash')

        assert first.payment_status == 'Partially Paid'
        assert first.total_paid == Decimal('100.00')
        assert first.remaining_amount == Decimal('153.00')

        second = engine.record_payment(bill.id, '153', 'Card', transaction_id='TX-1')

        assert second.payment_status == 'Paid'
        assert second.total_paid == Decimal('253.00')
        assert second.remaining_amount == Decimal('0.00')
        assert engine.get_bill(bill.id).payment_status == 'Paid'

    def test_overpayment_clamps_remaining_to_zero(self, engine, bill):
        result = engine.record_payment(bill.id, '300', 'Cash')

        assert result.payment_status == 'Paid'
        assert result.remaining_amount == Decimal('0.00')

    def test_payment_on_paid_bill_leaves_ledger_unchanged(self, engine, session, bill):
        engine.record_payment(bill.id, '253', 'Cash')

        with pytest.raises(AlreadyPaid):
            engine.record_payment(bill.id, '10', 'Cash')

        assert session.query(Payment).filter_by(bill_id=bill.id).count() == 1
        assert engine.get_total_paid(bill.id) == Decimal('253.00')

    @pytest.mark.parametrize('amount', ['0', '-5', 'abc'])
    def test_rejects_non_positive_amount(self, engine, session, bill, amount):
        with pytest.raises(InvalidInput):
            engine.record_payment(bill.id, amount, 'Cash')
        assert session.query(Payment).count() == 0

    @pytest.mark.parametrize('amount', ['1e30', '10000000000'])
    def test_rejects_out_of_range_amount(self, engine, session, bill, amount):
        with pytest.raises(InvalidInput):
            engine.record_payment(bill.id, amount, 'Cash')
        assert session.query(Payment).count() == 0

    def test_rejects_unknown_method(self, engine, bill):
        with pytest.raises(InvalidInput):
            engine.record_payment(bill.id, '10', 'Barter')

    def test_unknown_bill(self, engine):
        with pytest.raises(NotFound):
            engine.record_payment(777, '10', 'Cash')

    def test_payment_ledger_queries(self, engine, bill):
        engine.record_payment(bill.id, '50', 'Cash')
        engine.record_payment(bill.id, '25', 'Card')

        assert len(engine.get_payments(bill.id)) == 2
        assert engine.get_total_paid(bill.id) == Decimal('75.00')
        assert engine.get_remaining_amount(bill.id) == Decimal('178.00')


class TestReports:

    def test_outstanding_excludes_paid_bills(self, engine, patient):
        open_bill = engine.create_bill(patient.id, ITEMS)
        paid_bill = engine.create_bill(patient.id, ITEMS[:1])
        engine.record_payment(paid_bill.id, '200', 'Cash')
        partial = engine.create_bill(patient.id, ITEMS[1:])
        engine.record_payment(partial.id, '10', 'Cash')

        outstanding = {b.id for b in engine.get_outstanding(patient.id)}

        assert outstanding == {open_bill.id, partial.id}

    def test_list_bills_by_status(self, engine, patient, bill):
        paid = engine.create_bill(patient.id, ITEMS[:1])
        engine.record_payment(paid.id, '200', 'Cash')

        result = engine.list_bills(status='Paid')

        assert result['total'] == 1
        assert result['bills'][0].id == paid.id

    def test_payment_history_for_patient(self, engine, patient, bill):
        engine.record_payment(bill.id, '10', 'Cash')

        result = engine.payment_history(patient_id=patient.id)

        assert result['total'] == 1

    def test_billing_stats(self, engine, patient, bill):
        paid = engine.create_bill(patient.id, ITEMS[:1])
        engine.record_payment(paid.id, '200', 'Cash')

        stats = engine.billing_stats(days=30)

        assert stats['overview']['total_bills'] == 2
        assert stats['overview']['total_revenue'] == '200.00'
        assert stats['overview']['pending_amount'] == '253.00'
        assert stats['today']['today_bills'] == 1
        assert stats['monthly_trends'][0]['revenue'] == '200.00'
