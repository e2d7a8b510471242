import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from clinic_app.errors import InvalidInput, TransactionFailure
from clinic_app.models import Bill, BillItem, Patient
from clinic_app.services.billing import BillingEngine
from clinic_app.services.persistence import transaction

ITEMS = [
    {'service_type': 'Consultation', 'unit_price': '100', 'quantity': 2},
    {'service_type': 'Lab Test', 'unit_price': '50', 'quantity': 1},
]


def _database_down(*args, **kwargs):
    raise OperationalError('INSERT INTO bills', {}, Exception('disk I/O error'))


class TestTransaction:

    def test_commits_on_success(self, session, patient):
        with transaction(session):
            patient.address = '1 Main St'

        session.expire_all()
        assert session.get(Patient, patient.id).address == '1 Main St'

    def test_store_error_becomes_transaction_failure(self, session, patient, monkeypatch):
        monkeypatch.setattr(session, 'flush', _database_down)

        with pytest.raises(TransactionFailure):
            with transaction(session):
                patient.address = 'Lost'
                session.flush()

        monkeypatch.undo()
        session.expire_all()
        assert session.get(Patient, patient.id).address is None

    def test_integrity_error_is_reraised_after_rollback(self, session, patient):
        with pytest.raises(IntegrityError):
            with transaction(session):
                session.add(Patient(patient_number='P0002', first_name='Twin', last_name='Doe',
                                    phone=patient.phone))
                session.flush()

        assert session.query(Patient).count() == 1

    def test_domain_error_rolls_back(self, session, patient):
        with pytest.raises(InvalidInput):
            with transaction(session):
                patient.address = 'Lost'
                raise InvalidInput('stop')

        session.expire_all()
        assert session.get(Patient, patient.id).address is None


class TestBillAtomicity:

    def test_failed_insert_leaves_no_header_or_items(self, session, patient, monkeypatch):
        monkeypatch.setattr(session, 'flush', _database_down)

        with pytest.raises(TransactionFailure):
            BillingEngine(session).create_bill(patient.id, ITEMS, discount=20, tax_percent=10)

        monkeypatch.undo()
        assert session.query(Bill).count() == 0
        assert session.query(BillItem).count() == 0

    def test_failed_item_change_keeps_previous_totals(self, session, patient, monkeypatch):
        engine = BillingEngine(session)
        bill = engine.create_bill(patient.id, ITEMS)
        monkeypatch.setattr(session, 'flush', _database_down)

        with pytest.raises(TransactionFailure):
            engine.add_item(bill.id, 'Medication', 'Antibiotics', '30', 1)

        monkeypatch.undo()
        bill = engine.get_bill(bill.id)
        assert len(bill.items) == 2
        assert str(bill.total_amount) == '250.00'
