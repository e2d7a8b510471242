from clinic_app.services import notifications
from clinic_app.services.billing import BillingEngine
from clinic_app.services.scheduling import SchedulingEngine
from tasks import notification_tasks


def _book(session, patient, doctor, day):
    return SchedulingEngine(session).book_appointment({
        'patient_id': patient.id,
        'doctor_id': doctor.id,
        'appointment_date': day.isoformat(),
        'appointment_time': '10:00',
    })


def test_booking_message_goes_to_email_and_phone(session, patient, doctor, monday):
    messages = notifications.appointment_booked(_book(session, patient, doctor, monday))

    assert [(m.channel, m.recipient) for m in messages] == [('email', patient.email), ('sms', patient.phone)]
    assert 'APT0001' in messages[0].body
    assert 'Dr. Drhouse Tester' in messages[0].body


def test_payment_message_shows_remaining_balance(session, patient):
    engine = BillingEngine(session)
    bill = engine.create_bill(patient.id, [{'service_type': 'Consultation', 'unit_price': '80', 'quantity': 1}])
    result = engine.record_payment(bill.id, '30', 'Cash')

    (message,) = notifications.payment_received(bill, '30', result)

    assert 'Remaining balance: $50.00' in message.body


def test_dispatch_inline(app, monkeypatch):
    sent = []
    monkeypatch.setattr(notifications, 'send_email', lambda *args: sent.append(args) or True)

    notifications.dispatch([notifications.Notification('email', 'a@b.c', 'Hi', 'Body')])

    assert sent == [('a@b.c', 'Hi', 'Body')]


def test_dispatch_queues_on_celery(app, monkeypatch):
    queued = []
    app.config['NOTIFICATIONS_ASYNC'] = True
    monkeypatch.setattr(notification_tasks.send_notification, 'delay', lambda *args: queued.append(args))

    notifications.dispatch([notifications.Notification('sms', '555-0100', 'Hi', 'Body')])

    assert queued == [('sms', '555-0100', 'Hi', 'Body')]


def test_delivery_failure_is_logged_not_raised(app, monkeypatch, caplog):
    def boom(*args):
        raise RuntimeError('smtp down')
    monkeypatch.setattr(notifications, 'send_email', boom)

    notifications.dispatch([notifications.Notification('email', 'a@b.c', 'Hi', 'Body')])

    assert 'smtp down' in caplog.text


def test_notify_logs_a_failing_builder(app, caplog):
    def broken_builder(appointment):
        return appointment.patient.full_name

    notifications.notify(broken_builder, None)

    assert 'Could not build broken_builder notification' in caplog.text
