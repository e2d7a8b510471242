"""
Patient notifications for appointment and billing events.

Messages are built from committed records and handed to Celery when
NOTIFICATIONS_ASYNC is set, or delivered inline otherwise. Delivery failures
are logged and never reach the caller.
"""
import logging
from typing import List, NamedTuple

from flask import current_app

from clinic_app.models.billing import PAYMENT_PAID
from clinic_app.services.email_service import send_email, send_sms

logger = logging.getLogger(__name__)

EMAIL = 'email'
SMS = 'sms'


class Notification(NamedTuple):
    channel: str
    recipient: str
    subject: str
    body: str


def _for_patient(patient, subject, email_body, sms_body=None) -> List[Notification]:
    messages = []
    if patient is None:
        return messages
    if patient.email:
        messages.append(Notification(EMAIL, patient.email, subject, email_body))
    if patient.phone and sms_body:
        messages.append(Notification(SMS, patient.phone, subject, sms_body))
    return messages


def appointment_booked(appointment) -> List[Notification]:
    patient, doctor = appointment.patient, appointment.doctor
    body = (
        f"Dear {patient.full_name},\n\n"
        f"Your appointment has been scheduled:\n\n"
        f"Appointment Number: {appointment.appointment_number}\n"
        f"Doctor: Dr. {doctor.full_name}\n"
        f"Specialization: {doctor.specialization or 'General'}\n"
        f"Date: {appointment.appointment_date.isoformat()}\n"
        f"Time: {appointment.appointment_time}\n\n"
        f"Thank you for choosing our clinic."
    )
    sms = (
        f"Appointment confirmed for {appointment.appointment_date.isoformat()} at "
        f"{appointment.appointment_time} with Dr. {doctor.full_name}. "
        f"Ref: {appointment.appointment_number}"
    )
    return _for_patient(patient, 'Appointment Confirmation', body, sms)


def appointment_rescheduled(appointment) -> List[Notification]:
    message = (
        f"Your appointment has been rescheduled to {appointment.appointment_date.isoformat()} "
        f"at {appointment.appointment_time}. Ref: {appointment.appointment_number}"
    )
    body = f"Dear {appointment.patient.full_name},\n\n{message}\n\nThank you."
    return _for_patient(appointment.patient, 'Appointment Update', body, message)


def appointment_cancelled(appointment) -> List[Notification]:
    message = f"Your appointment ({appointment.appointment_number}) has been cancelled."
    if appointment.cancellation_reason:
        message += f" Reason: {appointment.cancellation_reason}"
    body = f"Dear {appointment.patient.full_name},\n\n{message}\n\nWe apologize for any inconvenience."
    return _for_patient(appointment.patient, 'Appointment Cancelled', body, message)


def invoice_generated(bill) -> List[Notification]:
    body = (
        f"Dear {bill.patient.full_name},\n\n"
        f"Your invoice {bill.bill_number} has been generated.\n\n"
        f"Amount Due: ${bill.total_amount}\n\n"
        f"Please visit our billing counter for payment.\n\nThank you."
    )
    return _for_patient(bill.patient, 'Invoice Generated', body)


def payment_received(bill, amount, result) -> List[Notification]:
    body = f"Dear {bill.patient.full_name},\n\nPayment of ${amount} has been received for invoice {bill.bill_number}.\n\n"
    if result.payment_status == PAYMENT_PAID:
        body += "Your bill has been paid in full.\n\n"
    else:
        body += f"Remaining balance: ${result.remaining_amount}\n\n"
    body += "Thank you for your payment."
    return _for_patient(bill.patient, 'Payment Confirmation', body)


def deliver(channel, recipient, subject, body):
    if channel == EMAIL:
        return send_email(recipient, subject, body)
    if channel == SMS:
        return send_sms(recipient, body)
    logger.warning("Unknown notification channel %r", channel)
    return False


def dispatch(messages: List[Notification]) -> None:
    """Queue or send each message. Must be called after the triggering write commits."""
    if not messages:
        return
    use_queue = current_app.config.get('NOTIFICATIONS_ASYNC', False)
    for message in messages:
        try:
            if use_queue:
                from tasks.notification_tasks import send_notification
                send_notification.delay(*message)
            else:
                deliver(*message)
        except Exception as e:
            logger.error("Notification '%s' to %s failed: %s", message.subject, message.recipient, e)


def notify(builder, *args) -> None:
    """Build messages with builder(*args) and dispatch them. Failures are logged."""
    try:
        messages = builder(*args)
    except Exception as e:
        logger.error("Could not build %s notification: %s", builder.__name__, e)
        return
    dispatch(messages)
