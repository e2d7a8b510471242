"""
Celery tasks for patient notifications
"""
import logging
from clinic_app.extensions import celery
from clinic_app.services.notifications import deliver

logger = logging.getLogger(__name__)


@celery.task(name='tasks.send_notification')
def send_notification(channel, recipient, subject, body):
    """
    Deliver one notification from the worker

    Args:
        channel: 'email' or 'sms'
        recipient: Email address or phone number
        subject: Message subject
        body: Message body

    Returns:
        dict: Delivery result
    """
    sent = deliver(channel, recipient, subject, body)
    if not sent:
        logger.warning(f"Notification '{subject}' to {recipient} was not delivered")
    return {'success': sent, 'channel': channel, 'recipient': recipient}
