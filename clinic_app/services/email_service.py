"""
Email and SMS delivery for patient notifications
"""
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app

logger = logging.getLogger(__name__)


def send_email(to_email, subject, body_text, body_html=None):
    """
    Send an email through the configured SMTP server

    Args:
        to_email: Recipient email
        subject: Email subject
        body_text: Plain text body
        body_html: HTML body (optional, defaults to the text body with line breaks)

    Returns:
        bool: True if sent successfully
    """
    try:
        mail_server = current_app.config.get('MAIL_SERVER')
        mail_port = current_app.config.get('MAIL_PORT')
        mail_use_tls = current_app.config.get('MAIL_USE_TLS')
        mail_username = current_app.config.get('MAIL_USERNAME')
        mail_password = current_app.config.get('MAIL_PASSWORD')
        mail_sender = current_app.config.get('MAIL_DEFAULT_SENDER')
        clinic_name = current_app.config.get('CLINIC_NAME')

        if not mail_username or not mail_password:
            logger.warning("Email not configured. Skipping '%s' to %s", subject, to_email)
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f'"{clinic_name}" <{mail_sender}>' if clinic_name else mail_sender
        msg['To'] = to_email

        msg.attach(MIMEText(body_text, 'plain'))
        msg.attach(MIMEText(body_html or body_text.replace('\n', '<br>'), 'html'))

        with smtplib.SMTP(mail_server, mail_port) as server:
            if mail_use_tls:
                server.starttls()
            server.login(mail_username, mail_password)
            server.sendmail(mail_sender, to_email, msg.as_string())

        logger.info(f"Email sent to {to_email}")
        return True

    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def send_sms(phone, message):
    """No SMS gateway is configured; the message is logged and skipped."""
    logger.info(f"Skipping SMS send to {phone}: \"{message}\"")
    return False
