"""Email notifications for the sales team (manager escalation alerts)."""

import os
import smtplib
import ssl
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional

from core.utils.logging_config import get_logger

logger = get_logger('autocrm.notification')


def get_smtp_config() -> dict:
    """Get SMTP configuration from the environment."""
    return {
        'host': os.environ.get('SMTP_HOST', ''),
        'port': int(os.environ.get('SMTP_PORT', '587') or 587),
        'use_tls': os.environ.get('SMTP_TLS', 'true').lower() == 'true',
        'username': os.environ.get('SMTP_USERNAME', ''),
        'password': os.environ.get('SMTP_PASSWORD', ''),
        'from_email': os.environ.get('SMTP_FROM_EMAIL', ''),
        'from_name': os.environ.get('SMTP_FROM_NAME', 'AutoCRM'),
    }


def is_smtp_configured() -> bool:
    config = get_smtp_config()
    return bool(config['host'] and config['from_email'])


def send_email(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
) -> tuple[bool, str]:
    """
    Send an email using configured SMTP settings.

    Returns:
        tuple: (success: bool, error_message: str)
    """
    config = get_smtp_config()

    if not config['host']:
        return False, "SMTP host not configured"

    if not config['from_email']:
        return False, "From email not configured"

    try:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{config['from_name']} <{config['from_email']}>" if config['from_name'] else config['from_email']
        msg['To'] = to_email

        if text_body:
            msg.attach(MIMEText(text_body, 'plain', 'utf-8'))
        msg.attach(MIMEText(html_body, 'html', 'utf-8'))

        with smtplib.SMTP(config['host'], config['port']) as server:
            if config['use_tls']:
                server.starttls(context=ssl.create_default_context())
            if config['username'] and config['password']:
                server.login(config['username'], config['password'])
            server.sendmail(config['from_email'], [to_email], msg.as_string())

        logger.info(f"Email sent to {to_email}")
        return True, ""

    except smtplib.SMTPAuthenticationError as e:
        error_msg = f"SMTP authentication failed: {str(e)}"
        logger.error(error_msg)
        return False, error_msg
    except smtplib.SMTPException as e:
        error_msg = f"SMTP error: {str(e)}"
        logger.error(error_msg)
        return False, error_msg
    except Exception as e:
        error_msg = f"Failed to send email: {str(e)}"
        logger.error(error_msg)
        return False, error_msg


def _list_html(items) -> str:
    return ''.join(f"<li>{escape(str(item))}</li>" for item in items)


def create_escalation_email(lead_name: str, lead_phone: str, lead_email: Optional[str],
                            summary: dict, dealership: str = 'AutoCRM') -> tuple[str, str, str]:
    """Build (subject, html, text) for a lead handed over to a manager."""
    escalated_at = datetime.now().astimezone().strftime('%d/%m/%Y %H:%M')
    reason = summary.get('escalation_reason', 'Lead escalated to manager')
    interactions = summary.get('key_interactions', [])
    next_steps = summary.get('next_steps', [])
    cars = [getattr(car, 'display_name', str(car)) for car in summary.get('cars_shown', [])]

    subject = f"Lead Escalated to Manager - {lead_name}"

    email_row = ""
    if lead_email:
        email_row = f"""
            <tr><td style="padding: 8px; font-weight: bold;">Email</td>
                <td style="padding: 8px;">{escape(lead_email)}</td></tr>"""

    html_body = f"""
    <html>
    <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #333;">Lead Escalation Alert</h2>
        <p><strong>{escape(reason)}</strong></p>
        <table style="border-collapse: collapse; width: 100%;">
            <tr><td style="padding: 8px; font-weight: bold;">Name</td>
                <td style="padding: 8px;">{escape(lead_name)}</td></tr>
            <tr><td style="padding: 8px; font-weight: bold;">Phone</td>
                <td style="padding: 8px;"><a href="tel:{escape(lead_phone)}">{escape(lead_phone)}</a></td></tr>{email_row}
            <tr><td style="padding: 8px; font-weight: bold;">Source</td>
                <td style="padding: 8px;">WhatsApp Bot Escalation</td></tr>
            <tr><td style="padding: 8px; font-weight: bold;">Escalated</td>
                <td style="padding: 8px;">{escalated_at}</td></tr>
        </table>
        <h3>Vehicles shown</h3>
        <ul>{_list_html(cars) or '<li>None</li>'}</ul>
        <h3>Key interactions</h3>
        <ul>{_list_html(interactions) or '<li>None recorded</li>'}</ul>
        <h3>Next steps</h3>
        <ol>{_list_html(next_steps)}</ol>
        <hr style="border: none; border-top: 1px solid #ddd; margin: 20px 0;">
        <p style="color: #666; font-size: 12px;">Automated message from the {escape(dealership)} CRM.</p>
    </body>
    </html>
    """

    text_lines = [
        f"Lead escalated to manager: {lead_name}",
        f"Reason: {reason}",
        f"Phone: {lead_phone}",
    ]
    if lead_email:
        text_lines.append(f"Email: {lead_email}")
    if cars:
        text_lines.append(f"Vehicles shown: {', '.join(cars)}")
    text_lines.extend(f"- {item}" for item in interactions)
    text_lines.append("Next steps:")
    text_lines.extend(f"- {step}" for step in next_steps)

    return subject, html_body, '\n'.join(text_lines)


def send_manager_escalation_email(to_email: str, lead_name: str, lead_phone: str,
                                  lead_email: Optional[str], summary: dict,
                                  dealership: str = 'AutoCRM') -> tuple[bool, str]:
    """Notify the manager. Never raises; failures come back as (False, error)."""
    if not to_email:
        return False, "Manager email not configured"
    try:
        subject, html_body, text_body = create_escalation_email(
            lead_name, lead_phone, lead_email, summary, dealership,
        )
    except Exception as e:
        logger.error(f"Failed to build escalation email for {lead_name}: {e}")
        return False, str(e)
    return send_email(to_email, subject, html_body, text_body)
