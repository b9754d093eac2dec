"""
Invoice Notifier - Announce newly generated invoices via email or Slack.

Delivery is best-effort: a failing channel is logged and reported as False,
never raised, so invoice creation is not affected.
"""

import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Any, List, Optional

import requests

from common.config import BillingConfig, EmailConfig, NotificationConfig, SlackConfig
from common.date_utils import format_month

from .fees import format_money

logger = logging.getLogger(__name__)


@dataclass
class InvoiceNotice:
    """What a notification says about one invoice."""
    invoice_id: str
    invoice_number: str
    org_id: str
    org_name: str
    bill_month: date
    amount_due_minor: int
    status: str
    currency: str = 'CAD'
    portal_url: str = ''
    recipients: List[str] = field(default_factory=list)

    @property
    def portal_link(self) -> str:
        return f"{self.portal_url.rstrip('/')}/portal/{self.org_id}"

    @property
    def subject(self) -> str:
        return f"New Invoice: {self.invoice_number}"

    def to_dict(self) -> Dict[str, Any]:
        """Values for message templates."""
        return {
            'invoice_number': self.invoice_number,
            'org_name': self.org_name,
            'bill_month': format_month(self.bill_month),
            'amount': format_money(self.amount_due_minor, self.currency),
            'status': self.status.upper(),
            'link': self.portal_link,
        }

    @classmethod
    def from_invoice(cls, invoice, organization, billing_config: BillingConfig) -> 'InvoiceNotice':
        return cls(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            org_id=invoice.org_id,
            org_name=organization.name if organization else invoice.org_id,
            bill_month=invoice.bill_month,
            amount_due_minor=invoice.amount_due_minor,
            status=invoice.status,
            currency=billing_config.currency,
            portal_url=billing_config.portal_url,
            recipients=[organization.billing_email] if organization and organization.billing_email else [],
        )


class NotificationChannel(ABC):
    """Base class for notification channels."""

    @abstractmethod
    def send(self, notice: InvoiceNotice, message: str) -> bool:
        """
        Send notification.

        Args:
            notice: Invoice being announced
            message: Formatted message

        Returns:
            True on success
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if channel is properly configured."""
        pass


class SlackNotificationChannel(NotificationChannel):
    """Slack webhook channel."""

    def __init__(self, config: SlackConfig):
        self.config = config
        self.webhook_url = config.webhook_url
        self.channel = config.channel
        self.username = config.username

    def is_configured(self) -> bool:
        return bool(self.config.enabled and self.webhook_url)

    def send(self, notice: InvoiceNotice, message: str) -> bool:
        if not self.is_configured():
            return False

        values = notice.to_dict()
        payload = {
            'username': self.username,
            'channel': self.channel,
            'attachments': [{
                'color': 'good',
                'title': notice.subject,
                'title_link': notice.portal_link,
                'text': message,
                'fields': [
                    {'title': 'Organization', 'value': values['org_name'], 'short': True},
                    {'title': 'Month', 'value': values['bill_month'], 'short': True},
                    {'title': 'Amount Due', 'value': values['amount'], 'short': True},
                    {'title': 'Status', 'value': values['status'], 'short': True},
                ],
                'footer': f"Invoice ID: {notice.invoice_id}",
            }]
        }

        try:
            response = requests.post(self.webhook_url, json=payload, timeout=30)
        except requests.RequestException as e:
            logger.warning(f"Slack notification error for {notice.invoice_number}: {e}")
            return False

        if response.status_code == 200:
            logger.info(f"Slack notification sent for {notice.invoice_number}")
            return True

        logger.warning(f"Slack notification failed: {response.status_code} - {response.text}")
        return False


class EmailNotificationChannel(NotificationChannel):
    """Email SMTP channel. Sends to the org billing email plus configured addresses."""

    def __init__(self, config: EmailConfig):
        self.config = config

    def is_configured(self) -> bool:
        return bool(self.config.enabled and self.config.smtp_host and self.config.from_address)

    def _recipients(self, notice: InvoiceNotice) -> List[str]:
        recipients = list(notice.recipients)
        for address in self.config.to_addresses:
            if address not in recipients:
                recipients.append(address)
        return recipients

    def send(self, notice: InvoiceNotice, message: str) -> bool:
        if not self.is_configured():
            return False

        recipients = self._recipients(notice)
        if not recipients:
            logger.warning(f"No email recipients for {notice.invoice_number}")
            return False

        msg = MIMEMultipart()
        msg['From'] = self.config.from_address
        msg['To'] = ', '.join(recipients)
        msg['Subject'] = notice.subject
        msg.attach(MIMEText(message, 'plain'))

        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=30) as server:
                if self.config.use_tls:
                    server.starttls()
                if self.config.smtp_user and self.config.smtp_password:
                    server.login(self.config.smtp_user, self.config.smtp_password)
                server.sendmail(self.config.from_address, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Email notification error for {notice.invoice_number}: {e}")
            return False

        logger.info(f"Email notification sent for {notice.invoice_number} to {len(recipients)} recipient(s)")
        return True


class InvoiceNotifier:
    """
    Sends "new invoice" notifications through every configured channel.
    """

    TEMPLATE = (
        "A new invoice is available for {org_name}.\n"
        "\n"
        "Invoice: {invoice_number}\n"
        "Billing month: {bill_month}\n"
        "Amount due: {amount}\n"
        "Status: {status}\n"
        "\n"
        "View it in the portal: {link}\n"
    )

    def __init__(self, config: NotificationConfig = None, channels: Optional[List[NotificationChannel]] = None):
        config = config or NotificationConfig()
        if channels is None:
            channels = [
                EmailNotificationChannel(config.email),
                SlackNotificationChannel(config.slack),
            ]
        self.channels = channels

    @property
    def enabled(self) -> bool:
        return any(channel.is_configured() for channel in self.channels)

    def format_message(self, notice: InvoiceNotice) -> str:
        return self.TEMPLATE.format(**notice.to_dict())

    def notify(self, notice: InvoiceNotice) -> bool:
        """
        Send the notice on all configured channels.

        Returns:
            bool: True if at least one channel delivered it
        """
        configured = [channel for channel in self.channels if channel.is_configured()]
        if not configured:
            logger.debug(f"No notification channels configured; skipping {notice.invoice_number}")
            return False

        message = self.format_message(notice)
        delivered = False
        for channel in configured:
            if channel.send(notice, message):
                delivered = True

        if not delivered:
            logger.warning(f"Notification for {notice.invoice_number} was not delivered on any channel")
        return delivered
