"""
Notification sender service
Sends the HTML health report through the notifiers email provider with a send timeout
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from notifiers import get_notifier

from models.settings import EmailSettings
from services.notification_provider_factory import NotificationProvider, NotificationProviderFactory

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    """Result of notification attempt"""
    provider: str
    success: bool
    error_message: Optional[str] = None
    skipped: bool = False


class ReportMailer:
    """Sends the rendered report by email; one attempt, no retry"""

    def __init__(self, email_settings: EmailSettings, provider: Optional[NotificationProvider] = None):
        self.email_settings = email_settings
        self.provider = provider or NotificationProviderFactory.create_email_provider(email_settings)

    def send(self, subject: str, html_body: str) -> NotificationResult:
        """Send the report; failures and timeouts become an unsuccessful result"""
        if not self.provider.is_valid():
            logger.info("Email delivery disabled - report not sent")
            return NotificationResult(self.provider.provider_name, False, "Email delivery disabled", skipped=True)

        email_config = self.provider.config.copy()
        email_config.update({"subject": subject, "message": html_body})

        outcome = {}

        def deliver():
            try:
                outcome['result'] = self._notify(email_config)
            except Exception as e:
                outcome['result'] = (False, f"Failed to send email notification: {str(e)}")

        # daemon thread: a hung SMTP call neither blocks the run nor holds the process open at exit
        sender = threading.Thread(target=deliver, name="report-mailer", daemon=True)
        sender.start()
        sender.join(timeout=self.email_settings.send_timeout)

        if sender.is_alive():
            success, error = False, f"SMTP send timed out after {self.email_settings.send_timeout}s"
        else:
            success, error = outcome['result']

        if success:
            recipients = ", ".join(self.email_settings.to_email)
            logger.info(f"Report emailed to {recipients}")
        else:
            logger.error(f"Email delivery failed: {error}")
        return NotificationResult(self.provider.provider_name, success, error)

    def _notify(self, email_config: dict) -> tuple:
        """Call the notifiers provider and interpret its response"""
        notifier = get_notifier(self.provider.provider_name)
        result = notifier.notify(**email_config)

        if result is not None and not result.ok:
            errors = result.errors or ['Unknown error']
            return False, f"Notification failed: {', '.join(errors)}"
        return True, None
