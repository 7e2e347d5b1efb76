"""
Notification provider factory service
Builds the notifiers email provider configuration from EmailSettings
"""
from dataclasses import dataclass, field
from typing import Any, Dict

from models.settings import EmailSettings


@dataclass
class NotificationProvider:
    """Notification provider configuration"""
    provider_name: str
    enabled: bool = False
    config: Dict[str, Any] = field(default_factory=dict)

    def is_valid(self) -> bool:
        """Check if provider configuration is valid"""
        return self.enabled and bool(self.config)


class NotificationProviderFactory:
    """Factory for creating notification providers from settings"""

    @staticmethod
    def create_email_provider(email_settings: EmailSettings) -> NotificationProvider:
        """Create Email provider from settings"""
        # notifiers-compatible config; subject and message are added per send
        provider_config = {
            "to": list(email_settings.to_email),
            "from": email_settings.from_email,
            "host": email_settings.smtp_server,
            "port": email_settings.smtp_port,
            "tls": email_settings.use_tls,
            "ssl": email_settings.use_ssl,
            "html": True,
            "login": bool(email_settings.username),
        }
        if email_settings.username:
            provider_config["username"] = email_settings.username
            provider_config["password"] = email_settings.password

        return NotificationProvider(
            provider_name="email",
            enabled=email_settings.enabled,
            config=provider_config
        )
