"""Third-party integrations for Help Center knowledge bases."""

from helpcenter.integrations.email import (
    EmailMessage,
    EmailProvider,
    EmailResult,
    EmailService,
    LogEmailProvider,
    SMTPEmailProvider,
    build_email_service,
)
from helpcenter.integrations.servicenow import (
    ServiceNowCredentials,
    ServiceNowError,
    ServiceNowService,
    get_servicenow_credentials,
)

__all__ = [
    "EmailMessage",
    "EmailProvider",
    "EmailResult",
    "EmailService",
    "LogEmailProvider",
    "SMTPEmailProvider",
    "build_email_service",
    "ServiceNowCredentials",
    "ServiceNowError",
    "ServiceNowService",
    "get_servicenow_credentials",
]
