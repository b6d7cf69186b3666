"""Gmail integration for operator-connected inboxes.

OAuth consent and token refresh over httpx, plus async-wrapped Gmail API
calls for fetching, labelling and sending email.
"""

from src.app.services.gsuite.auth import GmailAuthError, GmailOAuthClient, GSuiteAuthManager
from src.app.services.gsuite.gmail import GmailService
from src.app.services.gsuite.models import EmailMessage, InboundEmail, SentEmailResult

__all__ = [
    "EmailMessage",
    "GmailAuthError",
    "GmailOAuthClient",
    "GmailService",
    "GSuiteAuthManager",
    "InboundEmail",
    "SentEmailResult",
]
