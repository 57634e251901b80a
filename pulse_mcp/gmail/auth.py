"""
Gmail credentials.

The first configured option wins:

1. a service account key file with domain-wide delegation, impersonating
   GMAIL_IMPERSONATE_EMAIL
2. a static access token from GMAIL_ACCESS_TOKEN
3. an OAuth2 refresh token with its client id and secret

google-auth refreshes service account and refresh-token credentials on
demand; a static access token is used until it expires.
"""

from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account

from ..core.config import GmailConfig
from ..core.errors import ConfigurationError

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.send",
]

TOKEN_URI = "https://oauth2.googleapis.com/token"

NOT_CONFIGURED = (
    "Gmail authentication not configured. Set either:\n"
    "  - GMAIL_SERVICE_ACCOUNT_KEY_FILE and GMAIL_IMPERSONATE_EMAIL for service account auth,\n"
    "  - GMAIL_ACCESS_TOKEN for OAuth2 access token auth, or\n"
    "  - GMAIL_OAUTH_CLIENT_ID, GMAIL_OAUTH_CLIENT_SECRET and GMAIL_OAUTH_REFRESH_TOKEN for OAuth2 refresh token auth"
)


def build_gmail_credentials(config: GmailConfig):
    mode = config.auth_mode
    if mode == "service_account":
        return service_account.Credentials.from_service_account_file(
            config.service_account_key_file,
            scopes=SCOPES,
            subject=config.impersonate_email,
        )
    if mode == "access_token":
        return user_credentials.Credentials(token=config.access_token)
    if mode == "oauth":
        return user_credentials.Credentials(
            token=None,
            refresh_token=config.oauth_refresh_token,
            client_id=config.oauth_client_id,
            client_secret=config.oauth_client_secret,
            token_uri=TOKEN_URI,
            scopes=SCOPES,
        )
    raise ConfigurationError(NOT_CONFIGURED)
