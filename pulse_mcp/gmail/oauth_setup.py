#!/usr/bin/env python3
"""
Obtain a Gmail OAuth2 refresh token.

Runs the installed-app consent flow with a local callback server and prints
the environment variables to configure the Gmail MCP server with:

    gmail-oauth-setup <client_id> <client_secret>

The client id and secret may also come from GMAIL_OAUTH_CLIENT_ID and
GMAIL_OAUTH_CLIENT_SECRET. The callback port is PORT, default 3000.
"""

import argparse
import json
import os
import sys

from google_auth_oauthlib.flow import InstalledAppFlow

from ..core.config import parse_int
from ..utils.logger import get_logger
from .auth import SCOPES, TOKEN_URI

logger = get_logger("gmail-oauth-setup")

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
CALLBACK_TIMEOUT_SECONDS = 5 * 60
DEFAULT_PORT = 3000


def client_config(client_id: str, client_secret: str, port: int) -> dict:
    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "redirect_uris": [f"http://localhost:{port}/"],
        }
    }


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Obtain a Gmail OAuth2 refresh token")
    parser.add_argument("client_id", nargs="?", default=os.environ.get("GMAIL_OAUTH_CLIENT_ID"),
                        help="OAuth2 client ID (default: GMAIL_OAUTH_CLIENT_ID)")
    parser.add_argument("client_secret", nargs="?", default=os.environ.get("GMAIL_OAUTH_CLIENT_SECRET"),
                        help="OAuth2 client secret (default: GMAIL_OAUTH_CLIENT_SECRET)")
    parser.add_argument("--port", type=int, default=parse_int(os.environ.get("PORT"), DEFAULT_PORT),
                        help="Local callback port (default: PORT or 3000)")
    args = parser.parse_args(argv)
    if not args.client_id or not args.client_secret:
        parser.error(
            "client_id and client_secret are required, either as arguments or through "
            "GMAIL_OAUTH_CLIENT_ID and GMAIL_OAUTH_CLIENT_SECRET. "
            "Create OAuth2 credentials at https://console.cloud.google.com/apis/credentials"
        )
    return args


def environment_lines(client_id: str, client_secret: str, refresh_token: str) -> list:
    return [
        f"GMAIL_OAUTH_CLIENT_ID={client_id}",
        f"GMAIL_OAUTH_CLIENT_SECRET={client_secret}",
        f"GMAIL_OAUTH_REFRESH_TOKEN={refresh_token}",
    ]


def main(argv=None) -> int:
    args = parse_args(argv)
    flow = InstalledAppFlow.from_client_config(client_config(args.client_id, args.client_secret, args.port), SCOPES)

    print("\n=== Gmail OAuth2 Setup ===\n")
    print(f"Waiting for the OAuth callback on localhost:{args.port} (5 minute timeout)...\n")
    try:
        credentials = flow.run_local_server(
            port=args.port,
            access_type="offline",
            prompt="consent",
            timeout_seconds=CALLBACK_TIMEOUT_SECONDS,
            authorization_prompt_message="Open this URL in your browser to authorize access:\n\n  {url}\n",
            success_message="Authorization successful! You can close this window and return to the terminal.",
        )
    except Exception as e:
        logger.error(f"OAuth flow failed: {e}")
        return 1

    if not credentials.refresh_token:
        print("ERROR: No refresh token received.\n", file=sys.stderr)
        print("This can happen if you previously authorized this app (revoke access at "
              "https://myaccount.google.com/permissions) or the consent screen is in Testing mode.",
              file=sys.stderr)
        return 1

    lines = environment_lines(args.client_id, args.client_secret, credentials.refresh_token)
    print("=== Setup Complete ===\n")
    print("Add these environment variables to your MCP server configuration:\n")
    for line in lines:
        print(f"  {line}")
    print("\nSECURITY NOTE: Keep your refresh token secure. Anyone with it and your client "
          "credentials can access your Gmail account.\n")
    print("Example MCP client config:\n")
    print(json.dumps({
        "mcpServers": {
            "gmail": {
                "command": "gmail-mcp",
                "env": dict(line.split("=", 1) for line in lines),
            }
        }
    }, indent=2))
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
