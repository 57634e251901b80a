"""
Environment configuration for the Pulse MCP servers.

Each server reads only its own variables into a dataclass. Required values are
validated at startup with ``require_environment`` so that a misconfigured
server fails fast with a readable message instead of on the first tool call.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .errors import ConfigurationError


TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse a boolean environment value, falling back to default when unset or unrecognised"""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    return default


def parse_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated value into trimmed, non-empty entries"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_int(value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name)
    if value is None or value == "":
        return None
    return value


@dataclass
class MonitoringConfig:
    """Logging configuration shared by all servers"""
    log_level: str = "INFO"
    log_format: str = "simple"

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "MonitoringConfig":
        return cls(
            log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
            log_format=(environ.get("LOG_FORMAT") or "simple").lower(),
        )


@dataclass
class HealthCheckConfig:
    """Startup connectivity checks"""
    skip: bool = False
    timeout: Optional[str] = None

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "HealthCheckConfig":
        return cls(
            skip=parse_bool(environ.get("SKIP_HEALTH_CHECKS"), False),
            timeout=environ.get("HEALTH_CHECK_TIMEOUT"),
        )


@dataclass
class DynamoDBConfig:
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None

    # Tool selection
    enabled_tool_groups: Optional[str] = None
    enabled_tools: Optional[str] = None
    disabled_tools: Optional[str] = None
    allowed_tables: List[str] = field(default_factory=list)

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "DynamoDBConfig":
        return cls(
            region=_get(environ, "AWS_REGION") or _get(environ, "AWS_DEFAULT_REGION"),
            endpoint_url=_get(environ, "DYNAMODB_ENDPOINT"),
            access_key_id=_get(environ, "AWS_ACCESS_KEY_ID"),
            secret_access_key=_get(environ, "AWS_SECRET_ACCESS_KEY"),
            session_token=_get(environ, "AWS_SESSION_TOKEN"),
            enabled_tool_groups=environ.get("DYNAMODB_ENABLED_TOOL_GROUPS"),
            enabled_tools=environ.get("DYNAMODB_ENABLED_TOOLS"),
            disabled_tools=environ.get("DYNAMODB_DISABLED_TOOLS"),
            allowed_tables=parse_csv(environ.get("DYNAMODB_ALLOWED_TABLES")),
        )

    def missing_variables(self) -> List[str]:
        return [] if self.region else ["AWS_REGION"]


@dataclass
class GmailConfig:
    service_account_key_file: Optional[str] = None
    impersonate_email: Optional[str] = None
    access_token: Optional[str] = None
    oauth_client_id: Optional[str] = None
    oauth_client_secret: Optional[str] = None
    oauth_refresh_token: Optional[str] = None
    enabled_toolgroups: Optional[str] = None

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "GmailConfig":
        return cls(
            service_account_key_file=_get(environ, "GMAIL_SERVICE_ACCOUNT_KEY_FILE"),
            impersonate_email=_get(environ, "GMAIL_IMPERSONATE_EMAIL"),
            access_token=_get(environ, "GMAIL_ACCESS_TOKEN"),
            oauth_client_id=_get(environ, "GMAIL_OAUTH_CLIENT_ID"),
            oauth_client_secret=_get(environ, "GMAIL_OAUTH_CLIENT_SECRET"),
            oauth_refresh_token=_get(environ, "GMAIL_OAUTH_REFRESH_TOKEN"),
            enabled_toolgroups=environ.get("GMAIL_ENABLED_TOOLGROUPS"),
        )

    @property
    def auth_mode(self) -> Optional[str]:
        if self.service_account_key_file and self.impersonate_email:
            return "service_account"
        if self.access_token:
            return "access_token"
        if self.oauth_client_id and self.oauth_client_secret and self.oauth_refresh_token:
            return "oauth"
        return None

    def missing_variables(self) -> List[str]:
        if self.auth_mode:
            return []
        if self.oauth_client_id or self.oauth_client_secret or self.oauth_refresh_token:
            return [
                name for name, value in (
                    ("GMAIL_OAUTH_CLIENT_ID", self.oauth_client_id),
                    ("GMAIL_OAUTH_CLIENT_SECRET", self.oauth_client_secret),
                    ("GMAIL_OAUTH_REFRESH_TOKEN", self.oauth_refresh_token),
                ) if not value
            ]
        return [
            name for name, value in (
                ("GMAIL_SERVICE_ACCOUNT_KEY_FILE", self.service_account_key_file),
                ("GMAIL_IMPERSONATE_EMAIL", self.impersonate_email),
            ) if not value
        ]


@dataclass
class CalendarConfig:
    client_email: Optional[str] = None
    private_key: Optional[str] = None
    impersonate_email: Optional[str] = None
    enabled_toolgroups: Optional[str] = None

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "CalendarConfig":
        private_key = _get(environ, "GCAL_SERVICE_ACCOUNT_PRIVATE_KEY")
        if private_key:
            # Keys pasted into env files usually carry escaped newlines
            private_key = private_key.replace("\\n", "\n")
        return cls(
            client_email=_get(environ, "GCAL_SERVICE_ACCOUNT_CLIENT_EMAIL"),
            private_key=private_key,
            impersonate_email=_get(environ, "GCAL_IMPERSONATE_EMAIL"),
            enabled_toolgroups=environ.get("GCAL_ENABLED_TOOLGROUPS"),
        )

    def missing_variables(self) -> List[str]:
        return [
            name for name, value in (
                ("GCAL_SERVICE_ACCOUNT_CLIENT_EMAIL", self.client_email),
                ("GCAL_SERVICE_ACCOUNT_PRIVATE_KEY", self.private_key),
                ("GCAL_IMPERSONATE_EMAIL", self.impersonate_email),
            ) if not value
        ]


@dataclass
class AppsignalConfig:
    api_key: Optional[str] = None
    app_id: Optional[str] = None
    api_url: str = "https://appsignal.com/graphql"
    request_timeout: int = 30

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "AppsignalConfig":
        return cls(
            api_key=_get(environ, "APPSIGNAL_API_KEY"),
            app_id=_get(environ, "APPSIGNAL_APP_ID"),
            api_url=_get(environ, "APPSIGNAL_API_URL") or "https://appsignal.com/graphql",
        )

    def missing_variables(self) -> List[str]:
        return [] if self.api_key else ["APPSIGNAL_API_KEY"]


@dataclass
class GoodEggsConfig:
    username: Optional[str] = None
    password: Optional[str] = None
    headless: bool = True
    timeout: int = 30000

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "GoodEggsConfig":
        return cls(
            username=_get(environ, "GOOD_EGGS_USERNAME"),
            password=_get(environ, "GOOD_EGGS_PASSWORD"),
            headless=environ.get("HEADLESS", "").lower() != "false",
            timeout=parse_int(environ.get("TIMEOUT"), 30000),
        )

    def missing_variables(self) -> List[str]:
        return [
            name for name, value in (
                ("GOOD_EGGS_USERNAME", self.username),
                ("GOOD_EGGS_PASSWORD", self.password),
            ) if not value
        ]


@dataclass
class PulseMCPAdminConfig:
    api_key: Optional[str] = None
    api_url: str = "https://admin.pulsemcp.com"
    tool_groups: Optional[str] = None
    health: HealthCheckConfig = field(default_factory=HealthCheckConfig)

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "PulseMCPAdminConfig":
        return cls(
            api_key=_get(environ, "PULSEMCP_ADMIN_API_KEY"),
            api_url=(_get(environ, "PULSEMCP_ADMIN_API_URL") or "https://admin.pulsemcp.com").rstrip("/"),
            tool_groups=environ.get("TOOL_GROUPS"),
            health=HealthCheckConfig.from_environment(environ),
        )

    def missing_variables(self) -> List[str]:
        return [] if self.api_key else ["PULSEMCP_ADMIN_API_KEY"]


@dataclass
class SSHConfig:
    host: Optional[str] = None
    username: Optional[str] = None
    port: int = 22
    private_key_path: Optional[str] = None
    passphrase: Optional[str] = None
    agent_socket: Optional[str] = None
    timeout: int = 30000
    enabled_toolgroups: Optional[str] = None
    health: HealthCheckConfig = field(default_factory=HealthCheckConfig)

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "SSHConfig":
        key_path = _get(environ, "SSH_PRIVATE_KEY_PATH")
        if key_path:
            key_path = os.path.expanduser(key_path)
        return cls(
            host=_get(environ, "SSH_HOST"),
            username=_get(environ, "SSH_USERNAME"),
            port=parse_int(environ.get("SSH_PORT"), 22),
            private_key_path=key_path,
            passphrase=_get(environ, "SSH_PASSPHRASE"),
            agent_socket=_get(environ, "SSH_AUTH_SOCK"),
            timeout=parse_int(environ.get("SSH_TIMEOUT"), 30000),
            enabled_toolgroups=environ.get("ENABLED_TOOLGROUPS"),
            health=HealthCheckConfig.from_environment(environ),
        )

    def missing_variables(self) -> List[str]:
        return [
            name for name, value in (
                ("SSH_HOST", self.host),
                ("SSH_USERNAME", self.username),
            ) if not value
        ]


@dataclass
class CloudStorageConfig:
    bucket: Optional[str] = None
    root_directory: Optional[str] = None
    project_id: Optional[str] = None
    key_file: Optional[str] = None
    client_email: Optional[str] = None
    private_key: Optional[str] = None
    enabled_toolgroups: Optional[str] = None

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "CloudStorageConfig":
        private_key = _get(environ, "GCS_PRIVATE_KEY")
        if private_key:
            private_key = private_key.replace("\\n", "\n")
        return cls(
            bucket=_get(environ, "GCS_BUCKET"),
            root_directory=_get(environ, "GCS_ROOT_DIRECTORY"),
            project_id=_get(environ, "GCS_PROJECT_ID"),
            key_file=_get(environ, "GCS_KEY_FILE"),
            client_email=_get(environ, "GCS_CLIENT_EMAIL"),
            private_key=private_key,
            enabled_toolgroups=environ.get("ENABLED_TOOLGROUPS"),
        )

    def missing_variables(self) -> List[str]:
        return [] if self.bucket else ["GCS_BUCKET"]


@dataclass
class ProctorConfig:
    api_key: Optional[str] = None
    api_url: Optional[str] = None
    tool_groups: Optional[str] = None

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] = os.environ) -> "ProctorConfig":
        api_url = _get(environ, "PROCTOR_API_URL")
        return cls(
            api_key=_get(environ, "PROCTOR_API_KEY"),
            api_url=api_url.rstrip("/") if api_url else None,
            tool_groups=environ.get("TOOL_GROUPS"),
        )

    def missing_variables(self) -> List[str]:
        return [
            name for name, value in (
                ("PROCTOR_API_KEY", self.api_key),
                ("PROCTOR_API_URL", self.api_url),
            ) if not value
        ]


def require_environment(server_config, server_name: str) -> None:
    """Raise ConfigurationError naming every missing variable"""
    missing = server_config.missing_variables()
    if missing:
        raise ConfigurationError(
            f"{server_name}: missing required environment variables: {', '.join(missing)}"
        )
