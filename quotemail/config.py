# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the quote mailer.

Configuration is loaded from a YAML file (``config/quotemail.yaml`` by
default) with support for ``!env`` tags that resolve values from environment
variables.  The file is optional: without one, every setting takes its
default and the Azure AD app registration is read from ``TENANT_ID``,
``CLIENT_ID`` and ``CLIENT_SECRET``.

Example::

    microsoft:
      tenant_id: !env TENANT_ID
      client_id: !env CLIENT_ID
      client_secret: !env CLIENT_SECRET
      redirect_uri: http://localhost:4001
      token_cache: state/token_cache.json
    mailbox:
      inbox_folder: Inbox
      replied_folder: Replied
    data:
      catalog: demo_data/catalog.csv
      customers: demo_data/customers.csv
      audit: reports/audit.csv
    matching:
      mode: exact
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, overload
from urllib.parse import urlsplit

import yaml

from quotemail.dotenv_loader import load_dotenv_once
from quotemail.logging import SecretFilter
from quotemail.matching import DEFAULT_FUZZY_THRESHOLD, MatchMode
from quotemail.reply import DEFAULT_SIGNATURE


logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path("config/quotemail.yaml")
CONFIG_PATH_ENV = "QUOTEMAIL_CONFIG"

DEFAULT_SCOPES = ("Mail.Read", "Mail.Send", "Mail.ReadWrite")
DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})


class ConfigError(Exception):
    """Base exception for configuration errors."""


# ---------------------------------------------------------------------------
# YAML ``!env`` tag
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is unset/empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


_MISSING = object()


@overload
def _resolve[T](value: object, coerce: type[T], *, default: T) -> T: ...


@overload
def _resolve[T](
    value: object,
    coerce: type[T],
    *,
    required: str,
) -> T: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
    required: str = "",
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``float``, ``bool``,
            ``Path``).
        default: Default when value is absent.
        required: Human-readable field name.  When set, raises
            ``ConfigError`` if the value is absent.

    Returns:
        The resolved, coerced value.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not isinstance(value, bool):
            return value

    resolved = _raw_resolve(value)

    if resolved is None:
        if required:
            if isinstance(value, _EnvVar):
                raise ConfigError(
                    f"Required config '{required}': environment variable "
                    f"'{value.var_name}' is not set"
                )
            raise ConfigError(f"Required config '{required}' is missing")
        return default

    if coerce is bool:
        return _coerce_bool(resolved)
    if coerce is Path:
        return Path(resolved).expanduser()
    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _resolve_string_list(
    value: object, *, name: str, default: tuple[str, ...]
) -> tuple[str, ...]:
    """Resolve a list of strings, handling ``!env`` for each element.

    Raises:
        ConfigError: If value is not a list or resolves to nothing.
    """
    if value is None:
        return default
    if not isinstance(value, list):
        raise ConfigError(
            f"Config '{name}' must be a list, got {type(value).__name__}"
        )
    result = tuple(r for r in (_raw_resolve(item) for item in value) if r)
    if not result:
        raise ConfigError(f"Config '{name}' is empty")
    return result


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a YAML mapping")
    return section


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthConfig:
    """Azure AD app registration and token cache settings.

    Attributes:
        tenant_id: Azure AD tenant ID.
        client_id: Application (client) ID.
        client_secret: Client secret value.
        redirect_uri: Redirect URI registered for the app; its host and
            port are where the local callback listener binds.
        scopes: Delegated Graph scopes requested.
        token_cache_path: Location of the persisted credential.
        auth_timeout_seconds: How long to wait for the browser redirect.
        open_browser: Launch the system browser on the authorization URL.
    """

    tenant_id: str
    client_id: str
    client_secret: str
    redirect_uri: str = "http://localhost:4001"
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    token_cache_path: Path = Path("state/token_cache.json")
    auth_timeout_seconds: int = 300
    open_browser: bool = True

    def __post_init__(self) -> None:
        """Validate configuration.

        Raises:
            ConfigError: If configuration is invalid.
        """
        parts = urlsplit(self.redirect_uri)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigError(f"Invalid redirect URI: {self.redirect_uri}")
        if parts.port is None:
            raise ConfigError(
                f"Redirect URI must include a port: {self.redirect_uri}"
            )
        if self.auth_timeout_seconds < 1:
            raise ConfigError(
                f"Auth timeout must be >= 1s: {self.auth_timeout_seconds}"
            )
        SecretFilter.register_secret(self.client_secret)

    @property
    def authority(self) -> str:
        """Azure AD authority URL for the tenant."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"

    @property
    def callback_host(self) -> str:
        """Host the redirect listener binds to."""
        return urlsplit(self.redirect_uri).hostname or "localhost"

    @property
    def callback_port(self) -> int:
        """Port the redirect listener binds to.

        Raises:
            ConfigError: If the redirect URI has no port.
        """
        port = urlsplit(self.redirect_uri).port
        if port is None:
            raise ConfigError(
                f"Redirect URI must include a port: {self.redirect_uri}"
            )
        return port


@dataclass(frozen=True)
class MailboxConfig:
    """Microsoft Graph mailbox settings.

    Attributes:
        graph_base_url: Graph API root.
        inbox_folder: Well-known name or ID of the folder to scan.
        replied_folder: Display name of the folder replied mail is moved to.
        http_timeout_seconds: Per-request timeout.
        max_retries: Attempts per request for transient failures.
        page_size: Messages requested per page.
    """

    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    inbox_folder: str = "Inbox"
    replied_folder: str = "Replied"
    http_timeout_seconds: float = 30.0
    max_retries: int = 3
    page_size: int = 50

    def __post_init__(self) -> None:
        """Validate configuration.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if self.http_timeout_seconds <= 0:
            raise ConfigError(
                f"HTTP timeout must be > 0: {self.http_timeout_seconds}"
            )
        if self.max_retries < 1:
            raise ConfigError(f"Max retries must be >= 1: {self.max_retries}")
        if not 1 <= self.page_size <= 1000:
            raise ConfigError(
                f"Page size must be between 1 and 1000: {self.page_size}"
            )
        if not self.replied_folder.strip():
            raise ConfigError("Replied folder name must not be empty")


@dataclass(frozen=True)
class AppConfig:
    """Complete configuration for one batch run.

    Attributes:
        auth: App registration and token settings.
        mailbox: Graph mailbox settings.
        catalog_path: CSV of quotable items (``id,name,price``).
        customers_path: CSV of known customers (``email``).
        audit_path: Where the per-run audit CSV is written.
        match_mode: Item matching strategy.
        fuzzy_threshold: Similarity needed in fuzzy mode, in ``(0, 1]``.
        reply_signature: Closing line of every quote reply.
    """

    auth: AuthConfig
    mailbox: MailboxConfig = field(default_factory=MailboxConfig)
    catalog_path: Path = Path("demo_data/catalog.csv")
    customers_path: Path = Path("demo_data/customers.csv")
    audit_path: Path = Path("reports/audit.csv")
    match_mode: MatchMode = MatchMode.EXACT
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    reply_signature: str = DEFAULT_SIGNATURE

    def __post_init__(self) -> None:
        """Validate configuration.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if not 0 < self.fuzzy_threshold <= 1:
            raise ConfigError(
                f"Fuzzy threshold must be in (0, 1]: {self.fuzzy_threshold}"
            )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "AppConfig":
        """Load configuration from a YAML file.

        A ``.env`` file is loaded first if present.  A missing file at the
        default location is not an error; a missing explicit path is.

        Args:
            config_path: Path to YAML config file.  Defaults to the
                ``QUOTEMAIL_CONFIG`` environment variable, then
                ``config/quotemail.yaml``.

        Returns:
            AppConfig instance.

        Raises:
            ConfigError: If the file is unreadable or required values are
                absent.
        """
        load_dotenv_once()

        explicit = config_path is not None or CONFIG_PATH_ENV in os.environ
        if config_path is None:
            config_path = Path(
                os.environ.get(CONFIG_PATH_ENV, _DEFAULT_CONFIG_PATH)
            )

        if not config_path.exists():
            if explicit:
                raise ConfigError(f"Config file not found: {config_path}")
            logger.debug("No config file at %s, using defaults", config_path)
            return cls._from_raw({})

        try:
            with open(config_path) as f:
                raw = yaml.load(f, Loader=_make_loader())
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        logger.info("Loaded config from %s", config_path)
        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "AppConfig":
        """Build config from parsed (but unresolved) YAML dict."""
        microsoft = _section(raw, "microsoft")
        mailbox = _section(raw, "mailbox")
        data = _section(raw, "data")
        matching = _section(raw, "matching")
        reply = _section(raw, "reply")

        auth = AuthConfig(
            tenant_id=_resolve(
                microsoft.get("tenant_id", _EnvVar("TENANT_ID")),
                str,
                required="microsoft.tenant_id",
            ),
            client_id=_resolve(
                microsoft.get("client_id", _EnvVar("CLIENT_ID")),
                str,
                required="microsoft.client_id",
            ),
            client_secret=_resolve(
                microsoft.get("client_secret", _EnvVar("CLIENT_SECRET")),
                str,
                required="microsoft.client_secret",
            ),
            redirect_uri=_resolve(
                microsoft.get("redirect_uri"),
                str,
                default="http://localhost:4001",
            ),
            scopes=_resolve_string_list(
                microsoft.get("scopes"),
                name="microsoft.scopes",
                default=DEFAULT_SCOPES,
            ),
            token_cache_path=_resolve(
                microsoft.get("token_cache"),
                Path,
                default=Path("state/token_cache.json"),
            ),
            auth_timeout_seconds=_resolve(
                microsoft.get("auth_timeout"), int, default=300
            ),
            open_browser=_resolve(
                microsoft.get("open_browser"), bool, default=True
            ),
        )

        mailbox_config = MailboxConfig(
            graph_base_url=_resolve(
                mailbox.get("graph_base_url"),
                str,
                default=DEFAULT_GRAPH_BASE_URL,
            ).rstrip("/"),
            inbox_folder=_resolve(
                mailbox.get("inbox_folder"), str, default="Inbox"
            ),
            replied_folder=_resolve(
                mailbox.get("replied_folder"), str, default="Replied"
            ),
            http_timeout_seconds=_resolve(
                mailbox.get("http_timeout"), float, default=30.0
            ),
            max_retries=_resolve(mailbox.get("max_retries"), int, default=3),
            page_size=_resolve(mailbox.get("page_size"), int, default=50),
        )

        mode_name = _resolve(matching.get("mode"), str, default="exact")
        try:
            match_mode = MatchMode(mode_name.lower())
        except ValueError as e:
            raise ConfigError(
                f"Unknown matching.mode {mode_name!r} "
                f"(expected one of: {', '.join(m.value for m in MatchMode)})"
            ) from e

        return cls(
            auth=auth,
            mailbox=mailbox_config,
            catalog_path=_resolve(
                data.get("catalog"),
                Path,
                default=Path("demo_data/catalog.csv"),
            ),
            customers_path=_resolve(
                data.get("customers"),
                Path,
                default=Path("demo_data/customers.csv"),
            ),
            audit_path=_resolve(
                data.get("audit"), Path, default=Path("reports/audit.csv")
            ),
            match_mode=match_mode,
            fuzzy_threshold=_resolve(
                matching.get("fuzzy_threshold"),
                float,
                default=DEFAULT_FUZZY_THRESHOLD,
            ),
            reply_signature=_resolve(
                reply.get("signature"), str, default=DEFAULT_SIGNATURE
            ),
        )
