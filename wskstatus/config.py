import logging
from functools import lru_cache
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from wskstatus.activations.buckets import TimeFrame

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Connection parameters are missing or malformed. Fatal at startup."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # Connection (optional, empty string falls back to .wskprops)
    apihost: str = ""
    namespace: str = ""
    auth: str = ""
    wskprops_path: str = "~/.wskprops"

    # Aggregation
    time_frame: TimeFrame = TimeFrame.HOURLY
    time_zone: str = ""  # IANA name; empty uses TZ, then the system zone

    # Polling
    request_timeout_seconds: float = 15.0
    refresh_interval_seconds: int = 10
    refresh_quiet_seconds: int = 10

    # Web adapter
    web_host: str = "0.0.0.0"
    web_port: int = 8085
    web_window_buckets: int = 80

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()


class Connection(BaseModel):
    """Everything the fetcher needs to reach one namespace."""

    base: str
    namespace: str
    auth: SecretStr


def read_wskprops(path: str | Path) -> dict[str, str]:
    """Parse a wsk properties file (one ``KEY=value`` per line).

    A missing file is not an error, since every field can also come from the
    command line or the environment.

    Raises:
        ConfigurationError: If the file exists but cannot be read, or a
            non-empty line does not split into exactly one key and one value.
    """
    file = Path(path).expanduser()
    if not file.exists():
        logger.debug("No properties file at %s", file)
        return {}

    try:
        contents = file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read {file}: {e}") from e

    props: dict[str, str] = {}
    for line in contents.splitlines():
        if not line:
            continue
        parts = line.split("=")
        if len(parts) != 2:
            raise ConfigurationError(f"Malformed {file}: {line!r}")
        props[parts[0]] = parts[1]
    return props


def resolve_connection(
    settings: Settings,
    baseurl: str | None = None,
    namespace: str | None = None,
    token: str | None = None,
) -> Connection:
    """Combine command-line options, environment settings and ``.wskprops``.

    Precedence is option > environment > properties file.
    """
    props = read_wskprops(settings.wskprops_path)

    base = baseurl or settings.apihost or props.get("APIHOST")
    ns = namespace or settings.namespace or props.get("NAMESPACE")
    auth = token or settings.auth or props.get("AUTH")

    if not (base and ns and auth):
        missing = [name for name, value in (("APIHOST", base), ("NAMESPACE", ns), ("AUTH", auth)) if not value]
        raise ConfigurationError(
            f"Missing configuration fields ({', '.join(missing)}). Please check your options and your .wskprops"
        )

    return Connection(base=base, namespace=ns, auth=SecretStr(auth))
