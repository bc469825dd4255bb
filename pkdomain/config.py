"""Server configuration file, data directories and the application context."""

from __future__ import annotations

import copy
import ipaddress
import os
import tempfile
import tomllib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .top_level_domain import TopLevelDomain

SocketAddress = tuple[str, int]

CONFIG_FILE_NAME = "config.toml"
_WRITE_TEST_FILE_NAME = "test_write_f2d560932f9b437fa9ef430ba436d611"
_U8_MAX = 2**8 - 1
_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

SAMPLE_CONFIG = """\
# pkdns configuration file.
# Every value below is optional. Missing values fall back to their defaults.

[general]
# DNS server socket. Format: IP:Port.
socket = "0.0.0.0:53"

# ICANN fallback DNS server. Format: IP:Port.
forward = "8.8.8.8:53"

# [EXPERIMENTAL] DNS-over-HTTP server socket. Disabled when not set.
# dns_over_http_socket = "127.0.0.1:3000"

# Show verbose output.
verbose = false

[dns]
# Minimum TTL in seconds handed out for public key domain records.
min_ttl = 60

# Maximum TTL in seconds handed out for public key domain records.
max_ttl = 86400

# Maximum number of queries per second per IP address. 0 disables the limit.
query_rate_limit = 100

# Short term burst size of the query rate limit.
query_rate_limit_burst = 200

# Refuse ANY queries, which are often used for DNS amplification attacks.
disable_any_queries = false

# Size of the ICANN response cache in megabytes.
icann_cache_mb = 100

# Maximum number of recursive lookups for a single query.
max_recursion_depth = 15

[dht]
# Size of the DHT packet cache in megabytes.
dht_cache_mb = 100

# Maximum number of DHT lookups per second per IP address. 0 disables the limit.
dht_query_rate_limit = 5

# Short term burst size of the DHT lookup rate limit.
dht_query_rate_limit_burst = 25

# Top level domain appended to public key domains. An empty string disables it.
top_level_domain = "key"
"""


class ConfigReadError(Exception):
    """Raised when a configuration file cannot be read or is not valid."""


def _parse_socket_addr(value: Any, key: str) -> SocketAddress:
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a socket address string")
    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ValueError(f"{key}: invalid socket address {value!r}")
        port_text = rest[1:]
        try:
            ip: ipaddress.IPv4Address | ipaddress.IPv6Address = ipaddress.IPv6Address(host)
        except ValueError as exc:
            raise ValueError(f"{key}: invalid socket address {value!r}") from exc
    else:
        host, sep, port_text = value.rpartition(":")
        if not sep:
            raise ValueError(f"{key}: invalid socket address {value!r}")
        try:
            ip = ipaddress.IPv4Address(host)
        except ValueError as exc:
            raise ValueError(f"{key}: invalid socket address {value!r}") from exc
    if not port_text.isdigit() or not port_text.isascii() or int(port_text) > 65535:
        raise ValueError(f"{key}: invalid socket address {value!r}")
    return str(ip), int(port_text)


def _table(root: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = root.get(key, {})
    if not isinstance(value, Mapping):
        raise ValueError(f"{key}: expected a table")
    return value


def _int_field(
    table: Mapping[str, Any], key: str, default: int, minimum: int, maximum: int
) -> int:
    if key not in table:
        return default
    value = table[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer")
    if not minimum <= value <= maximum:
        raise ValueError(f"{key}: {value} is out of range {minimum}..={maximum}")
    return value


def _bool_field(table: Mapping[str, Any], key: str, default: bool) -> bool:
    if key not in table:
        return default
    value = table[key]
    if not isinstance(value, bool):
        raise ValueError(f"{key}: expected a boolean")
    return value


def _socket_field(table: Mapping[str, Any], key: str, default: SocketAddress) -> SocketAddress:
    if key not in table:
        return default
    return _parse_socket_addr(table[key], key)


def _optional_socket_field(table: Mapping[str, Any], key: str) -> SocketAddress | None:
    if key not in table:
        return None
    return _parse_socket_addr(table[key], key)


def _tld_field(table: Mapping[str, Any], key: str) -> TopLevelDomain | None:
    if key not in table:
        return TopLevelDomain("key")
    value = table[key]
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a string")
    if not value:
        return None
    return TopLevelDomain(value)


@dataclass
class General:
    """General server settings."""

    socket: SocketAddress = ("0.0.0.0", 53)
    forward: SocketAddress = ("8.8.8.8", 53)
    dns_over_http_socket: SocketAddress | None = None
    verbose: bool = False

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> General:
        defaults = cls()
        return cls(
            socket=_socket_field(table, "socket", defaults.socket),
            forward=_socket_field(table, "forward", defaults.forward),
            dns_over_http_socket=_optional_socket_field(table, "dns_over_http_socket"),
            verbose=_bool_field(table, "verbose", defaults.verbose),
        )


@dataclass
class Dns:
    """DNS resolution settings."""

    min_ttl: int = 60
    max_ttl: int = 86400
    query_rate_limit: int = 100
    query_rate_limit_burst: int = 200
    disable_any_queries: bool = False
    icann_cache_mb: int = 100
    max_recursion_depth: int = 15

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> Dns:
        d = cls()
        return cls(
            min_ttl=_int_field(table, "min_ttl", d.min_ttl, 0, _U64_MAX),
            max_ttl=_int_field(table, "max_ttl", d.max_ttl, 0, _U64_MAX),
            query_rate_limit=_int_field(table, "query_rate_limit", d.query_rate_limit, 0, _U32_MAX),
            query_rate_limit_burst=_int_field(
                table, "query_rate_limit_burst", d.query_rate_limit_burst, 0, _U32_MAX
            ),
            disable_any_queries=_bool_field(table, "disable_any_queries", d.disable_any_queries),
            icann_cache_mb=_int_field(table, "icann_cache_mb", d.icann_cache_mb, 0, _U64_MAX),
            max_recursion_depth=_int_field(
                table, "max_recursion_depth", d.max_recursion_depth, 0, _U8_MAX
            ),
        )


@dataclass
class Dht:
    """Mainline DHT settings."""

    dht_cache_mb: int = 100
    dht_query_rate_limit: int = 5
    dht_query_rate_limit_burst: int = 25
    top_level_domain: TopLevelDomain | None = field(default_factory=lambda: TopLevelDomain("key"))

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> Dht:
        d = cls()
        return cls(
            dht_cache_mb=_int_field(table, "dht_cache_mb", d.dht_cache_mb, 1, _U64_MAX),
            dht_query_rate_limit=_int_field(
                table, "dht_query_rate_limit", d.dht_query_rate_limit, 0, _U32_MAX
            ),
            dht_query_rate_limit_burst=_int_field(
                table, "dht_query_rate_limit_burst", d.dht_query_rate_limit_burst, 0, _U32_MAX
            ),
            top_level_domain=_tld_field(table, "top_level_domain"),
        )


@dataclass
class ConfigToml:
    """The whole configuration file."""

    general: General = field(default_factory=General)
    dns: Dns = field(default_factory=Dns)
    dht: Dht = field(default_factory=Dht)

    @classmethod
    def from_str(cls, text: str) -> ConfigToml:
        """Parse configuration text; missing values take their defaults."""
        try:
            root = tomllib.loads(text)
            return cls(
                general=General._from_table(_table(root, "general")),
                dns=Dns._from_table(_table(root, "dns")),
                dht=Dht._from_table(_table(root, "dht")),
            )
        except ValueError as exc:
            raise ConfigReadError(f"config file is not valid TOML: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> ConfigToml:
        """Read and parse a configuration file."""
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigReadError(f"config file not found: {exc}") from exc
        return cls.from_str(raw)

    @classmethod
    def sample(cls) -> str:
        """The example configuration file."""
        return SAMPLE_CONFIG

    @classmethod
    def commented_out_sample(cls) -> str:
        """The example configuration with every value commented out."""
        lines = []
        for line in SAMPLE_CONFIG.splitlines():
            trimmed = line.lstrip()
            if trimmed and not trimmed.startswith("#"):
                lines.append(f"# {line}")
            else:
                lines.append(line)
        return "\n".join(lines)


class DataDir(ABC):
    """A directory holding the server's data and configuration file."""

    @property
    @abstractmethod
    def path(self) -> Path:
        """The data directory."""

    @abstractmethod
    def ensure_data_dir_exists_and_is_writable(self) -> None:
        """Create the directory if needed and check that it is writable."""

    @abstractmethod
    def read_or_create_config_file(self) -> ConfigToml:
        """Read the configuration, creating a default file if there is none."""


def expand_home_dir(path: str | os.PathLike[str]) -> Path:
    """Expand a leading `~/` to the home directory; other paths are kept as they are."""
    text = os.fspath(path)
    if text.startswith("~/"):
        try:
            home = Path.home()
        except (RuntimeError, KeyError):
            return Path(text)
        return home / text[2:]
    return Path(text)


class PersistentDataDir(DataDir):
    """A data directory on disk."""

    def __init__(self, path: str | os.PathLike[str] = "~/.pubky") -> None:
        self._path = expand_home_dir(path)

    @property
    def path(self) -> Path:
        return self._path

    def config_file_path(self) -> Path:
        """The configuration file inside this directory."""
        return self._path / CONFIG_FILE_NAME

    def _write_sample_config_file(self) -> None:
        self.config_file_path().write_text(ConfigToml.commented_out_sample(), encoding="utf-8")

    def ensure_data_dir_exists_and_is_writable(self) -> None:
        self._path.mkdir(parents=True, exist_ok=True)
        test_file = self._path / _WRITE_TEST_FILE_NAME
        try:
            test_file.write_bytes(b"test")
            test_file.unlink()
        except OSError as exc:
            raise OSError(f"Failed to write to data directory: {exc}") from exc

    def read_or_create_config_file(self) -> ConfigToml:
        config_path = self.config_file_path()
        if not config_path.exists():
            self._write_sample_config_file()
        return ConfigToml.from_file(config_path)

    def __repr__(self) -> str:
        return f"PersistentDataDir({str(self._path)!r})"


def _testing_config() -> ConfigToml:
    config = ConfigToml()
    config.general.dns_over_http_socket = None
    config.general.socket = ("0.0.0.0", 0)
    return config


class MockDataDir(DataDir):
    """A temporary data directory with an in-memory configuration, for testing."""

    def __init__(self, config_toml: ConfigToml | None = None) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.config_toml = config_toml if config_toml is not None else _testing_config()

    @property
    def path(self) -> Path:
        return Path(self._temp_dir.name)

    def ensure_data_dir_exists_and_is_writable(self) -> None:
        """Nothing to do: the temporary directory always exists."""

    def read_or_create_config_file(self) -> ConfigToml:
        return copy.deepcopy(self.config_toml)

    def cleanup(self) -> None:
        """Remove the temporary directory."""
        self._temp_dir.cleanup()

    def __enter__(self) -> MockDataDir:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"MockDataDir({self._temp_dir.name!r})"


@dataclass
class AppContext:
    """Everything the server needs at run time."""

    config: ConfigToml = field(default_factory=ConfigToml)

    @classmethod
    def from_data_dir(cls, data_dir: DataDir) -> AppContext:
        """Prepare the data directory and load its configuration."""
        data_dir.ensure_data_dir_exists_and_is_writable()
        return cls(config=data_dir.read_or_create_config_file())