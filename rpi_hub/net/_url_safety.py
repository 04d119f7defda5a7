"""SSRF protection: decide whether a URL is safe to fetch from the server.

Validation is purely syntactic. DNS names are never resolved here; the
fetcher can optionally check resolved addresses with ``is_allowed_ip``
(see ``FetchPolicy.resolve_hostnames``).
"""

import enum
import ipaddress
import re
import socket
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network
from urllib.parse import urlsplit

from rpi_hub.config import FetchPolicy

_ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})
_DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}
_STANDARD_PORTS: frozenset[int] = frozenset({80, 443})

# Substring match is intentional: it also rejects hosts such as
# "127.0.0.1.nip.io" that resolve back to loopback.
_LOOPBACK_PATTERNS: tuple[str, ...] = (
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "::ffff:127.0.0.1",
)

_METADATA_HOSTS: frozenset[str] = frozenset({
    "169.254.169.254",  # AWS, Azure, GCP
    "fd00:ec2::254",    # AWS IPv6
})

_BLOCKED_V4_NETWORKS: tuple[IPv4Network, ...] = (
    IPv4Network("127.0.0.0/8"),
    IPv4Network("10.0.0.0/8"),
    IPv4Network("172.16.0.0/12"),
    IPv4Network("192.168.0.0/16"),
    IPv4Network("169.254.0.0/16"),
    IPv4Network("224.0.0.0/4"),
    IPv4Network("240.0.0.0/4"),
    IPv4Network("0.0.0.0/8"),
)

_BLOCKED_V6_NETWORKS: tuple[IPv6Network, ...] = (
    IPv6Network("::1/128"),
    IPv6Network("fe80::/10"),
    IPv6Network("fc00::/7"),
    IPv6Network("::ffff:0:0/96"),
)

# Anything outside this set cannot appear in a hostname we are willing to parse
_HOST_CHARS = re.compile(r"^[a-z0-9.\-_:%]+$")
# Candidates for the legacy inet_aton forms (127.1, 0x7f.0.0.1, 2130706433)
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$")


class UrlRejection(enum.Enum):
    INVALID_URL_FORMAT  = "invalid_url_format"
    DISALLOWED_PROTOCOL = "disallowed_protocol"
    DISALLOWED_HOST     = "disallowed_host"     # loopback, metadata, private range
    DISALLOWED_PORT     = "disallowed_port"


@dataclass(frozen=True)
class UrlVerdict:
    valid: bool
    reason: str | None = None
    rejection: UrlRejection | None = None

    @classmethod
    def accept(cls) -> "UrlVerdict":
        return cls(valid=True)

    @classmethod
    def reject(cls, rejection: UrlRejection, reason: str) -> "UrlVerdict":
        return cls(valid=False, reason=reason, rejection=rejection)


INVALID_FORMAT = UrlVerdict.reject(UrlRejection.INVALID_URL_FORMAT, "invalid URL format")


def parse_ip_literal(hostname: str) -> IPv4Address | IPv6Address | None:
    """Return the address when *hostname* is an IP literal, else None.

    Besides dotted-quad and IPv6 text, accepts the shortened and numeric
    IPv4 spellings that the system resolver also accepts, so "2130706433"
    is treated as 127.0.0.1 instead of a DNS name.
    """
    try:
        return ipaddress.ip_address(hostname.split("%", 1)[0])
    except ValueError:
        pass
    if not _NUMERIC_HOST.match(hostname):
        return None
    try:
        return IPv4Address(socket.inet_aton(hostname))
    except OSError:
        return None


def is_allowed_ip(ip: IPv4Address | IPv6Address) -> bool:
    """Return False for loopback, private, link-local, multicast and reserved ranges."""
    if isinstance(ip, IPv4Address):
        return not any(ip in network for network in _BLOCKED_V4_NETWORKS)
    if any(ip in network for network in _BLOCKED_V6_NETWORKS):
        return False
    return ip.ipv4_mapped is None


class UrlValidator:
    """Classifies candidate URLs as safe to fetch or rejected.

    Stateless apart from its policy; a verdict is never cached because
    the configured URL may change between calls.
    """

    def __init__(self, policy: FetchPolicy | None = None):
        self.policy = policy or FetchPolicy()
        self._blocked_ports = frozenset(self.policy.blocked_ports)

    def validate(self, url: str) -> UrlVerdict:
        """Return the verdict for *url*. Never raises."""
        if not isinstance(url, str) or not url.strip():
            return INVALID_FORMAT

        try:
            parts = urlsplit(url.strip())
            port = parts.port
        except ValueError:
            return INVALID_FORMAT

        if not parts.scheme:
            # "//host/path" has an authority but no protocol; anything else
            # without a scheme is not a URL at all.
            if parts.netloc:
                return _disallowed_protocol()
            return INVALID_FORMAT

        if parts.scheme not in _ALLOWED_SCHEMES:
            return _disallowed_protocol()

        hostname = _ascii_hostname(parts.hostname or "")
        if not hostname or not _HOST_CHARS.match(hostname):
            return INVALID_FORMAT

        if any(pattern in hostname for pattern in _LOOPBACK_PATTERNS):
            return UrlVerdict.reject(UrlRejection.DISALLOWED_HOST, "localhost URLs are not allowed")

        if hostname in _METADATA_HOSTS:
            return UrlVerdict.reject(
                UrlRejection.DISALLOWED_HOST, "metadata service URLs are not allowed"
            )

        ip = parse_ip_literal(hostname)
        if ip is not None and (not is_allowed_ip(ip) or "::ffff:" in hostname):
            return UrlVerdict.reject(
                UrlRejection.DISALLOWED_HOST, "IP address is in a restricted range"
            )

        effective_port = port if port is not None else _DEFAULT_PORTS[parts.scheme]
        if effective_port < 1024 and effective_port not in _STANDARD_PORTS:
            return UrlVerdict.reject(
                UrlRejection.DISALLOWED_PORT,
                "port in privileged range (1-1023) is not allowed except 80 and 443",
            )
        if effective_port in self._blocked_ports:
            return UrlVerdict.reject(UrlRejection.DISALLOWED_PORT, "port is not allowed")

        return UrlVerdict.accept()


def _ascii_hostname(hostname: str) -> str:
    """Lower-case *hostname*, converting internationalized names to punycode."""
    hostname = hostname.lower()
    if hostname.isascii():
        return hostname
    try:
        return hostname.encode("idna").decode("ascii")
    except UnicodeError:
        return ""


def _disallowed_protocol() -> UrlVerdict:
    return UrlVerdict.reject(
        UrlRejection.DISALLOWED_PROTOCOL, "only HTTP and HTTPS protocols are allowed"
    )


def validate_url(url: str, policy: FetchPolicy | None = None) -> UrlVerdict:
    """Validate *url* with a one-off validator (default policy unless given)."""
    return UrlValidator(policy).validate(url)
