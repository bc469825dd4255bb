"""Discover this machine's external IP address through public lookup services."""

from __future__ import annotations

import ipaddress
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import requests

REQUEST_TIMEOUT = 10.0
IPV4_PLACEHOLDER = "{external_ipv4}"
IPV6_PLACEHOLDER = "{external_ipv6}"


class ExternalIpError(Exception):
    """Raised when an external IP address cannot be determined."""


def _fetch(url: str) -> requests.Response:
    try:
        return requests.get(url, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        raise ExternalIpError(str(exc)) from exc


def _text_of(url: str) -> str:
    response = _fetch(url)
    try:
        return response.text.strip()
    except requests.RequestException as exc:
        raise ExternalIpError(str(exc)) from exc


def _ip_field_of(url: str) -> str:
    response = _fetch(url)
    try:
        body = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise ExternalIpError(f"invalid json response. {exc}") from exc
    try:
        value = body["ip"]
    except (KeyError, TypeError) as exc:
        raise ExternalIpError("response holds no 'ip' field") from exc
    if not isinstance(value, str):
        raise ExternalIpError("'ip' field is not a string")
    return value


def _parse_ipv4(text: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(text)
    except ValueError as exc:
        raise ExternalIpError(str(exc)) from exc


def _parse_ipv6(text: str) -> ipaddress.IPv6Address:
    try:
        return ipaddress.IPv6Address(text)
    except ValueError as exc:
        raise ExternalIpError(str(exc)) from exc


def resolve_ipv4_with_url(url: str) -> ipaddress.IPv4Address:
    """Fetch a URL whose plain text response is an IPv4 address."""
    return _parse_ipv4(_text_of(url))


def resolve_ipv6_with_url(url: str) -> ipaddress.IPv6Address:
    """Fetch a URL whose plain text response is an IPv6 address."""
    return _parse_ipv6(_text_of(url))


def resolve_ipv4_from_json(url: str) -> ipaddress.IPv4Address:
    """Fetch a URL answering with JSON whose `ip` field is an IPv4 address."""
    return _parse_ipv4(_ip_field_of(url))


def resolve_ipv6_from_json(url: str) -> ipaddress.IPv6Address:
    """Fetch a URL answering with JSON whose `ip` field is an IPv6 address."""
    return _parse_ipv6(_ip_field_of(url))


@dataclass(frozen=True)
class ProviderResolver:
    """A named lookup service able to report the external IPv4 and IPv6 address."""

    name: str
    ipv4_resolver: Callable[[], ipaddress.IPv4Address]
    ipv6_resolver: Callable[[], ipaddress.IPv6Address]

    def ipv4(self) -> ipaddress.IPv4Address:
        """Resolve this computer's external IPv4 address."""
        return self.ipv4_resolver()

    def ipv6(self) -> ipaddress.IPv6Address:
        """Resolve this computer's external IPv6 address."""
        return self.ipv6_resolver()


def _text_provider(name: str, url4: str, url6: str) -> ProviderResolver:
    return ProviderResolver(
        name,
        lambda: resolve_ipv4_with_url(url4),
        lambda: resolve_ipv6_with_url(url6),
    )


def _json_provider(name: str, url4: str, url6: str) -> ProviderResolver:
    return ProviderResolver(
        name,
        lambda: resolve_ipv4_from_json(url4),
        lambda: resolve_ipv6_from_json(url6),
    )


def default_providers() -> list[ProviderResolver]:
    """The five built-in lookup services."""
    return [
        _text_provider("icanhazip.com", "https://ipv4.icanhazip.com", "https://ipv6.icanhazip.com"),
        _text_provider("ident.me", "https://v4.ident.me", "https://v6.ident.me"),
        _text_provider("ipify.org", "https://api.ipify.org", "https://api6.ipify.org"),
        _json_provider("ipinfo.io", "https://ipinfo.io", "https://v6.ipinfo.io"),
        _json_provider("myip.is", "https://4.myip.is/", "https://6.myip.is/"),
    ]


def _resolve_with(providers: Iterable[ProviderResolver] | None, lookup):
    candidates = list(default_providers() if providers is None else providers)
    random.shuffle(candidates)
    for provider in candidates:
        try:
            return lookup(provider), provider.name
        except ExternalIpError as exc:
            print(f"Failed to fetch ip from {provider.name}. {exc}")
    raise ExternalIpError("All ip providers failed to return the external ip.")


def resolve_ipv4(
    providers: Iterable[ProviderResolver] | None = None,
) -> tuple[ipaddress.IPv4Address, str]:
    """Ask the providers in random order; return the first IPv4 and the provider's name."""
    return _resolve_with(providers, lambda provider: provider.ipv4())


def resolve_ipv6(
    providers: Iterable[ProviderResolver] | None = None,
) -> tuple[ipaddress.IPv6Address, str]:
    """Ask the providers in random order; return the first IPv6 and the provider's name."""
    return _resolve_with(providers, lambda provider: provider.ipv6())


def fill_dyndns_variables(zone: str) -> str:
    """Replace the external IP placeholders in zone text with the resolved addresses."""
    if IPV4_PLACEHOLDER in zone:
        ipv4, _ = resolve_ipv4()
        zone = zone.replace(IPV4_PLACEHOLDER, str(ipv4))
    if IPV6_PLACEHOLDER in zone:
        ipv6, _ = resolve_ipv6()
        zone = zone.replace(IPV6_PLACEHOLDER, str(ipv6))
    return zone