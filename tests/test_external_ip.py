import ipaddress

import pytest
import responses

from pkdomain.external_ip import (
    ExternalIpError,
    ProviderResolver,
    default_providers,
    fill_dyndns_variables,
    resolve_ipv4,
    resolve_ipv4_from_json,
    resolve_ipv4_with_url,
    resolve_ipv6,
    resolve_ipv6_from_json,
    resolve_ipv6_with_url,
)

IPV4_URLS_TEXT = ["https://ipv4.icanhazip.com", "https://v4.ident.me", "https://api.ipify.org"]
IPV4_URLS_JSON = ["https://ipinfo.io", "https://4.myip.is/"]
IPV6_URLS_TEXT = ["https://ipv6.icanhazip.com", "https://v6.ident.me", "https://api6.ipify.org"]
IPV6_URLS_JSON = ["https://v6.ipinfo.io", "https://6.myip.is/"]


def _failing():
    raise ExternalIpError("down")


def test_resolve_ipv4_with_url_strips_whitespace():
    with responses.RequestsMock() as rsps:
        rsps.get("https://ip.example.com/", body=" 203.0.113.5\n")
        assert resolve_ipv4_with_url("https://ip.example.com/") == ipaddress.IPv4Address("203.0.113.5")


def test_resolve_ipv4_with_url_rejects_garbage():
    with responses.RequestsMock() as rsps:
        rsps.get("https://ip.example.com/", body="not an ip")
        with pytest.raises(ExternalIpError):
            resolve_ipv4_with_url("https://ip.example.com/")


def test_resolve_ipv4_with_url_rejects_ipv6():
    with responses.RequestsMock() as rsps:
        rsps.get("https://ip.example.com/", body="2001:db8::1")
        with pytest.raises(ExternalIpError):
            resolve_ipv4_with_url("https://ip.example.com/")


def test_resolve_ipv6_with_url():
    with responses.RequestsMock() as rsps:
        rsps.get("https://ip.example.com/", body="2001:db8::1\n")
        assert resolve_ipv6_with_url("https://ip.example.com/") == ipaddress.IPv6Address("2001:db8::1")


def test_connection_error_is_wrapped():
    with responses.RequestsMock():
        with pytest.raises(ExternalIpError):
            resolve_ipv4_with_url("https://unreachable.example.com/")


def test_resolve_from_json():
    with responses.RequestsMock() as rsps:
        rsps.get("https://ip.example.com/4", json={"ip": "198.51.100.2", "city": "x"})
        rsps.get("https://ip.example.com/6", json={"ip": "2001:db8::2"})
        assert resolve_ipv4_from_json("https://ip.example.com/4") == ipaddress.IPv4Address("198.51.100.2")
        assert resolve_ipv6_from_json("https://ip.example.com/6") == ipaddress.IPv6Address("2001:db8::2")


@pytest.mark.parametrize("payload", [{"address": "198.51.100.2"}, ["198.51.100.2"], {"ip": 5}])
def test_resolve_from_json_missing_ip(payload):
    with responses.RequestsMock() as rsps:
        rsps.get("https://ip.example.com/", json=payload)
        with pytest.raises(ExternalIpError):
            resolve_ipv4_from_json("https://ip.example.com/")


def test_resolve_from_json_not_json():
    with responses.RequestsMock() as rsps:
        rsps.get("https://ip.example.com/", body="198.51.100.2")
        with pytest.raises(ExternalIpError):
            resolve_ipv4_from_json("https://ip.example.com/")


def test_default_providers_names():
    names = {provider.name for provider in default_providers()}
    assert names == {"icanhazip.com", "ident.me", "ipify.org", "ipinfo.io", "myip.is"}


def test_provider_resolver_delegates():
    provider = ProviderResolver(
        "local",
        lambda: ipaddress.IPv4Address("192.0.2.1"),
        lambda: ipaddress.IPv6Address("2001:db8::3"),
    )
    assert provider.ipv4() == ipaddress.IPv4Address("192.0.2.1")
    assert provider.ipv6() == ipaddress.IPv6Address("2001:db8::3")


def test_resolve_ipv4_skips_failing_providers(capsys):
    good = ProviderResolver("good", lambda: ipaddress.IPv4Address("192.0.2.9"), _failing)
    bad = ProviderResolver("bad", _failing, _failing)
    ip, name = resolve_ipv4([bad, good, bad])
    assert (ip, name) == (ipaddress.IPv4Address("192.0.2.9"), "good")


def test_resolve_ipv6_skips_failing_providers():
    good = ProviderResolver("good", _failing, lambda: ipaddress.IPv6Address("2001:db8::9"))
    bad = ProviderResolver("bad", _failing, _failing)
    assert resolve_ipv6([bad, good]) == (ipaddress.IPv6Address("2001:db8::9"), "good")


def test_all_providers_fail(capsys):
    bad = ProviderResolver("bad", _failing, _failing)
    with pytest.raises(ExternalIpError, match="All ip providers failed"):
        resolve_ipv4([bad, bad])
    assert "Failed to fetch ip from bad" in capsys.readouterr().out


def test_resolve_ipv4_default_providers():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        for url in IPV4_URLS_TEXT:
            rsps.get(url, body="203.0.113.7\n")
        for url in IPV4_URLS_JSON:
            rsps.get(url, json={"ip": "203.0.113.7"})
        ip, name = resolve_ipv4()
    assert ip == ipaddress.IPv4Address("203.0.113.7")
    assert name in {provider.name for provider in default_providers()}


def test_fill_dyndns_variables_without_placeholders_needs_no_network():
    zone = "@ IN A 192.0.2.1\n"
    with responses.RequestsMock():
        assert fill_dyndns_variables(zone) == zone


def test_fill_dyndns_variables_replaces_both():
    zone = "@ IN A {external_ipv4}\n@ IN AAAA {external_ipv6}\n"
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        for url in IPV4_URLS_TEXT:
            rsps.get(url, body="203.0.113.8")
        for url in IPV4_URLS_JSON:
            rsps.get(url, json={"ip": "203.0.113.8"})
        for url in IPV6_URLS_TEXT:
            rsps.get(url, body="2001:db8::8")
        for url in IPV6_URLS_JSON:
            rsps.get(url, json={"ip": "2001:db8::8"})
        filled = fill_dyndns_variables(zone)
    assert filled == "@ IN A 203.0.113.8\n@ IN AAAA 2001:db8::8\n"


def test_fill_dyndns_variables_fails_when_unresolvable(capsys):
    with responses.RequestsMock():
        with pytest.raises(ExternalIpError):
            fill_dyndns_variables("@ IN A {external_ipv4}")