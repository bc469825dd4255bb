"""DNS-over-HTTPS endpoint in the wire format of RFC 8484."""

from __future__ import annotations

import base64
import binascii
import inspect
import ipaddress
import logging
import re
import threading
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Union

import dns.exception
import dns.message
import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Resolver = Callable[[bytes, Union[IPAddress, None]], Union[bytes, Awaitable[bytes]]]

DNS_MESSAGE_TYPE = "application/dns-message"
DEFAULT_TTL = 300
MAX_BODY_SIZE = 65535
_STARTUP_TIMEOUT = 10.0
_BASE64URL_CHARS = re.compile(r"[A-Za-z0-9_-]*")

# Shown to web browsers so users know what this endpoint is about.
ERROR_PREFIX = """
Hello to pkdns DNS-over-HTTPS!

Add this DNS url to your browsers to enable self-sovereign Public Key Domains (PKD).





dev:"""


class DohError(Exception):
    """A request that cannot be answered; carries the HTTP status to reply with."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def validate_accept_header(headers: Mapping[str, str]) -> None:
    """Raise DohError unless the accept header is exactly application/dns-message."""
    if _header(headers, "accept") != DNS_MESSAGE_TYPE:
        raise DohError(f"{ERROR_PREFIX} valid accept header missing")


def decode_dns_base64_packet(param: str) -> bytes:
    """Decode an unpadded base64url query parameter that must hold a DNS packet."""
    try:
        if not _BASE64URL_CHARS.fullmatch(param):
            raise ValueError("invalid base64url character")
        padded = param + "=" * (-len(param) % 4)
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DohError(f"Error decoding the dns base64 query parameter. {exc}") from exc
    try:
        dns.message.from_wire(raw)
    except (dns.exception.DNSException, ValueError) as exc:
        logger.info("Failed to parse the base64 as a valid dns packet. %s", exc)
        raise DohError(f"Failed to parse the base64 as a valid dns packet. {exc}") from exc
    return raw


def get_lowest_ttl(reply: bytes) -> int:
    """Lowest answer TTL of a reply, or 300 when there is none or it cannot be parsed."""
    try:
        message = dns.message.from_wire(reply)
    except (dns.exception.DNSException, ValueError):
        return DEFAULT_TTL
    return min((rrset.ttl for rrset in message.answer), default=DEFAULT_TTL)


def _as_ip(text: str | None) -> IPAddress | None:
    if text is None:
        return None
    try:
        return ipaddress.ip_address(text.strip())
    except ValueError:
        return None


def extract_client_ip(client_host: str | None, headers: Mapping[str, str]) -> IPAddress | None:
    """Client IP for rate limiting; the x-forwarded-for header wins over the peer address."""
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded is not None:
        ip = _as_ip(forwarded)
        if ip is not None:
            return ip
        logger.debug("Failed to parse the 'x-forwarded-for' header ip address %r.", forwarded)
    return _as_ip(client_host)


async def _query_to_response(
    resolver: Resolver, query: bytes, client_ip: IPAddress | None
) -> Response:
    reply = resolver(query, client_ip)
    if inspect.isawaitable(reply):
        reply = await reply
    reply = bytes(reply)
    return Response(
        content=reply,
        status_code=200,
        media_type=DNS_MESSAGE_TYPE,
        headers={"cache-control": f"max-age={get_lowest_ttl(reply)}"},
    )


def _error_response(exc: DohError) -> Response:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


def _client_host(request: Request) -> str | None:
    return request.client.host if request.client is not None else None


async def _read_body(request: Request) -> bytes:
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > MAX_BODY_SIZE:
            raise DohError("length limit exceeded")
    return bytes(body)


def create_app(resolver: Resolver) -> Starlette:
    """The web application serving GET and POST on /dns-query."""

    async def dns_query_get(request: Request) -> Response:
        client_ip = extract_client_ip(_client_host(request), request.headers)
        try:
            validate_accept_header(request.headers)
            param = request.query_params.get("dns")
            if param is None:
                raise DohError("valid dns query param required")
            query = decode_dns_base64_packet(param)
        except DohError as exc:
            return _error_response(exc)
        return await _query_to_response(resolver, query, client_ip)

    async def dns_query_post(request: Request) -> Response:
        client_ip = extract_client_ip(_client_host(request), request.headers)
        try:
            validate_accept_header(request.headers)
            query = await _read_body(request)
        except DohError as exc:
            return _error_response(exc)
        return await _query_to_response(resolver, query, client_ip)

    return Starlette(
        routes=[
            Route("/dns-query", dns_query_get, methods=["GET"]),
            Route("/dns-query", dns_query_post, methods=["POST"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST"],
                allow_headers=["*"],
            )
        ],
    )


def serve_doh(
    host: str, port: int, resolver: Resolver
) -> tuple[tuple[str, int], uvicorn.Server]:
    """Start the server in a background thread; return the bound address and the server.

    Setting `should_exit` on the returned server stops it.
    """
    config = uvicorn.Config(
        create_app(resolver), host=host, port=port, log_level="warning", lifespan="off"
    )
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="doh-server", daemon=True)
    thread.start()
    deadline = time.monotonic() + _STARTUP_TIMEOUT
    while not server.started:
        if not thread.is_alive():
            raise OSError(f"Failed to start the DNS-over-HTTP server on {host}:{port}.")
        if time.monotonic() > deadline:
            server.should_exit = True
            raise TimeoutError("DNS-over-HTTP server did not start in time.")
        time.sleep(0.01)
    sockname = server.servers[0].sockets[0].getsockname()
    return (sockname[0], sockname[1]), server