"""Command line tool to publish and resolve public key domain records."""

from __future__ import annotations

import argparse
import datetime as _dt
import os
import sys
import time
from pathlib import Path

import requests
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .external_ip import ExternalIpError, fill_dyndns_variables
from .keys import (
    Keypair,
    SeedError,
    generate_keypair,
    parse_public_key,
    read_seed_file,
    zbase32_encode,
)
from .pkarr_packet import PkarrPacket, nts_to_datetime
from .simple_zone import SimpleZone, SimpleZoneError

VERSION = "0.7.1"
DEFAULT_RELAYS = ("https://pkarr.pubky.app", "https://pkarr.pubky.org")
MAX_PACKET_SIZE = 1000
_SIGNATURE_LENGTH = 64
_TIMESTAMP_LENGTH = 8
_RELAY_TIMEOUT = 30.0
_PAYLOAD_CONTENT_TYPE = "application/pkarr.org/relays#payload"


class _RelayError(Exception):
    pass


def _format_time(moment: _dt.datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def _signable(timestamp: int, packet: bytes) -> bytes:
    return f"3:seqi{timestamp}e1:v{len(packet)}:".encode() + packet


def _sign(keypair: Keypair, packet: bytes, timestamp: int) -> bytes:
    if len(packet) > MAX_PACKET_SIZE:
        raise ValueError(f"packet is {len(packet)} bytes, more than the {MAX_PACKET_SIZE} allowed")
    private = Ed25519PrivateKey.from_private_bytes(keypair.secret_key)
    signature = private.sign(_signable(timestamp, packet))
    return signature + timestamp.to_bytes(_TIMESTAMP_LENGTH, "big") + packet


def _open_signed(public_key: bytes, body: bytes) -> tuple[int, bytes] | None:
    header = _SIGNATURE_LENGTH + _TIMESTAMP_LENGTH
    if len(body) < header:
        return None
    signature = body[:_SIGNATURE_LENGTH]
    timestamp = int.from_bytes(body[_SIGNATURE_LENGTH:header], "big")
    packet = body[header:]
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, _signable(timestamp, packet))
        PkarrPacket(packet).parsed()
    except (InvalidSignature, ValueError):
        return None
    return timestamp, packet


def _publish(z32: str, body: bytes) -> None:
    errors = []
    for relay in DEFAULT_RELAYS:
        try:
            response = requests.put(
                f"{relay}/{z32}",
                data=body,
                headers={"content-type": _PAYLOAD_CONTENT_TYPE},
                timeout=_RELAY_TIMEOUT,
            )
        except requests.RequestException as exc:
            errors.append(f"{relay}: {exc}")
            continue
        if response.ok:
            return
        errors.append(f"{relay}: status {response.status_code}")
    raise _RelayError("Failed to publish. " + "; ".join(errors))


def _resolve_most_recent(public_key: bytes) -> tuple[int, bytes] | None:
    z32 = zbase32_encode(public_key)
    best: tuple[int, bytes] | None = None
    for relay in DEFAULT_RELAYS:
        try:
            response = requests.get(f"{relay}/{z32}", timeout=_RELAY_TIMEOUT)
        except requests.RequestException:
            continue
        if not response.ok:
            continue
        found = _open_signed(public_key, response.content)
        if found is not None and (best is None or found[0] > best[0]):
            best = found
    return best


def _expand(path: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(path)))


def _cmd_generate(args: argparse.Namespace) -> int:
    keypair = generate_keypair()
    encoded = keypair.secret_key.hex()
    print(encoded)
    return 0


def _cmd_publickey(args: argparse.Namespace) -> int:
    try:
        keypair = read_seed_file(args.seed)
    except SeedError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(keypair.to_z32())
    return 0


def _cmd_publish(args: argparse.Namespace) -> int:
    try:
        keypair = read_seed_file(args.seed)
    except SeedError as exc:
        print(exc, file=sys.stderr)
        return 1
    pubkey = keypair.to_z32()

    zone_path = _expand(args.zonefile)
    try:
        zone_text = zone_path.read_text()
    except OSError as exc:
        print(f"Failed to read zone at {zone_path}. {exc}", file=sys.stderr)
        return 1
    try:
        zone_text = fill_dyndns_variables(zone_text)
    except ExternalIpError as exc:
        print(f"Failed to fetch external ips. {exc}", file=sys.stderr)
        return 1
    try:
        zone = SimpleZone.read(zone_text, pubkey)
    except SimpleZoneError as exc:
        print(f"Failed to parse zone file. {exc}", file=sys.stderr)
        return 1
    print(zone.packet)

    timestamp = time.time_ns() // 1000
    try:
        body = _sign(keypair, zone.packet.data, timestamp)
    except ValueError as exc:
        print(f"Failed to sign the pkarr packet. {exc}", file=sys.stderr)
        return 1

    moment = _format_time(nts_to_datetime(timestamp))
    print(f"Hang on... {moment}", end="", flush=True)
    try:
        _publish(pubkey, body)
    except _RelayError as exc:
        print("\r", end="")
        print(f"Error {exc}")
    else:
        print("\r", end="")
        print(f"{moment} Successfully announced.")
    return 0


def _cmd_resolve(args: argparse.Namespace) -> int:
    if args.pubkey is None:
        args.subparser.print_help(sys.stderr)
        return 2
    try:
        public_key = parse_public_key(args.pubkey)
    except ValueError:
        print("pubkey is not a valid pkarr public key.", file=sys.stderr)
        return 1
    print(f"Resolve dns records of pk:{zbase32_encode(public_key)}")

    found = _resolve_most_recent(public_key)
    if found is None:
        print("Failed to find the packet.")
        packet = PkarrPacket.empty()
        updated = _dt.datetime.min.replace(tzinfo=_dt.timezone.utc)
    else:
        timestamp, data = found
        packet = PkarrPacket(data)
        updated = nts_to_datetime(timestamp)

    print(packet)
    if not packet.is_empty():
        print(f"Last updated at: {_format_time(updated)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """The argument parser with the publish, resolve, generate and publickey commands."""
    parser = argparse.ArgumentParser(prog="pkdns-cli")
    parser.add_argument("-V", "--version", action="version", version=f"pkdns-cli {VERSION}")
    commands = parser.add_subparsers(dest="command")

    publish = commands.add_parser("publish", help="Publish pkarr dns records.")
    publish.add_argument("seed", nargs="?", default="./seed.txt", help="File path to the seed file.")
    publish.add_argument(
        "zonefile", nargs="?", default="./pkarr.zone", help="File path to the dns zone file."
    )
    publish.set_defaults(handler=_cmd_publish)

    resolve = commands.add_parser("resolve", help="Resolve a public key domain on the DHT.")
    resolve.add_argument("pubkey", nargs="?", help="Public Key Domain")
    resolve.set_defaults(handler=_cmd_resolve, subparser=resolve)

    generate = commands.add_parser("generate", help="Generate a new seed")
    generate.set_defaults(handler=_cmd_generate)

    publickey = commands.add_parser("publickey", help="Derive the public key from the seed.")
    publickey.add_argument(
        "seed", nargs="?", default="./seed.txt", help="File path to the pkarr seed file."
    )
    publickey.set_defaults(handler=_cmd_publickey)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line tool and return its exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help(sys.stderr)
        return 2
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())