"""Zone files without the SOA entry, turned into a public key domain packet."""

from __future__ import annotations

from dataclasses import dataclass

import dns.exception
import dns.rdatatype
import dns.zonefile

from .pkarr_packet import PkarrPacket, _reply_wire

_SUPPORTED_TYPES = frozenset(
    {
        dns.rdatatype.A,
        dns.rdatatype.AAAA,
        dns.rdatatype.NS,
        dns.rdatatype.TXT,
        dns.rdatatype.MX,
        dns.rdatatype.CNAME,
    }
)


class SimpleZoneError(ValueError):
    """Raised when a simplified zone cannot be read."""


def generate_soa(pubkey: str) -> str:
    """A stand-in SOA header so users need not write one."""
    return (
        f"$ORIGIN {pubkey}.\n"
        "$TTL 300\n"
        "@\tIN\tSOA\t127.0.0.1.\thostmaster.example.com. (\n"
        "\t\t\t2001062501 ; serial\n"
        "\t\t\t21600      ; refresh after 6 hours\n"
        "\t\t\t3600       ; retry after 1 hour\n"
        "\t\t\t604800     ; expire after 1 week\n"
        "\t\t\t300 )    ; minimum TTL\n"
    )


@dataclass
class SimpleZone:
    """A zone read from text, held as a packet of answers."""

    packet: PkarrPacket

    @classmethod
    def read(cls, simplified_zone: str, pubkey: str) -> SimpleZone:
        """Read zone text; the public key is given in z-base-32."""
        text = f"{generate_soa(pubkey)}\n{simplified_zone}\n"
        try:
            rrsets = dns.zonefile.read_rrsets(text, relativize=False)
        except dns.exception.DNSException as exc:
            raise SimpleZoneError(f"Failed to parse zone. {exc}") from exc
        kept = []
        for rrset in rrsets:
            if rrset.rdtype == dns.rdatatype.SOA:
                continue
            if rrset.rdtype not in _SUPPORTED_TYPES:
                raise SimpleZoneError("Not support record type.")
            if rrset.rdtype == dns.rdatatype.TXT:
                for rdata in rrset:
                    for item in rdata.strings:
                        try:
                            item.decode("utf-8")
                        except UnicodeDecodeError as exc:
                            raise SimpleZoneError(f"TXT data is not utf-8. {exc}") from exc
            kept.append(rrset)
        return cls(PkarrPacket(_reply_wire(kept)))