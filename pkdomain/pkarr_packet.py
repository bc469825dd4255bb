"""DNS packets holding the records of a public key domain."""

from __future__ import annotations

import datetime as _dt
from collections.abc import Iterable
from dataclasses import dataclass

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.rdatatype
import dns.rrset


def _reply_wire(rrsets: Iterable[dns.rrset.RRset]) -> bytes:
    message = dns.message.Message(id=0)
    message.flags |= dns.flags.QR
    message.answer.extend(rrsets)
    return message.to_wire()


def _parse(data: bytes) -> dns.message.Message:
    try:
        return dns.message.from_wire(data)
    except dns.exception.DNSException as exc:
        raise ValueError(f"invalid dns packet. {exc}") from exc


def txt_attributes(strings: Iterable[str]) -> dict[str, str | None]:
    """Split TXT strings into key/value attributes; a string without `=` has no value."""
    attributes: dict[str, str | None] = {}
    for item in strings:
        key, sep, value = item.partition("=")
        attributes[key] = value if sep else None
    return attributes


def nts_to_datetime(timestamp: int) -> _dt.datetime:
    """Turn a microsecond timestamp into a UTC datetime with whole seconds."""
    return _dt.datetime.fromtimestamp(timestamp // 1_000_000, tz=_dt.timezone.utc)


@dataclass
class PkarrRecord:
    """A single resource record stored as a one-answer DNS packet."""

    data: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> PkarrRecord:
        message = _parse(data)
        if sum(len(rrset) for rrset in message.answer) != 1:
            raise ValueError("packet data must contain 1 answer.")
        return cls(bytes(data))

    @classmethod
    def from_resource_record(cls, rrset: dns.rrset.RRset) -> PkarrRecord:
        if len(rrset) != 1:
            raise ValueError("resource record set must contain exactly 1 record.")
        return cls(_reply_wire([rrset]))

    def resource_record(self) -> dns.rrset.RRset:
        return _parse(self.data).answer[0]

    def pubkey(self) -> str:
        labels = [label for label in self.resource_record().name.labels if label]
        return labels[-1].decode()

    def name(self) -> str:
        origin = dns.name.from_text(self.pubkey())
        name = self.resource_record().name
        if not name.is_subdomain(origin):
            return name.to_text(omit_final_dot=True)
        relative = name.relativize(origin)
        if relative == dns.name.empty:
            return "@"
        return relative.to_text(omit_final_dot=True)

    def ttl(self) -> int:
        return self.resource_record().ttl

    def data_as_strings(self) -> tuple[str, str]:
        """Record type and a readable form of its data."""
        rdata = next(iter(self.resource_record()))
        rdtype = rdata.rdtype
        if rdtype == dns.rdatatype.A:
            return "A", rdata.address
        if rdtype == dns.rdatatype.AAAA:
            return "AAAA", rdata.address
        if rdtype == dns.rdatatype.CNAME:
            return "CNAME", rdata.target.to_text(omit_final_dot=True)
        if rdtype == dns.rdatatype.MX:
            return "MX", f"{rdata.preference} - {rdata.exchange.to_text(omit_final_dot=True)}"
        if rdtype == dns.rdatatype.TXT:
            strings = (s.decode("utf-8", errors="replace") for s in rdata.strings)
            text = ", ".join(
                f"{key}={value}" if value is not None else f"{key}="
                for key, value in txt_attributes(strings).items()
            )
            return "TXT", text
        if rdtype == dns.rdatatype.NS:
            return "NS", rdata.target.to_text(omit_final_dot=True)
        return "Unknown", "Unknown"

    def __str__(self) -> str:
        record_type, data = self.data_as_strings()
        return f"{self.name():<20} {self.ttl():<7} {record_type:<6} {data:<25}"


@dataclass
class PkarrPacket:
    """A full DNS reply packet; all data lives in the answers."""

    data: bytes

    @classmethod
    def empty(cls) -> PkarrPacket:
        return cls(_reply_wire([]))

    def parsed(self) -> dns.message.Message:
        return _parse(self.data)

    def to_records(self) -> list[PkarrRecord]:
        records = []
        for rrset in self.parsed().answer:
            for rdata in rrset:
                single = dns.rrset.RRset(rrset.name, rrset.rdclass, rrset.rdtype)
                single.add(rdata, rrset.ttl)
                records.append(PkarrRecord.from_resource_record(single))
        return records

    def answers_len(self) -> int:
        return sum(len(rrset) for rrset in self.parsed().answer)

    def is_empty(self) -> bool:
        return self.answers_len() == 0

    def __str__(self) -> str:
        records = self.to_records()
        if not records:
            return "Packet is empty.\n"
        lines = [f"Packet {records[0].pubkey()}", "Name TTL Type Data"]
        lines.extend(str(record) for record in records)
        return "\n".join(lines) + "\n"