"""Parsed DNS packets that keep their raw bytes alongside the decoded message."""

from __future__ import annotations

import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.rcode
import dns.rdataclass
import dns.rdatatype
import dns.rrset


def _parse(raw_bytes: bytes) -> dns.message.Message:
    try:
        return dns.message.from_wire(raw_bytes)
    except (dns.exception.DNSException, ValueError) as exc:
        raise ValueError(f"Dns packet parse error: {exc}") from exc


class ParsedPacket:
    """A DNS packet held both as raw bytes and as a parsed message."""

    __slots__ = ("raw_bytes", "parsed")

    def __init__(self, raw_bytes: bytes) -> None:
        self.raw_bytes = bytes(raw_bytes)
        self.parsed = _parse(self.raw_bytes)

    @property
    def id(self) -> int:
        return self.parsed.id

    def is_reply(self) -> bool:
        """Whether this packet is a response."""
        return bool(self.parsed.flags & dns.flags.QR)

    def is_query(self) -> bool:
        """Whether this packet is a query."""
        return not self.is_reply()

    def _reply_with_rcode(self, rcode: dns.rcode.Rcode) -> bytes:
        reply = dns.message.Message(id=self.id)
        reply.flags |= dns.flags.QR
        reply.set_rcode(rcode)
        return reply.to_wire()

    def create_refused_reply(self) -> bytes:
        """An empty REFUSED reply carrying this packet's id."""
        return self._reply_with_rcode(dns.rcode.REFUSED)

    def create_server_fail_reply(self) -> bytes:
        """An empty SERVFAIL reply carrying this packet's id."""
        return self._reply_with_rcode(dns.rcode.SERVFAIL)

    def __bytes__(self) -> bytes:
        return self.raw_bytes

    def __repr__(self) -> str:
        return f"ParsedPacket(id={self.id}, size={len(self.raw_bytes)})"


class ParseQueryError(ValueError):
    """Raised when bytes are not a valid DNS query."""


class ParsedQuery:
    """A validated DNS query with at least one question and a non-empty name."""

    __slots__ = ("packet",)

    def __init__(self, raw_bytes: bytes) -> None:
        try:
            packet = ParsedPacket(raw_bytes)
        except ValueError as exc:
            raise ParseQueryError(str(exc)) from exc
        self.packet = packet
        self._validate()

    @classmethod
    def from_packet(cls, packet: ParsedPacket) -> ParsedQuery:
        """Validate an already parsed packet as a query."""
        query = cls.__new__(cls)
        query.packet = packet
        query._validate()
        return query

    def _validate(self) -> None:
        if not self.packet.is_query():
            raise ParseQueryError("Query validation error: Packet is not a query.")
        if not self.packet.parsed.question:
            raise ParseQueryError("Query validation error: Packet without a question.")
        if self.question().name == dns.name.root:
            raise ParseQueryError("Query validation error: Question with an empty qname.")

    def question(self) -> dns.rrset.RRset:
        """The first question of the query."""
        return self.packet.parsed.question[0]

    def is_any_type(self) -> bool:
        """Whether the query asks for ANY, often used for amplification attacks."""
        return self.question().rdtype == dns.rdatatype.ANY

    def is_recursion_desired(self) -> bool:
        return bool(self.packet.parsed.flags & dns.flags.RD)

    def __str__(self) -> str:
        question = self.question()
        rd = "true" if self.is_recursion_desired() else "false"
        return (
            f"{question.name.to_text(omit_final_dot=True)} "
            f"{dns.rdatatype.to_text(question.rdtype)} "
            f"{dns.rdataclass.to_text(question.rdclass)} "
            f"id={self.packet.id} rd={rd}"
        )