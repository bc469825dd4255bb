"""Adding and removing a top level domain on public key domain queries and replies."""

from __future__ import annotations

from dataclasses import dataclass

import dns.message
import dns.name
import dns.rrset

from .keys import is_valid_public_key


def _as_name(name: dns.name.Name | str) -> dns.name.Name:
    if isinstance(name, dns.name.Name):
        return name
    return dns.name.from_text(name)


def _labels(name: dns.name.Name | str) -> list[str]:
    return [label.decode("utf-8", errors="replace") for label in _as_name(name).labels if label]


@dataclass(frozen=True)
class TopLevelDomain:
    """A top level domain such as `key` that wraps public key domains."""

    label: str

    def question_ends_with_pubkey_tld(self, message: dns.message.Message) -> bool:
        """Whether the first question ends with a public key followed by this tld."""
        if not message.question:
            return False
        return self.name_ends_with_pubkey_tld(message.question[0].name)

    def remove(self, message: dns.message.Message) -> None:
        """Strip this tld from the first question, which becomes the only question."""
        if not message.question:
            raise ValueError("No question in query.")
        question = message.question[0]
        labels = [label for label in question.name.labels if label]
        if not labels:
            raise ValueError("Question labels with no domain.")
        question_tld = labels[-1].decode("utf-8", errors="replace")
        if question_tld != self.label:
            raise ValueError(
                f"Question tld {question_tld} does not match the given tld .{self.label}"
            )
        new_name = dns.name.Name([*labels[:-1], b""])
        new_question = dns.rrset.RRset(new_name, question.rdclass, question.rdtype)
        message.question = [new_question]

    def name_ends_with_pubkey_tld(self, name: dns.name.Name | str) -> bool:
        """Whether the name ends with a public key label followed by this tld."""
        labels = _labels(name)
        if len(labels) < 2:
            return False
        if labels[-1] != self.label:
            return False
        return is_valid_public_key(labels[-2])

    def name_ends_with_pubkey(self, name: dns.name.Name | str) -> bool:
        """Whether the last label of the name is a public key."""
        labels = _labels(name)
        if not labels:
            return False
        return is_valid_public_key(labels[-1])

    def _with_tld(self, name: dns.name.Name) -> dns.name.Name:
        relative = dns.name.Name([label for label in name.labels if label])
        return relative.concatenate(dns.name.from_text(self.label))

    def add(self, message: dns.message.Message) -> None:
        """Append this tld to questions and answers whose names end in a public key."""
        new_questions = []
        for question in message.question:
            if not self.name_ends_with_pubkey(question.name):
                new_questions.append(question)
                continue
            new_questions.append(
                dns.rrset.RRset(self._with_tld(question.name), question.rdclass, question.rdtype)
            )
        message.question = new_questions

        new_answers = []
        for answer in message.answer:
            if not self.name_ends_with_pubkey(answer.name):
                new_answers.append(answer)
                continue
            renamed = dns.rrset.RRset(self._with_tld(answer.name), answer.rdclass, answer.rdtype)
            for rdata in answer:
                renamed.add(rdata, answer.ttl)
            new_answers.append(renamed)
        message.answer = new_answers