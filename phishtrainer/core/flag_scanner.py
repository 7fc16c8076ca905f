from typing import List, Optional, Sequence

from phishtrainer.core.rules import RULES, EmailContent, Rule
from phishtrainer.schemas import Flag


class FlagScanner:
    def __init__(self, rules: Sequence[Rule] = RULES):
        """
        Evaluate an ordered rule table against one email.

        Args:
            rules: Rule table; evaluation order is the reported detection order
        """
        keys = [rule.key for rule in rules]
        if len(keys) != len(set(keys)):
            raise ValueError("Rule keys must be unique")
        self.rules = tuple(rules)

    def scan(self, subject: str, body_markup: str,
             sender_email: Optional[str] = None,
             sender_name: Optional[str] = None) -> List[Flag]:
        """Return triggered flags in detection order, at most one per rule"""
        if not isinstance(subject, str) or not isinstance(body_markup, str):
            raise TypeError("subject and body_markup must be strings")

        email = EmailContent(
            subject=subject,
            body=body_markup,
            sender_email=(sender_email or '').strip(),
            sender_name=(sender_name or '').strip(),
        )

        flags = []
        for rule in self.rules:
            detail = rule.predicate(email)
            if detail is not None:
                flags.append(Flag(key=rule.key, label=rule.label, detail=detail, weight=rule.weight))
        return flags
