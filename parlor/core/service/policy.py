import re
from dataclasses import dataclass

from parlor.core.errors import InvalidAccountName, InvalidPattern


@dataclass(frozen=True)
class AccountPolicy:
    """
    Naming and matching rules shared by every AccountDirectory
    implementation.

    Account names are case-sensitive, between 1 and `max_name_length`
    characters, and may not contain whitespace or control characters.
    List patterns are Python regular expressions that must match the
    whole account name, so ".*" lists every account.
    """
    max_name_length: int = 64

    def validate(self, name: str) -> None:
        if not name:
            raise InvalidAccountName(name, "name is empty")

        if len(name) > self.max_name_length:
            raise InvalidAccountName(
                name, f"name is longer than {self.max_name_length} characters"
            )

        if any(ch.isspace() or not ch.isprintable() for ch in name):
            raise InvalidAccountName(
                name, "name contains whitespace or control characters"
            )

    @staticmethod
    def compile(pattern: str) -> re.Pattern[str]:
        try:
            return re.compile(pattern)
        except re.error as ex:
            raise InvalidPattern(pattern, str(ex)) from ex

    def matches(self, compiled: re.Pattern[str], name: str) -> bool:
        return compiled.fullmatch(name) is not None
