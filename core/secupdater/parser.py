"""Parser for ``yum check-update`` output.

Each package with an update is listed on one line::

    openssl-libs.x86_64        1:1.0.2k-21.el7_9        rhel-7-server-rpms

Everything else (plugin banners, security summaries, obsoleting blocks,
blank lines) is ignored.
"""

from __future__ import annotations

import re

from .models import UpdateRecord

# name.arch, version (optionally epoch-prefixed), repository; nothing after.
PACKAGE_WITH_UPDATE_PATTERN = re.compile(
    r"^([\w\-_]*)\.([\w\-_]+)\s+(\d+[\w.\-_:]+)\s+([\w.\-_]+)\s*$",
    re.ASCII,
)


class ParseError(ValueError):
    """Raised when a matching line cannot be split into its fields."""

    def __init__(self, line: str, fields: list[str]) -> None:
        self.line = line
        self.fields = fields
        super().__init__(f"invalid parsed fields: {fields!r}")


def parse_updates_available(output: bytes | str) -> list[UpdateRecord]:
    """Extract packages with updates from yum output.

    Args:
        output: Combined stdout/stderr of ``yum check-update``.

    Returns:
        Records in input order. Duplicate lines give duplicate records.

    Raises:
        ParseError: If a line matches the pattern but does not split into
            exactly three whitespace separated fields.
    """
    text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else output
    records: list[UpdateRecord] = []

    # Only \n separates lines; other Unicode line breaks stay inside the line.
    for raw in text.split("\n"):
        line = raw.removesuffix("\r")
        if not PACKAGE_WITH_UPDATE_PATTERN.match(line):
            continue

        # Safeguard in case the pattern matches something it should not.
        fields = line.split()
        if len(fields) != 3:
            raise ParseError(line, fields)

        name, _, arch = fields[0].partition(".")
        records.append(UpdateRecord(name=name, arch=arch, version=fields[1], repo=fields[2]))

    return records
