"""
Field normalizer for decoded device commands.

Turns the pipe-delimited fields of a DecodedCommand into typed values for one
device operation: society and machine candidate sets, channel, page number,
password type and correction values. Every operation names the machine-id
grammar it uses; nothing here guesses a grammar from the input.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple
from dairylink.errors import MalformedCommand

# Machine-id grammars
NUMERIC_FIRST = 'numeric-first'
LETTER_INFIX = 'letter-infix'

# Device operations
ROSTER = 'roster'
CORRECTION_READ = 'correction-read'
CORRECTION_WRITE = 'correction-write'
CORRECTION_INVALIDATE = 'correction-invalidate'
CREDENTIAL_READ = 'credential-read'
CREDENTIAL_ACK = 'credential-ack'
RATE_CHART = 'rate-chart'
FIRMWARE_HANDSHAKE = 'firmware-handshake'

MACHINE_GRAMMARS = {
    ROSTER: NUMERIC_FIRST,
    CORRECTION_READ: LETTER_INFIX,
    CORRECTION_WRITE: LETTER_INFIX,
    CORRECTION_INVALIDATE: LETTER_INFIX,
    CREDENTIAL_READ: NUMERIC_FIRST,
    CREDENTIAL_ACK: NUMERIC_FIRST,
    RATE_CHART: LETTER_INFIX,
    FIRMWARE_HANDSHAKE: LETTER_INFIX,
}

CHANNEL_NUMBERS = {'1': 'COW', '2': 'BUF', '3': 'MIX'}
RATE_CHART_CHANNELS = ('COW', 'BUF', 'MIX')
CORRECTION_VALUE_NAMES = ('fat', 'snf', 'clr', 'temp', 'water', 'protein')

ALPHANUMERIC = re.compile(r'^[A-Za-z0-9]+$')
PAGE_PREFIX = re.compile(r'^C0*')
LEADING_DIGITS = re.compile(r'^\d+')

ZERO = Decimal('0.00')


@dataclass(frozen=True)
class SocietyReference:
    """Spellings of a society reference, in lookup priority order"""

    raw: str
    spellings: Tuple[str, ...]
    row_id: Optional[int] = None


@dataclass(frozen=True)
class MachineReference:
    """Candidate set for one machine reference

    ``row_id`` is matched exactly against machines.id, ``spellings`` against
    machines.machine_id (case-insensitive).
    """

    raw: str
    canonical: str
    spellings: Tuple[str, ...] = ()
    row_id: Optional[int] = None


@dataclass
class NormalizedCommand:
    """Typed fields of one device command"""

    operation: str
    society: SocietyReference
    machine: MachineReference
    machine_type: str = ''
    version: str = ''
    page: Optional[int] = None
    password_type: Optional[str] = None
    channel: Optional[str] = None
    values: Dict[str, Decimal] = field(default_factory=dict)
    date_marker: Optional[str] = None

    @property
    def is_paginated(self):
        return self.page is not None


def _is_positive_int(value):
    return value.isascii() and value.isdigit() and int(value) > 0


def _dedupe(values):
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def parse_society_id(raw):
    """Build the society candidate set

    ``S-12`` and ``12`` are both tried as strings (literal spelling first),
    then 12 as a row id when the suffix is all digits.

    Raises:
        MalformedCommand: empty society field
    """
    value = (raw or '').strip()
    if not value:
        raise MalformedCommand('Society ID cannot be empty', field='society')

    if value.startswith('S-'):
        suffix = value[2:]
        alternate = suffix
    else:
        suffix = value
        alternate = f"S-{value}"

    row_id = int(suffix) if _is_positive_int(suffix) else None
    return SocietyReference(raw=raw, spellings=_dedupe([value, alternate]), row_id=row_id)


def _letter_canonical(remainder):
    """Canonical letter-infix form of a remainder, or None if it has none

    ``m00102`` -> ``m102``, ``00001`` -> ``1``. All-zero numbers have no
    canonical form.
    """
    stripped = remainder.lstrip('0') or '0'
    if stripped[0].isalpha():
        rest = stripped[1:]
        if rest.isdigit():
            rest = rest.lstrip('0') or '0'
        return stripped[0].lower() + rest
    if not _is_positive_int(stripped):
        return None
    return str(int(stripped))


def _parse_numeric_first(raw, remainder):
    if _is_positive_int(remainder):
        return MachineReference(raw=raw, canonical=str(int(remainder)), row_id=int(remainder))
    # Devices that speak letter-infix elsewhere send the same ID here too
    spellings = _dedupe([remainder, remainder.lstrip('0'), _letter_canonical(remainder)])
    return MachineReference(raw=raw, canonical=spellings[0], spellings=spellings)


def _parse_letter_infix(raw, remainder):
    canonical = _letter_canonical(remainder)
    if canonical is None:
        raise MalformedCommand(f'Invalid machine ID: "{raw}"', field='machine')

    # Numeric canonicals are machine_id spellings, never row IDs
    spellings = _dedupe([canonical, remainder, remainder.lstrip('0'), raw])
    return MachineReference(raw=raw, canonical=canonical, spellings=spellings)


def parse_machine_id(raw, grammar):
    """Build the machine candidate set for one grammar

    Args:
        raw: Machine field as sent, e.g. ``M00001`` or ``Mm00102``
        grammar: NUMERIC_FIRST or LETTER_INFIX

    Returns:
        MachineReference

    Raises:
        MalformedCommand: missing ``M`` prefix or non-alphanumeric remainder
    """
    value = (raw or '').strip()
    if not value.startswith('M') or len(value) < 2:
        raise MalformedCommand(f'Invalid machine ID format: "{raw}"', field='machine')

    remainder = value[1:]
    if not ALPHANUMERIC.match(remainder):
        raise MalformedCommand(f'Invalid machine ID format: "{raw}"', field='machine')

    if grammar == NUMERIC_FIRST:
        return _parse_numeric_first(value, remainder)
    if grammar == LETTER_INFIX:
        return _parse_letter_infix(value, remainder)
    raise ValueError(f"Unknown machine-id grammar: {grammar}")


def parse_signed_decimal(raw):
    """Parse a correction value such as ``F+0.16`` or ``S-1.00``

    The first character is a field tag; ``+`` signs are dropped. Empty or
    unparsable values become 0.00 instead of failing the command.
    """
    value = (raw or '')[1:].replace('+', '').strip()
    try:
        parsed = Decimal(value)
        if not parsed.is_finite():
            return ZERO
        return parsed.quantize(Decimal('0.01'))
    except InvalidOperation:
        return ZERO


def parse_channel_number(raw):
    """Map a channel number (1, 2, 3) to COW/BUF/MIX"""
    channel = CHANNEL_NUMBERS.get((raw or '').strip())
    if channel is None:
        raise MalformedCommand(f'Invalid channel number: "{raw}"', field='channel')
    return channel


def parse_page_number(raw):
    """Parse a ``C#####`` page field, clamped to >= 1"""
    match = LEADING_DIGITS.match(PAGE_PREFIX.sub('', (raw or '').strip()))
    page = int(match.group(0)) if match else 1
    return max(page, 1)


def _require_count(command, expected):
    if command.field_count != expected:
        raise MalformedCommand(
            f'Expected {expected} fields, got {command.field_count}', field='count'
        )


def normalize(command, operation):
    """Normalize a decoded command for one operation

    Args:
        command: DecodedCommand
        operation: One of the operation constants in this module

    Returns:
        NormalizedCommand

    Raises:
        MalformedCommand: wrong field count or an ungrammatical field
    """
    grammar = MACHINE_GRAMMARS.get(operation)
    if grammar is None:
        raise ValueError(f"Unknown device operation: {operation}")

    fields = command.fields
    count = command.field_count

    if operation == ROSTER:
        if count not in (4, 5):
            raise MalformedCommand(f'Expected 4 or 5 fields, got {count}', field='count')
    elif operation == CORRECTION_WRITE:
        if count < 13:
            raise MalformedCommand(f'Expected at least 13 fields, got {count}', field='count')
    elif operation in (CORRECTION_READ, CORRECTION_INVALIDATE):
        _require_count(command, 4)
    else:
        _require_count(command, 5)

    society = parse_society_id(fields[0])
    machine = parse_machine_id(fields[3], grammar)
    normalized = NormalizedCommand(
        operation=operation,
        society=society,
        machine=machine,
        machine_type=fields[1],
        version=fields[2]
    )

    if operation == ROSTER and count == 5:
        normalized.page = parse_page_number(fields[4])

    elif operation == CREDENTIAL_READ:
        password_type = fields[4].strip()
        if not password_type or password_type[0] not in ('U', 'S'):
            raise MalformedCommand(f'Invalid password type: "{fields[4]}"', field='password_type')
        normalized.password_type = password_type[0]

    elif operation == CREDENTIAL_ACK:
        password_type = fields[4].strip()
        if password_type not in ('U', 'S'):
            raise MalformedCommand(f'Invalid password type: "{fields[4]}"', field='password_type')
        normalized.password_type = password_type

    elif operation == RATE_CHART:
        channel = fields[4].strip().upper()
        if channel not in RATE_CHART_CHANNELS:
            raise MalformedCommand(f'Invalid channel: "{fields[4]}"', field='channel')
        normalized.channel = channel

    elif operation == CORRECTION_WRITE:
        normalized.channel = parse_channel_number(fields[5])
        normalized.values = {
            name: parse_signed_decimal(raw)
            for name, raw in zip(CORRECTION_VALUE_NAMES, fields[6:12])
        }
        normalized.date_marker = fields[12]

    elif operation == FIRMWARE_HANDSHAKE:
        normalized.date_marker = fields[4]

    return normalized
