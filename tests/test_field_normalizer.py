from decimal import Decimal
import pytest
from dairylink.errors import MalformedCommand
from dairylink.utils.field_normalizer import (
    CORRECTION_READ, CORRECTION_WRITE, CREDENTIAL_ACK, CREDENTIAL_READ,
    FIRMWARE_HANDSHAKE, LETTER_INFIX, NUMERIC_FIRST, RATE_CHART, ROSTER,
    normalize, parse_channel_number, parse_machine_id, parse_page_number,
    parse_signed_decimal, parse_society_id
)
from dairylink.utils.payload_decoder import DecodedCommand


def command(raw):
    return DecodedCommand.from_string(raw)


class TestSociety:
    def test_prefixed(self):
        reference = parse_society_id('S-12')
        assert reference.spellings == ('S-12', '12')
        assert reference.row_id == 12

    def test_bare_number(self):
        reference = parse_society_id('12')
        assert reference.spellings == ('12', 'S-12')
        assert reference.row_id == 12

    def test_non_numeric(self):
        reference = parse_society_id('ANAND')
        assert reference.spellings == ('ANAND', 'S-ANAND')
        assert reference.row_id is None

    def test_empty(self):
        with pytest.raises(MalformedCommand):
            parse_society_id('  ')


class TestLetterInfix:
    @pytest.mark.parametrize('raw, canonical, row_id', [
        ('Mm00001', 'm1', None),
        ('Mm00102', 'm102', None),
        ('Ma00005', 'a5', None),
        ('MM00007', 'm7', None),
        ('M00001', '1', None),
        ('M0000df', 'df', None),
    ])
    def test_canonical(self, raw, canonical, row_id):
        reference = parse_machine_id(raw, LETTER_INFIX)
        assert reference.canonical == canonical
        assert reference.row_id == row_id
        assert canonical in reference.spellings

    @pytest.mark.parametrize('raw', ['Mm00001', 'M00001', 'Ma00005', 'M0000df', 'MDF12', 'MAb0C', 'Mm0', 'M10'])
    def test_idempotent(self, raw):
        canonical = parse_machine_id(raw, LETTER_INFIX).canonical
        assert parse_machine_id(f'M{canonical}', LETTER_INFIX).canonical == canonical

    def test_zero_is_rejected(self):
        with pytest.raises(MalformedCommand):
            parse_machine_id('M0000', LETTER_INFIX)


class TestNumericFirst:
    def test_positive_integer_is_row_id(self):
        reference = parse_machine_id('M00000001', NUMERIC_FIRST)
        assert reference.row_id == 1
        assert reference.spellings == ()

    def test_alphanumeric_keeps_spellings(self):
        reference = parse_machine_id('M000df', NUMERIC_FIRST)
        assert reference.row_id is None
        assert reference.spellings == ('000df', 'df')

    def test_letter_remainder_adds_letter_infix_spelling(self):
        reference = parse_machine_id('Mm00102', NUMERIC_FIRST)
        assert reference.row_id is None
        assert reference.spellings == ('m00102', 'm102')


@pytest.mark.parametrize('raw', ['', 'M', 'X123', '123', 'M12-3', 'M 12'])
@pytest.mark.parametrize('grammar', [NUMERIC_FIRST, LETTER_INFIX])
def test_machine_rejects_malformed(raw, grammar):
    with pytest.raises(MalformedCommand):
        parse_machine_id(raw, grammar)


@pytest.mark.parametrize('raw, expected', [
    ('F+0.16', Decimal('0.16')),
    ('S-1.00', Decimal('-1.00')),
    ('C+0.00', Decimal('0.00')),
    ('W+00', Decimal('0.00')),
    ('P', Decimal('0.00')),
    ('Tabc', Decimal('0.00')),
    ('', Decimal('0.00')),
])
def test_signed_decimal(raw, expected):
    assert parse_signed_decimal(raw) == expected


def test_channel_numbers():
    assert [parse_channel_number(n) for n in ('1', '2', '3')] == ['COW', 'BUF', 'MIX']
    with pytest.raises(MalformedCommand):
        parse_channel_number('4')


@pytest.mark.parametrize('raw, page', [
    ('C00001', 1),
    ('C00002', 2),
    ('C00010', 10),
    ('C00000', 1),
    ('Cabc', 1),
    ('3', 3),
])
def test_page_number(raw, page):
    assert parse_page_number(raw) == page


class TestNormalize:
    def test_paginated_roster(self):
        normalized = normalize(command('333|ECOD|LE2.00|M00000001|C00002'), ROSTER)
        assert normalized.page == 2
        assert normalized.machine.row_id == 1
        assert normalized.society.spellings == ('333', 'S-333')

    def test_csv_roster(self):
        normalized = normalize(command('333|ECOD|LE2.00|M00000001'), ROSTER)
        assert normalized.page is None
        assert not normalized.is_paginated

    def test_roster_field_count(self):
        with pytest.raises(MalformedCommand) as excinfo:
            normalize(command('333|ECOD|LE2.00'), ROSTER)
        assert excinfo.value.field == 'count'

    def test_rate_chart(self):
        normalized = normalize(command('S-101|LSE-X|LE3.36|Mm00102|cow'), RATE_CHART)
        assert normalized.channel == 'COW'
        assert normalized.machine.canonical == 'm102'
        assert normalized.society.spellings[0] == 'S-101'

    def test_rate_chart_rejects_unknown_channel(self):
        with pytest.raises(MalformedCommand):
            normalize(command('S-101|LSE-X|LE3.36|Mm00102|GOAT'), RATE_CHART)

    def test_correction_write(self):
        raw = 'S-101|LSE-X|LE3.36|Mm00102||2|F+0.16|S-1.00|C+0.00|T+0.00|W+00|P+0.00|D2025-11-12_10:59:09'
        normalized = normalize(command(raw), CORRECTION_WRITE)
        assert normalized.channel == 'BUF'
        assert normalized.values == {
            'fat': Decimal('0.16'),
            'snf': Decimal('-1.00'),
            'clr': Decimal('0.00'),
            'temp': Decimal('0.00'),
            'water': Decimal('0.00'),
            'protein': Decimal('0.00'),
        }
        assert normalized.date_marker == 'D2025-11-12_10:59:09'

    def test_correction_write_needs_thirteen_fields(self):
        with pytest.raises(MalformedCommand):
            normalize(command('S-101|LSE-X|LE3.36|Mm00102||2|F+0.16|S-1.00|C+0.00|T+0.00|W+00|P+0.00'), CORRECTION_WRITE)

    def test_correction_read_needs_four_fields(self):
        with pytest.raises(MalformedCommand):
            normalize(command('S-101|LSE-X|LE3.36|M00001|X'), CORRECTION_READ)

    def test_credential_read_accepts_prefix(self):
        assert normalize(command('S-101|LSE|LE3.36|M00001|User'), CREDENTIAL_READ).password_type == 'U'
        assert normalize(command('S-101|LSE|LE3.36|M00001|S'), CREDENTIAL_READ).password_type == 'S'

    def test_credential_ack_is_exact(self):
        assert normalize(command('S-101|LSE|LE3.36|M00001|S'), CREDENTIAL_ACK).password_type == 'S'
        with pytest.raises(MalformedCommand):
            normalize(command('S-101|LSE|LE3.36|M00001|User'), CREDENTIAL_ACK)

    def test_handshake(self):
        normalized = normalize(command('S-101|LSE|LE3.36|Mm00102|D2025-11-12_10:59:09'), FIRMWARE_HANDSHAKE)
        assert normalized.date_marker == 'D2025-11-12_10:59:09'
        assert normalized.machine.canonical == 'm102'


class TestMachineIdMatchesAcrossEndpoints:
    def test_numeric_id_is_never_a_row_id(self):
        reference = parse_machine_id('M00001', LETTER_INFIX)

        assert reference.row_id is None
        assert reference.spellings == ('1', '00001', 'M00001')

    def test_mixed_case_remainder_keeps_its_tail(self):
        reference = parse_machine_id('MAb0C', LETTER_INFIX)
        assert reference.canonical == 'ab0C'

    @pytest.mark.parametrize('operation', [CORRECTION_READ, CORRECTION_WRITE, CREDENTIAL_READ, RATE_CHART])
    def test_letter_infix_id_yields_canonical_spelling(self, operation):
        raws = {
            CORRECTION_READ: 'S-101|LSE|LE3.36|Mm00102',
            CORRECTION_WRITE: 'S-101|LSE|LE3.36|Mm00102||1|F+0.16|S-1.00|C+0.00|T+0.00|W+00|P+0.00|D2025-11-12_10:59:09',
            CREDENTIAL_READ: 'S-101|LSE|LE3.36|Mm00102|U',
            RATE_CHART: 'S-101|LSE|LE3.36|Mm00102|COW',
        }
        normalized = normalize(command(raws[operation]), operation)

        assert 'm102' in normalized.machine.spellings
