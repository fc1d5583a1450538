"""
Response encoder for device endpoints.

Renders operation results in the legacy text/CSV layouts device firmware
parses, and turns protocol errors into responses through a per-endpoint
ResponsePolicy. Devices never receive JSON.
"""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from flask import Response
from dairylink.errors import (
    DecodeError, EntityNotFound, MalformedCommand, NotSet, TenantNotFound
)
from dairylink.utils.clock import local_now

# Policy modes
STATUS = 'status'          # real HTTP status codes per error class
SENTINEL = 'sentinel'      # HTTP 200 with a fixed body for every failure
NEVER_FAIL = 'never-fail'  # HTTP 200 with a timestamped status line, always

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type',
}

ROSTER_CSV_HEADER = 'RF-ID,ID,NAME,MOBILE,SMS,BONUS'
RATE_CHART_CSV_HEADER = 'Clr,Fat,Snf,Rate'
RATE_CHART_TRAILER = 'Price chart not found.'

TWO_PLACES = Decimal('0.01')


def quote(body):
    return f'"{body}"'


def text_response(body, status=200, headers=None):
    response = Response(body, status=status, content_type='text/plain; charset=utf-8')
    response.headers.update(CORS_HEADERS)
    if headers:
        response.headers.update(headers)
    return response


def csv_response(body, filename, no_cache=False):
    response = Response(body, status=200, content_type='text/csv; charset=utf-8')
    response.headers.update(CORS_HEADERS)
    response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
    if no_cache:
        response.headers['Cache-Control'] = 'no-cache'
    return response


def preflight_response():
    """Always-200 answer to OPTIONS"""
    return text_response('', status=200)


def format_device_timestamp(value):
    """Render a datetime as ``DD-MM-YYYY hh:mm:ss AM/PM``"""
    return value.strftime('%d-%m-%Y %I:%M:%S %p')


def parse_device_timestamp(marker):
    """Parse a ``D2025-11-12_10:59:09`` date marker, or None if unparsable"""
    if not marker or not marker.startswith('D'):
        return None
    try:
        return datetime.strptime(marker[1:], '%Y-%m-%d_%H:%M:%S')
    except ValueError:
        return None


def _to_decimal(value):
    if value is None:
        return Decimal('0')
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal('0')


def format_decimal(value):
    """Two decimal places; None renders as 0.00"""
    return str(_to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def format_integer(value):
    """Integer rounding (half up); None renders as 0"""
    return str(_to_decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _csv_cell(value):
    text = str(value)
    if ',' in text or '"' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def format_roster_page(farmers):
    """Paginated roster: ``id|rfid|name|phone|sms|bonus`` records joined by ``||``"""
    records = []
    for farmer in farmers:
        records.append('|'.join([
            str(farmer['farmer_id'] or '0'),
            str(farmer['rf_id'] or '0'),
            str(farmer['name'] or '0'),
            str(farmer['phone'] or '0'),
            str(farmer['sms_enabled'] or 'OFF'),
            format_decimal(farmer['bonus']),
        ]))
    return quote('||'.join(records))


def format_roster_csv(farmers):
    """Full roster export

    Row cells follow the order the firmware has always received (farmer ID
    first, then RF-ID) even though the header names RF-ID first.
    """
    lines = [ROSTER_CSV_HEADER]
    for farmer in farmers:
        lines.append(','.join([
            _csv_cell(farmer['farmer_id'] or '0'),
            str(farmer['rf_id'] or '0'),
            _csv_cell(farmer['name'] or '0'),
            _csv_cell(farmer['phone'] or '0'),
            str(farmer['sms_enabled'] or 'OFF'),
            format_integer(farmer['bonus']),
        ]))
    return '\n'.join(lines) + '\n'


def format_correction(correction):
    """``DD-MM-YYYY hh:mm:ss AM/PM||1|fat|snf|clr|temp|water|protein||2|...||3|...``"""
    parts = [format_device_timestamp(correction['created_at'])]
    for channel in (1, 2, 3):
        values = [
            format_decimal(correction[f'channel{channel}_{name}'])
            for name in ('fat', 'snf', 'clr', 'temp', 'water', 'protein')
        ]
        parts.append('|'.join([str(channel)] + values))
    return quote('||'.join(parts))


def format_credential(marker, password):
    return quote(f'{marker}|{password}')


def format_rate_chart_csv(rows):
    """Price table CSV; the legacy trailer line is always appended"""
    lines = [RATE_CHART_CSV_HEADER]
    for row in rows:
        lines.append(','.join([
            format_decimal(row['clr']),
            format_decimal(row['fat']),
            format_decimal(row['snf']),
            format_decimal(row['rate']),
        ]))
    lines.append(RATE_CHART_TRAILER)
    return '\n'.join(lines)


def format_handshake(now, status='No update'):
    return f'{format_device_timestamp(now)}|{status}'


class ResponsePolicy:
    """How one endpoint reports failures to a device

    Args:
        name: Endpoint name used in log lines
        mode: STATUS, SENTINEL or NEVER_FAIL
        sentinel: Body sent for every failure (SENTINEL mode)
        status_bodies: List of (exception class, status, body) checked in
            order (STATUS mode); unmatched errors become 500
    """

    def __init__(self, name, mode, sentinel=None, status_bodies=None):
        self.name = name
        self.mode = mode
        self.sentinel = sentinel
        self.status_bodies = status_bodies or []

    def error_response(self, error, now=None):
        """Build the device-facing response for an error"""
        if self.mode == SENTINEL:
            return text_response(quote(self.sentinel))

        if self.mode == NEVER_FAIL:
            return text_response(format_handshake(now or local_now(), 'Error'),
                                 headers={'Cache-Control': 'no-cache'})

        for error_class, status, body in self.status_bodies:
            if isinstance(error, error_class):
                return text_response(body, status=status)
        return text_response('Internal server error', status=500)


ROSTER_FORMAT_ERROR = (
    'Invalid InputString format. Expected: societyId|machineType|version|machineId '
    'or societyId|machineType|version|machineId|pageNumber'
)


class RosterResponsePolicy(ResponsePolicy):
    """Status policy whose MalformedCommand body depends on the bad field"""

    def error_response(self, error, now=None):
        if isinstance(error, MalformedCommand):
            if error.field == 'machine':
                return text_response(quote('Failed to download farmer. Invalid machine details.'), status=400)
            if error.field == 'society':
                return text_response(quote('Failed to download farmer. Invalid token.'), status=400)
            return text_response(ROSTER_FORMAT_ERROR, status=400)
        return super().error_response(error, now)


ROSTER_POLICY = RosterResponsePolicy(
    'FarmerInfo',
    STATUS,
    status_bodies=[
        (DecodeError, 400, 'InputString parameter is required'),
        (TenantNotFound, 404, quote('Invalid DB Key')),
        (EntityNotFound, 400, quote('Failed to download farmer. Invalid token.')),
        (NotSet, 200, quote('Farmer info not found.')),
    ]
)

CLOUD_TEST_POLICY = ResponsePolicy(
    'CloudTest',
    STATUS,
    status_bodies=[
        (TenantNotFound, 404, quote('Invalid DB Key')),
    ]
)

CORRECTION_READ_POLICY = ResponsePolicy('GetLatestMachineCorrection', SENTINEL, sentinel='Machine correction not found.')
CORRECTION_WRITE_POLICY = ResponsePolicy('SaveMachineCorrectionFromMachine', SENTINEL, sentinel='Machine correction save failed.')
CORRECTION_INVALIDATE_POLICY = ResponsePolicy('SaveMachineCorrectionUpdationHistory', SENTINEL, sentinel='Machine correction not found.')
CREDENTIAL_READ_POLICY = ResponsePolicy('GetLatestMachinePassword', SENTINEL, sentinel='Machine password not found.')
CREDENTIAL_ACK_POLICY = ResponsePolicy('UpdateMachinePasswordStatus', SENTINEL, sentinel='Machine password not found.')
RATE_CHART_POLICY = ResponsePolicy('DownloadRateChart', SENTINEL, sentinel='Price chart not found.')
HANDSHAKE_POLICY = ResponsePolicy('MachineNewupdate', NEVER_FAIL)
