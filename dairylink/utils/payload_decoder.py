"""
Payload decoder for device requests.

Devices send one pipe-delimited command string named ``InputString``, in the
query string for GET and in the body for POST. Firmware in the field gets this
wrong in several ways (stray delimiters before the key, literal CR/LF, escaped
``$0D``/``$0A`` sequences), so extraction falls back through progressively
looser strategies before giving up.
"""
import re
from dataclasses import dataclass, field
from typing import List
from urllib.parse import unquote_plus
from dairylink.errors import DecodeError

PARAM_NAME = 'InputString'

# Literal CR/LF and their escaped textual forms, removed in one pass
CONTROL_ARTIFACTS = re.compile(r'\$0D|\$0A|\r|\n')

# Malformed query such as "?,InputString=..." or "?%2CInputString=..."
RAW_PARAM_PATTERN = re.compile(r'[?&](?:%2C|,)?InputString=([^&]*)', re.IGNORECASE)


@dataclass
class DecodedCommand:
    """Decoded command string split into its pipe-delimited fields"""

    raw: str
    fields: List[str] = field(default_factory=list)

    @property
    def field_count(self):
        return len(self.fields)

    @classmethod
    def from_string(cls, raw):
        return cls(raw=raw, fields=raw.split('|'))


def strip_control_artifacts(value):
    """Remove CR/LF characters and their ``$0D``/``$0A`` escapes"""
    return CONTROL_ARTIFACTS.sub('', value)


def _from_query(req):
    value = req.args.get(PARAM_NAME)
    if value is not None:
        return value

    # Parameter key itself may be mangled, e.g. ",InputString"
    for key, candidate in req.args.items(multi=False):
        if PARAM_NAME.lower() in key.lower():
            return candidate

    raw_query = req.query_string.decode('latin-1') if req.query_string else ''
    for source in (f"?{raw_query}", req.full_path, req.url):
        match = RAW_PARAM_PATTERN.search(source or '')
        if match:
            return unquote_plus(match.group(1))
    return None


def _from_body(req):
    body = req.get_json(silent=True)
    if isinstance(body, dict) and body.get(PARAM_NAME) is not None:
        return str(body[PARAM_NAME])

    value = req.form.get(PARAM_NAME)
    if value is not None:
        return value

    raw_body = req.get_data(as_text=True) or ''
    match = re.search(r'(?:^|[&,?])InputString=([^&]*)', raw_body, re.IGNORECASE)
    if match:
        return unquote_plus(match.group(1))
    return None


def extract_input_string(req):
    """Pull the raw command string out of a request

    Args:
        req: Flask request

    Returns:
        The command string exactly as sent, or None if none was found
    """
    value = None
    if req.method == 'POST':
        value = _from_body(req)
    if value is None:
        value = _from_query(req)
    return value


def decode_command(req):
    """Extract, clean and split the command string

    Raises:
        DecodeError: no command string, or nothing left after stripping
    """
    value = extract_input_string(req)
    if value is None:
        raise DecodeError('InputString parameter is required')

    cleaned = strip_control_artifacts(value).strip()
    if not cleaned:
        raise DecodeError('InputString is empty after cleanup', raw=value)

    return DecodedCommand.from_string(cleaned)
