"""Field extraction and URL decoding for portal form submissions.

The portal speaks a tiny protocol: the browser submits the
settings form with GET, so the whole submission is the first line of the
request:

    GET /configuration?netName=Home%20Wifi&mqttSrvPort=1883 HTTP/1.1

Headers and body are never read. Values are pulled straight out of that
line with extract_field(), which looks for ``name=`` and takes everything up
to the next ``&``, the ``" HTTP"`` suffix, or the end of the line.

Decoding rules:
--------------
- ``+`` becomes a space
- ``%XY`` becomes the byte 0xXY (hex digits, either case)
- the decoded bytes are read as UTF-8, which is what browsers send
- a ``%`` that is cut off by the end of the value ends decoding, the
  partial escape is dropped
- a ``%`` followed by two non-hex characters is kept as-is

A value made only of spaces is treated as empty. Leading and trailing
spaces around real text are kept, passwords may legitimately contain them.
"""

try:
    import config
except ImportError:
    config = None

from models import UINT16_MAX

SUBMISSION_PATH = "/configuration"

HEX_DIGITS = "0123456789abcdefABCDEF"


def _hex_value(c: str) -> int:
    return int(c, 16)


def url_decode(text: str) -> str:
    """
    Decode a URL-encoded form value.

    Args:
        text (str): Raw value as it appears in the request line.

    Returns:
        str: Decoded value.
    """
    decoded = bytearray()
    i = 0
    length = len(text)

    while i < length:
        c = text[i]
        if c == '%':
            if i + 2 >= length:
                # Truncated escape at the end of the value
                break
            a, b = text[i + 1], text[i + 2]
            if a in HEX_DIGITS and b in HEX_DIGITS:
                decoded.append(_hex_value(a) * 16 + _hex_value(b))
                i += 3
                continue
            decoded.extend(c.encode("utf-8"))
        elif c == '+':
            decoded.append(0x20)
        else:
            decoded.extend(c.encode("utf-8"))
        i += 1

    return bytes(decoded).decode("utf-8", "replace")


def trim_all_space(text: str) -> str:
    """
    Return an empty string if text is nothing but spaces, else text unchanged.
    """
    for c in text:
        if c != ' ':
            return text
    return ""


def extract_field(request_line: str, field_name: str) -> str:
    """
    Pull one decoded form value out of a request line.

    Args:
        request_line (str): First line of the client request.
        field_name (str): Form field name, e.g. "netName".

    Returns:
        str: The decoded value, or "" when the field is missing or blank.

    Example:
        extract_field("GET /configuration?mqttSrvPort=1883 HTTP/1.1", "mqttSrvPort")
        -> "1883"
    """
    marker = field_name + "="
    start = request_line.find(marker)
    if start == -1:
        return ""
    start += len(marker)

    end = len(request_line)
    for terminator in ("&", " HTTP"):
        index = request_line.find(terminator, start)
        if index != -1 and index < end:
            end = index

    raw = request_line[start:end]
    if not raw:
        return ""
    return trim_all_space(url_decode(raw))


def is_checked(request_line: str, field_name: str) -> bool:
    """
    Checkbox semantics: browsers only send a checkbox when it is ticked.
    """
    return extract_field(request_line, field_name) != ""


def parse_port(text: str) -> int:
    """
    Parse a port number the way the form field is meant to be read.

    Leading digits are used, anything after them is ignored. Values that are
    missing, unparsable or outside 0-65535 become 0, which the validator
    treats as "not configured".

    Args:
        text (str): Decoded form value.

    Returns:
        int: Port number in 0-65535.
    """
    text = text.strip()
    digits = ""
    for c in text:
        if c not in "0123456789":
            break
        digits += c

    if not digits:
        return 0

    value = int(digits)
    return value if value <= UINT16_MAX else 0


def is_submission(request_line: str) -> bool:
    """
    Check whether the request line carries a submitted settings form.

    Only the request path is looked at, so a field value that happens to
    contain the marker does not count.
    """
    marker = config.SUBMISSION_PATH if config else SUBMISSION_PATH
    parts = request_line.split(" ")
    if len(parts) < 2:
        return False
    path = parts[1].split("?", 1)[0]
    return marker in path
