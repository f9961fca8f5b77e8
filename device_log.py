"""Console and remote logging for the device firmware.

Every line is printed to the serial console as ``LEVEL | message`` so it can
be followed with any serial monitor. When ``config.LOGGING_API`` is set, the
same record is also POSTed as JSON to a log collector, which is handy while
the board sits on a bench network.

Levels:
-------
- LOG:   normal progress information
- ERROR: something failed and was recovered from
- OK:    an operation finished successfully
- CMD:   a user initiated action (button, form submission)
- DEBUG: verbose detail, printed only when ``config.DEBUG`` is true

Remote shipping is fire-and-forget: a failed POST is printed and dropped, it
never raises into the caller. In AP mode there is no uplink, so leave
``LOGGING_API`` empty on production devices.
"""

import json

try:
    import config
except ImportError:
    config = None

try:
    import urequests as requests  # MicroPython
except ImportError:
    import requests  # Desktop Python

LOG = "LOG"
ERROR = "ERROR"
OK = "OK"
CMD = "CMD"
DEBUG = "DEBUG"

SERVICE_NAME = "smaf-device-configurator"

# Seconds to wait for the log collector before giving up
REMOTE_TIMEOUT_S = 5


def _debug_enabled() -> bool:
    return bool(getattr(config, "DEBUG", False)) if config else False


def _remote_endpoint() -> str:
    return getattr(config, "LOGGING_API", "") if config else ""


def ship(message: str, level: str) -> bool:
    """
    Send one log record to the configured collector.

    Args:
        message (str): The log message to send.
        level (str): The log level.

    Returns:
        bool: True if the collector answered with HTTP 200.
    """
    url = _remote_endpoint()
    if not url:
        return False

    # Lowercase is important for HTTP 2 protocol
    headers: dict[str, str] = {
        "content-type": "application/json",
        "x-custom-auth": getattr(config, "LOGGING_SECRET_TOKEN", ""),
    }
    payload: dict[str, str] = {
        "message": message,
        "level": level,
        "service_name": SERVICE_NAME,
        "client_name": getattr(config, "CLIENT_NAME", ""),
    }

    try:
        # MicroPython's requests module does not handle conversions automatically.
        response = requests.post(
            url, data=json.dumps(payload), headers=headers, timeout=REMOTE_TIMEOUT_S
        )
        delivered = response.status_code == 200
        if not delivered:
            print("Failed to send log. Status code:", response.status_code)
        response.close()
        return delivered
    except Exception as e:
        print("Error sending log:", str(e))
        return False


def log(message: str, level: str = LOG) -> None:
    """
    Print a log line and mirror it to the remote collector when configured.

    Args:
        message (str): The log message.
        level (str): One of LOG, ERROR, OK, CMD, DEBUG. Default is LOG.
    """
    if level == DEBUG and not _debug_enabled():
        return

    print(f"{level} | {message}")
    ship(message, level)
