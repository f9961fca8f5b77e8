# pyright: reportMissingModuleSource=false, reportUnknownMemberType=false
"""Captive configuration portal served from the device's own access point.

When the stored settings are unusable (or the user holds the quick config
button at boot) the device brings up its own Wi-Fi network and serves a
single settings page. A phone or laptop joins that network, opens the page,
fills in the form and submits it. The device saves the values and restarts
to try them.

Protocol:
--------
This is NOT an HTTP server. It implements one message shape only:

1. The client connects and sends its request. Only the first line is read:
       GET /<path>?<field>=<value>&... HTTP/1.1
2. Whatever else the client sent (headers, body) is discarded.
3. The device answers with a fixed header block and the page:
       HTTP/1.1 200 OK
       Content-Type: text/html
       Connection: close
4. The connection is closed.

There is no other status code. If the request path contains the submission
marker (the form action, "/configuration") the query string is decoded as a
submitted form, saved, and the device restarts after the response is sent.

Poll Model:
----------
The owner of the main loop calls poll() over and over (feeding the watchdog
in between). Each call serves at most one client from accept to close:

    Idle -> Listening -> AwaitingClient -> Rendering
         -> SubmissionReceived | NoSubmission -> Idle

poll() returns immediately when nobody is connecting. Once a client is
accepted it blocks until the request line arrives, bounded by
CLIENT_WAIT_TIMEOUT_S so a silent client cannot hang the device. After a
submission it also blocks for RESTART_DELAY_S and then restarts; that
restart never returns on real hardware.
"""

import socket
import time

try:
    import config
except ImportError:
    config = None

try:
    import network
    import machine
except ImportError:
    network = None
    machine = None

import device_log
from config_validator import ConfigValidator
from form_codec import extract_field, is_checked, is_submission, parse_port
from models import (
    AUDIO_NOTIFICATIONS,
    CONFIGURATION_SET,
    MQTT_CLIENT_ID,
    MQTT_PASS,
    MQTT_SERVER_ADDRESS,
    MQTT_SERVER_PORT,
    MQTT_TOPIC,
    MQTT_USERNAME,
    NETWORK_NAME,
    NETWORK_PASS,
    VISUAL_NOTIFICATIONS,
    DeviceConfig,
)
from settings_store import SettingsStore

IDLE = "Idle"
LISTENING = "Listening"
AWAITING_CLIENT = "AwaitingClient"
RENDERING = "Rendering"
SUBMISSION_RECEIVED = "SubmissionReceived"
NO_SUBMISSION = "NoSubmission"

PAGE_STYLE = (
    "* { font-family: system-ui, sans-serif; font-size: 14px; line-height: 1.5; color: #202326; "
    "margin: 0; padding: 0; box-sizing: border-box; outline: none; list-style: none; word-wrap: anywhere; }"
    "body { display: flex; flex-direction: column; align-items: center; }"
    "header, section, .frame-primary, .frame-secondary, form { display: flex; flex-direction: column; gap: 20px; }"
    ".frame-secondary { gap: 4px; }"
    ".frame-horizontal { gap: 20px; display: flex; flex-direction: row; justify-content: space-between; flex-wrap: wrap; }"
    "form { margin: 40px 24px 120px; max-width: 440px; }"
    "h1 { font-size: 2.074rem; font-weight: 700; line-height: 1.15; }"
    "h2 { font-size: 1.44rem; font-weight: 630; margin-top: 28px; line-height: 1.15; }"
    "span { font-weight: 550; }"
    "input[type='text'] { font-family: monospace, sans-serif; padding: 12px; border: none; box-shadow: 0 0 0 1px #D7DFE8; }"
    "input[type='text']:focus { box-shadow: 0 0 0 2px #0180FF; }"
    "input[type='submit'] { border: none; padding: 12px 24px; background: #00CC22; font-weight: 550; color: #FFFFFF; flex-grow: 2; }"
    "input[type='reset'] { border: 1px solid #D7DFE8; padding: 12px 24px; background: none; font-weight: 550; flex-grow: 1; }"
    "section { border-left: 3px solid #D7DFE8; padding: 16px 20px; }"
    "section.success { border-color: #00CC22; background: #F2FFF4; color: #004D0D; }"
    "section.info { border-color: #0180FF; background: #F2F9FF; color: #003366; }"
    "section.error { border-color: #E5143C; background: #FFF2F4; color: #66000F; }"
)

# (key, label) pairs per form section
NETWORK_FIELDS = [(NETWORK_NAME, "SSID Name"), (NETWORK_PASS, "SSID Password")]
BROKER_FIELDS = [
    (MQTT_SERVER_ADDRESS, "MQTT Server"),
    (MQTT_SERVER_PORT, "MQTT Port"),
    (MQTT_USERNAME, "MQTT Username"),
    (MQTT_PASS, "MQTT Password"),
]
CLIENT_FIELDS = [(MQTT_CLIENT_ID, "MQTT Client ID"), (MQTT_TOPIC, "MQTT Topic")]
NOTIFICATION_FIELDS = [
    (AUDIO_NOTIFICATIONS, "Audio notifications"),
    (VISUAL_NOTIFICATIONS, "Visual notifications"),
]


def html_escape(value) -> str:
    """Escape text for HTML content and quoted attribute values."""
    return (
        str(value)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def _hardware_restart() -> None:
    if machine is not None:
        machine.reset()
    else:
        raise SystemExit("Restart requested")


class CaptivePortalServer:
    """Access point plus single-page settings server.

    Example usage:
        portal = CaptivePortalServer(store, notifier=notifier)
        portal.start()
        while True:
            portal.poll()
            wdt.feed()

    Attributes:
        _store: SettingsStore the form reads from and writes to
        _notifier: Optional notifier told about portal start and saves
        _ap: WLAN interface in access point mode (None on desktop)
        _listener: Listening TCP socket
        _restart: Callable restarting the device
        state: Current poll state (see module docstring)
    """

    AP_SSID: str = "SMAF-Configurator"
    AP_PASSWORD: str = "configurator"
    AP_SETTLE_MS: int = 800
    PORT: int = 80
    CLIENT_WAIT_TIMEOUT_S: float = 10
    CLIENT_POLL_INTERVAL_S: float = 0.001
    RESTART_DELAY_S: float = 2

    # Bytes read from the client per recv() call
    RECV_CHUNK: int = 512
    # Longest request line accepted, longer input is cut off here
    MAX_REQUEST_LINE: int = 2048
    # Most pending input dropped after the request line
    MAX_DISCARD: int = 8192

    def __init__(
        self,
        store: SettingsStore,
        notifier=None,
        ap_ssid: str | None = None,
        ap_password: str | None = None,
        port: int | None = None,
        restart=None,
    ) -> None:
        """Prepare the portal. Nothing is started until start() is called.

        Args:
            store: Settings store backing the form
            notifier: Object with configuration_started()/configuration_saved()
            ap_ssid: Access point name, defaults to config.AP_SSID
            ap_password: Access point passphrase, defaults to config.AP_PASSWORD
            port: TCP port to serve on, defaults to config.PORTAL_PORT
            restart: Callable used to restart after a submission,
                     defaults to machine.reset()
        """
        self._store = store
        self._notifier = notifier
        self._ap_ssid = ap_ssid or (config.AP_SSID if config else self.AP_SSID)
        self._ap_password = ap_password or (config.AP_PASSWORD if config else self.AP_PASSWORD)
        self._port = port or (config.PORTAL_PORT if config else self.PORT)
        self._restart = restart or _hardware_restart

        self._settle_ms = config.AP_SETTLE_MS if config else self.AP_SETTLE_MS
        self._client_timeout = config.CLIENT_WAIT_TIMEOUT_S if config else self.CLIENT_WAIT_TIMEOUT_S
        self._client_poll_interval = (
            config.CLIENT_POLL_INTERVAL_S if config else self.CLIENT_POLL_INTERVAL_S
        )
        self._restart_delay = config.RESTART_DELAY_S if config else self.RESTART_DELAY_S

        self._ap = None
        self._listener = None
        self.state = IDLE

    @property
    def port(self) -> int:
        return self._port

    def ip_address(self) -> str:
        """Return the access point IP, or 0.0.0.0 when there is none."""
        if self._ap is None:
            return "0.0.0.0"
        ip = self._ap.ifconfig()[0]
        return ip or "0.0.0.0"

    def start(self) -> None:
        """Bring up the access point and start listening.

        Blocks for the AP settle interval (800 ms by default) so the network
        stack is ready before the socket binds.
        """
        if network is not None:
            self._ap = network.WLAN(network.AP_IF)
            self._ap.active(True)
            self._ap.config(essid=self._ap_ssid, password=self._ap_password)
        else:
            device_log.log("No WLAN hardware, serving on all local interfaces", device_log.LOG)

        time.sleep(self._settle_ms / 1000)

        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listener.bind(socket.getaddrinfo("0.0.0.0", self._port)[0][-1])
        listener.listen(1)
        listener.setblocking(False)
        self._listener = listener
        self.state = LISTENING

        device_log.log(
            f"Configuration portal started. AP: '{self._ap_ssid}', "
            f"password: '{self._ap_password}', IP: {self.ip_address()}, port: {self._port}",
            device_log.OK,
        )

        if self._notifier is not None:
            self._notifier.configuration_started()

    def stop(self) -> None:
        """Close the listening socket and switch the access point off."""
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        if self._ap is not None:
            self._ap.active(False)
            self._ap = None
        self.state = IDLE

    def poll(self) -> bool:
        """Serve at most one pending client.

        Returns:
            bool: True if a client was answered, False if nobody was waiting,
                  the client never sent its request line, or the connection
                  failed while being served.

        Note:
            After a submission this calls the restart hook, which does not
            return on hardware.
        """
        if self._listener is None:
            return False

        self.state = LISTENING
        try:
            client, address = self._listener.accept()
        except OSError:
            # EAGAIN: no pending connection
            self.state = IDLE
            return False

        self.state = AWAITING_CLIENT
        submitted = False
        served = False
        try:
            request_line = self._read_request_line(client)
            if request_line is None:
                device_log.log(
                    f"Client {address} sent nothing within {self._client_timeout}s, dropped",
                    device_log.ERROR,
                )
                self.state = IDLE
                return False

            device_log.log(f"Request from {address}: {request_line}", device_log.DEBUG)
            self._discard_pending(client)

            self.state = RENDERING
            submitted = is_submission(request_line)
            saved = self.handle_submission(request_line) if submitted else False

            html = self.render_page(submitted, self.scan_networks(), saved=saved)
            client.setblocking(True)
            client.sendall(self.build_response(html))
            served = True
        except OSError as e:
            device_log.log(f"Error serving client {address}: {e}", device_log.ERROR)
        finally:
            client.close()

        if submitted:
            self.state = SUBMISSION_RECEIVED
            device_log.log("Configuration received, restarting device...", device_log.CMD)
            time.sleep(self._restart_delay)
            self._restart()
        else:
            self.state = NO_SUBMISSION

        self.state = IDLE
        return served

    def _read_request_line(self, client) -> str | None:
        """Wait for the client's first line, bounded by the client timeout.

        Reading stops at the first line ending, when the client closes its
        side, when the deadline passes, or once MAX_REQUEST_LINE bytes have
        arrived. In the last two cases whatever was received is used as the
        request line.

        Returns:
            str: The request line without its line ending.
            None: If no data arrived before the timeout.
        """
        client.setblocking(False)
        deadline = time.time() + self._client_timeout
        buffer = b""

        while len(buffer) < self.MAX_REQUEST_LINE:
            try:
                chunk = client.recv(self.RECV_CHUNK)
            except OSError:
                chunk = None  # nothing received yet

            if chunk == b"":
                break  # client closed its side
            if chunk:
                buffer += chunk
                if b"\r" in buffer or b"\n" in buffer:
                    break
            if time.time() >= deadline:
                break
            if not chunk:
                time.sleep(self._client_poll_interval)

        if not buffer:
            return None
        line = buffer.split(b"\r", 1)[0].split(b"\n", 1)[0][:self.MAX_REQUEST_LINE]
        return line.decode("utf-8", "replace")

    def _discard_pending(self, client) -> None:
        """Drop headers and anything else the client already sent.

        Stops at MAX_DISCARD bytes so a client that never stops sending
        cannot hold the poll.
        """
        discarded = 0
        while discarded < self.MAX_DISCARD:
            try:
                chunk = client.recv(self.RECV_CHUNK)
            except OSError:
                return
            if not chunk:
                return
            discarded += len(chunk)

    def handle_submission(self, request_line: str) -> bool:
        """Decode a submitted form and persist it.

        Missing text fields are stored empty, a missing or bad port as 0 and
        unticked checkboxes as False. Saving never depends on validity: an
        incomplete form is stored as-is and caught by the next boot check.

        Args:
            request_line: Request line containing the form query string

        Returns:
            bool: True if the values were written to storage.
        """
        values = {}
        for key, kind in CONFIGURATION_SET:
            if kind == 'bool':
                values[key] = is_checked(request_line, key)
            elif kind == 'int':
                values[key] = parse_port(extract_field(request_line, key))
            else:
                values[key] = extract_field(request_line, key)
        submitted_config = DeviceConfig(**values)

        saved = self._store.save(submitted_config)
        if saved:
            device_log.log("Configuration saved to device memory", device_log.OK)
        else:
            device_log.log("Configuration could not be saved", device_log.ERROR)

        if ConfigValidator.is_valid(submitted_config):
            device_log.log("Submitted configuration is complete", device_log.OK)
        else:
            device_log.log(
                "Submitted configuration is incomplete, device will return to the portal",
                device_log.ERROR,
            )

        if saved and self._notifier is not None:
            self._notifier.configuration_saved()

        return saved

    def scan_networks(self) -> list[str]:
        """List the names of nearby Wi-Fi networks, strongest first.

        Hidden networks and duplicates (several access points sharing one
        SSID) are left out. No WLAN hardware or a failed scan gives an empty
        list, not an error.
        """
        if network is None:
            return []

        try:
            station = network.WLAN(network.STA_IF)
            station.active(True)
            # (ssid, bssid, channel, rssi, security, hidden)
            results = station.scan()
        except OSError as e:
            device_log.log(f"Network scan failed: {e}", device_log.ERROR)
            return []

        names: list[str] = []
        for entry in sorted(results, key=lambda n: n[3], reverse=True):
            name = entry[0].decode("utf-8", "replace") if isinstance(entry[0], bytes) else entry[0]
            if name and name not in names:
                names.append(name)
        del results

        device_log.log(f"Network scan found {len(names)} networks", device_log.DEBUG)
        return names

    def _text_input(self, key: str, label: str, value, numeric: bool = False, datalist: str = "") -> str:
        extra = " inputmode='numeric' pattern='[0-9]*'" if numeric else ""
        if datalist:
            extra += f" list='{datalist}'"
        return (
            f"<div class='frame-secondary'><label for='{key}'>{label}:</label>"
            f"<input id='{key}' type='text' name='{key}'{extra} value='{html_escape(value)}'></div>"
        )

    def _checkbox(self, key: str, label: str, checked: bool) -> str:
        state = " checked" if checked else ""
        return (
            f"<div class='frame-secondary'><label for='{key}'>"
            f"<input id='{key}' type='checkbox' name='{key}' value='on'{state}> {label}</label></div>"
        )

    def render_page(self, submitted: bool, networks: list[str], saved: bool = True) -> str:
        """Build the settings page.

        Args:
            submitted: Show the submission result banner
            networks: Network names offered as suggestions for the SSID field
            saved: Whether the submission reached storage, picks the banner

        Returns:
            str: Complete HTML document pre-filled with the stored values.
        """
        current = self._store.load()
        action = config.SUBMISSION_PATH if config else "/configuration"

        parts = [
            "<!DOCTYPE html><html lang='en'><head>",
            "<meta charset='UTF-8'>",
            "<meta name='viewport' content='width=device-width, initial-scale=1.0, user-scalable=no'>",
            "<title>Device configuration</title>",
            f"<style>{PAGE_STYLE}</style>",
            "</head><body>",
            f"<form action='{action}' method='get'>",
            "<header><h1>Device<br>configuration</h1>",
            "<p>Connect the device to your wireless network and MQTT broker.</p></header>",
        ]

        if submitted and not saved:
            parts.append(
                "<section class='error'><p>Configuration could not be saved to device "
                "memory. The device will reboot, try again once this page is back.</p></section>"
            )
        elif submitted:
            parts.append("<section class='success'>")
            parts.append(
                "<p>Configuration successfully saved to device. "
                "Data saved in device memory is shown below.</p><ul>"
            )
            for key, label in NETWORK_FIELDS + BROKER_FIELDS + CLIENT_FIELDS:
                parts.append(f"<li><span>{label}: </span>{html_escape(current[key])}</li>")
            parts.append(
                "</ul><p>Device will now reboot and try to connect to the configured SSID "
                "and connection with this page will be lost.</p></section>"
            )
            parts.append(
                "<section class='info'><p>To start the configuration again, restart the "
                "device while holding the quick config button.</p></section>"
            )

        options = "".join(f"<option value='{html_escape(name)}'>" for name in networks)
        parts.append(f"<datalist id='networks'>{options}</datalist>")

        parts.append("<h2>WiFi router<br>configuration</h2><div class='frame-primary'>")
        for key, label in NETWORK_FIELDS:
            datalist = "networks" if key == NETWORK_NAME else ""
            parts.append(self._text_input(key, label, current[key], datalist=datalist))
        parts.append("</div>")

        parts.append("<h2>MQTT server<br>configuration</h2><div class='frame-primary'>")
        for key, label in BROKER_FIELDS:
            parts.append(self._text_input(key, label, current[key], numeric=key == MQTT_SERVER_PORT))
        parts.append("</div>")

        parts.append("<h2>MQTT client &amp; topic<br>configuration</h2><div class='frame-primary'>")
        for key, label in CLIENT_FIELDS:
            parts.append(self._text_input(key, label, current[key]))
        parts.append("</div>")

        parts.append("<h2>Notifications</h2><div class='frame-primary'>")
        for key, label in NOTIFICATION_FIELDS:
            parts.append(self._checkbox(key, label, current[key]))
        parts.append("</div>")

        parts.append(
            "<h2>Finish<br>configuration</h2>"
            "<section class='info'><p>Fields are not mandatory, but the device will not "
            "leave configuration mode while any essential data is missing.</p></section>"
            "<div class='frame-horizontal'>"
            "<input type='reset' value='Reset form'>"
            "<input type='submit' value='Upload configuration'>"
            "</div></form></body></html>"
        )
        return "".join(parts)

    def build_response(self, html: str) -> bytes:
        """Wrap a page in the fixed response header block."""
        header = "HTTP/1.1 200 OK\r\nContent-Type: text/html\r\nConnection: close\r\n\r\n"
        return (header + html + "\r\n").encode("utf-8")
