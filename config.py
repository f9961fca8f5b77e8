# Name of the client device for identification when logging
CLIENT_NAME = "SMAF Device"

# Access point the configuration portal brings up
AP_SSID = "SMAF-Configurator"  # Network name shown to the phone/laptop
AP_PASSWORD = "configurator"  # WPA2 requires at least 8 characters
AP_SETTLE_MS = 800  # Time the AP stack needs before the server can bind

# Configuration portal server
PORTAL_PORT = 80
SUBMISSION_PATH = "/configuration"  # Form action, marks a submitted form

# How long a connected client may take to send its request line
CLIENT_WAIT_TIMEOUT_S = 10
CLIENT_POLL_INTERVAL_S = 0.001  # Sleep between checks while waiting for data

# Let the response flush before the device restarts
RESTART_DELAY_S = 2

# Idle sleep between portal polls
POLL_INTERVAL_S = 0.05

# Must stay above CLIENT_WAIT_TIMEOUT_S + RESTART_DELAY_S
WATCHDOG_TIMEOUT_MS = 30000

# Persistent settings
PREFERENCES_NAMESPACE = "smaf-config"  # NVS namespace, max 15 characters
STORAGE_DIR = "/settings"  # Used by the JSON backend on boards without NVS

# GPIO pin numbers
CONFIG_BUTTON_PIN = 0  # Quick config button, active low
BUZZER_PIN = 25
STATUS_LED_PIN = 2

# Print DEBUG level log lines
DEBUG = False

# Optional remote log collector, leave empty to log to the console only
LOGGING_API = ""
LOGGING_SECRET_TOKEN = ""
