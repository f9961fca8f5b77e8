"""Boot entry point: decide between normal operation and the configuration portal.

Boot sequence:
-------------
1. Load the persisted settings once into a DeviceConfig snapshot
2. Enter the configuration portal when the settings are incomplete or the
   quick config button is held down
3. Otherwise hand the snapshot to the application (Wi-Fi/MQTT start-up is
   not part of this firmware module)

While the portal runs, the hardware watchdog is fed after every poll. A
single poll can block for up to CLIENT_WAIT_TIMEOUT_S plus RESTART_DELAY_S,
so WATCHDOG_TIMEOUT_MS must stay above that.
"""

import time

try:
    import config
except ImportError:
    config = None

try:
    import machine
    from machine import Pin
except ImportError:
    machine = None
    Pin = None

import device_log
from config_validator import ConfigValidator
from models import AUDIO_NOTIFICATIONS, VISUAL_NOTIFICATIONS, DeviceConfig
from notifications import AudioVisualNotifier
from portal import CaptivePortalServer
from settings_store import SettingsStore
from storage import default_backend


class DeviceController:
    """Owns the settings snapshot, the watchdog and the portal poll loop.

    Attributes:
        _store: SettingsStore for the device namespace
        _config: DeviceConfig loaded at construction
        _notifier: AudioVisualNotifier honouring the stored flags
        _portal: CaptivePortalServer, created when configuration is needed
        _wdt: Hardware watchdog, armed when the portal starts
    """

    STORAGE_DIR: str = "/settings"
    POLL_INTERVAL_S: float = 0.05
    WATCHDOG_TIMEOUT_MS: int = 30000
    CONFIG_BUTTON_PIN: int = 0
    BUZZER_PIN: int = 25
    STATUS_LED_PIN: int = 2

    def __init__(self) -> None:
        storage_dir = config.STORAGE_DIR if config else self.STORAGE_DIR
        self._store = SettingsStore(default_backend(storage_dir))
        self._config: DeviceConfig = self._store.load()

        self._notifier = AudioVisualNotifier(
            buzzer_pin=config.BUZZER_PIN if config else self.BUZZER_PIN,
            led_pin=config.STATUS_LED_PIN if config else self.STATUS_LED_PIN,
            audio_enabled=self._config[AUDIO_NOTIFICATIONS],
            visual_enabled=self._config[VISUAL_NOTIFICATIONS],
        )
        self._portal: CaptivePortalServer | None = None
        self._wdt = None

    @property
    def device_config(self) -> DeviceConfig:
        return self._config

    def config_button_held(self) -> bool:
        """Return True while the quick config button is pressed (active low)."""
        if machine is None:
            return False
        pin_number = config.CONFIG_BUTTON_PIN if config else self.CONFIG_BUTTON_PIN
        return Pin(pin_number, Pin.IN, Pin.PULL_UP).value() == 0

    def needs_configuration(self) -> bool:
        if not ConfigValidator.is_valid(self._config):
            device_log.log("Stored configuration is incomplete", device_log.ERROR)
            return True
        if self.config_button_held():
            device_log.log("Quick config button held", device_log.CMD)
            return True
        return False

    def _feed_watchdog(self) -> None:
        if self._wdt is not None:
            self._wdt.feed()

    def run_portal(self, max_polls: int | None = None) -> None:
        """Start the portal and poll it until the device restarts.

        Args:
            max_polls: Stop after this many polls (None polls forever)
        """
        if machine is not None:
            timeout_ms = config.WATCHDOG_TIMEOUT_MS if config else self.WATCHDOG_TIMEOUT_MS
            self._wdt = machine.WDT(timeout=timeout_ms)

        self._portal = CaptivePortalServer(self._store, notifier=self._notifier)
        self._portal.start()

        poll_interval = config.POLL_INTERVAL_S if config else self.POLL_INTERVAL_S
        polls = 0
        while max_polls is None or polls < max_polls:
            self._portal.poll()
            self._feed_watchdog()
            polls += 1
            time.sleep(poll_interval)

        self._portal.stop()

    def factory_reset(self) -> None:
        """Erase every stored setting and restart into the portal."""
        device_log.log("Factory reset requested", device_log.CMD)
        self._store.erase()
        if machine is not None:
            machine.reset()

    def run(self) -> DeviceConfig | None:
        """Boot the device.

        Returns:
            DeviceConfig: The loaded settings when no configuration is needed.
            None: After the portal loop ends (only when it is bounded).
        """
        device_log.log(f"Booting, settings namespace '{self._store.namespace}'", device_log.LOG)

        if self.needs_configuration():
            device_log.log("Entering configuration mode", device_log.LOG)
            self.run_portal()
            return None

        device_log.log("Configuration valid, continuing normal start-up", device_log.OK)
        return self._config


if __name__ == "__main__":
    try:
        DeviceController().run()
    except KeyboardInterrupt:
        device_log.log("System resetting due to Keyboard Interrupt", device_log.LOG)
        if machine is not None:
            machine.reset()
    except Exception as e:
        device_log.log(f"Unknown error in main: {e}", device_log.ERROR)
        if machine is not None:
            machine.reset()
        raise
