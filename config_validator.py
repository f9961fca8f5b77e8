"""Validity check deciding whether the device can leave AP mode."""

from models import CONFIGURATION_SET, MQTT_SERVER_PORT, TEXT_SENTINEL, DeviceConfig


class ConfigValidator:
    """Single yes/no verdict over a loaded DeviceConfig.

    A configuration is valid when every text setting holds real text (not
    empty, not the "Unknown" sentinel) and the broker port is non-zero. The
    notification flags always have a usable value and are not checked.

    There is no per-field report. The settings store logs every
    key it reads, which is where to look when a device keeps booting into the
    portal.
    """

    TEXT_KEYS: list[str] = [key for key, kind in CONFIGURATION_SET if kind == 'text']

    @classmethod
    def is_valid(cls, device_config: DeviceConfig) -> bool:
        for key in cls.TEXT_KEYS:
            value = device_config[key]
            if not value or value == TEXT_SENTINEL:
                return False
        return device_config[MQTT_SERVER_PORT] != 0
