from typing import TypedDict, Literal

# Persisted key identifiers. These are stored on devices in the field, do not rename.
NETWORK_NAME = "netName"
NETWORK_PASS = "netPass"
MQTT_SERVER_ADDRESS = "mqttSrvAdr"
MQTT_SERVER_PORT = "mqttSrvPort"
MQTT_USERNAME = "mqttUser"
MQTT_PASS = "mqttPass"
MQTT_CLIENT_ID = "mqttClient"
MQTT_TOPIC = "mqttTopic"
AUDIO_NOTIFICATIONS = "audioNotif"
VISUAL_NOTIFICATIONS = "visualNotif"

SettingKind = Literal['text', 'int', 'bool']

# Values a key holds before it has been configured
TEXT_SENTINEL = "Unknown"
INT_SENTINEL = 0
BOOL_SENTINEL = True

SENTINELS: dict[str, str | int | bool] = {
    'text': TEXT_SENTINEL,
    'int': INT_SENTINEL,
    'bool': BOOL_SENTINEL,
}

UINT16_MAX = 65535

# Every setting the portal manages, in the order it is written
CONFIGURATION_SET: list[tuple[str, SettingKind]] = [
    (NETWORK_NAME, 'text'),
    (NETWORK_PASS, 'text'),
    (MQTT_SERVER_ADDRESS, 'text'),
    (MQTT_SERVER_PORT, 'int'),
    (MQTT_USERNAME, 'text'),
    (MQTT_PASS, 'text'),
    (MQTT_CLIENT_ID, 'text'),
    (MQTT_TOPIC, 'text'),
    (AUDIO_NOTIFICATIONS, 'bool'),
    (VISUAL_NOTIFICATIONS, 'bool'),
]


class DeviceConfig(TypedDict):
    """Snapshot of the persisted device settings.

    Loaded once at boot and handed to whoever needs it, so consumers never
    read storage behind each other's back.

    Attributes:
        netName (str): SSID of the network to join
        netPass (str): Passphrase of that network
        mqttSrvAdr (str): Broker host name or IP address
        mqttSrvPort (int): Broker TCP port (0-65535, 0 = not configured)
        mqttUser (str): Broker username
        mqttPass (str): Broker password
        mqttClient (str): MQTT client identifier
        mqttTopic (str): Topic the device publishes to
        audioNotif (bool): Whether the buzzer may be used
        visualNotif (bool): Whether the status LED may be used
    """
    netName: str
    netPass: str
    mqttSrvAdr: str
    mqttSrvPort: int
    mqttUser: str
    mqttPass: str
    mqttClient: str
    mqttTopic: str
    audioNotif: bool
    visualNotif: bool


def default_config() -> DeviceConfig:
    """Return a DeviceConfig with every key at its sentinel."""
    return DeviceConfig(**{key: SENTINELS[kind] for key, kind in CONFIGURATION_SET})
