"""Typed settings on top of a persistent key/value namespace.

Every access opens the namespace, does its work, commits and closes it
again. Reads are self-healing: a key that has never been written is
initialised to its sentinel on first read, so later reads (and the portal
form) always see a real stored value.

Sentinels:
---------
- text: "Unknown"
- int:  0
- bool: True

The boolean sentinel is True even though the flags it backs read as
"enabled" then. Existing devices depend on that default, keep it.

Failure handling:
----------------
If the namespace cannot be opened or a storage operation fails, reads log
an error and return the sentinel and writes log an error and return False.
A read fault never overwrites the stored value with the sentinel. Nothing
is retried and nothing is raised, the caller decides what an invalid
configuration means.
"""

from typing import Any

try:
    import config
except ImportError:
    config = None

import device_log
from models import (
    CONFIGURATION_SET,
    SENTINELS,
    UINT16_MAX,
    DeviceConfig,
    SettingKind,
    default_config,
)
from storage import StorageOpenError


class SettingsStore:
    """Typed get/set over one persistent namespace.

    Example usage:
        store = SettingsStore(NVSBackend(), "smaf-config")

        device_config = store.load()
        if not ConfigValidator.is_valid(device_config):
            ...

    Attributes:
        _backend: Storage backend handing out namespace handles
        _namespace: Name of the namespace all keys live in
    """

    DEFAULT_NAMESPACE: str = "smaf-config"

    def __init__(self, backend, namespace: str | None = None) -> None:
        """Initialize the store.

        Args:
            backend: Object with an ``open(namespace)`` method, see storage.py
            namespace: Namespace name, defaults to config.PREFERENCES_NAMESPACE
        """
        self._backend = backend
        self._namespace = namespace or (
            config.PREFERENCES_NAMESPACE if config else self.DEFAULT_NAMESPACE
        )

    @property
    def namespace(self) -> str:
        return self._namespace

    def _open(self, key: str):
        try:
            return self._backend.open(self._namespace)
        except StorageOpenError as e:
            device_log.log(
                f"Failed to open namespace '{self._namespace}' for key '{key}': {e}",
                device_log.ERROR,
            )
            return None

    def _read(self, handle, key: str, kind: SettingKind) -> Any:
        """Read one key from an open handle, writing the sentinel if absent.

        A storage fault other than a missing key is logged and the sentinel
        returned without touching the stored value.
        """
        try:
            value = handle.get(key, kind)
        except KeyError:
            value = SENTINELS[kind]
            try:
                handle.put(key, kind, value)
                handle.commit()
            except OSError as e:
                device_log.log(
                    f"Failed to initialize '{self._namespace}/{key}': {e}", device_log.ERROR
                )
                return value
            device_log.log(
                f"Initialized '{self._namespace}/{key}' to default {value!r}",
                device_log.LOG,
            )
        except (OSError, ValueError) as e:
            device_log.log(f"Failed to read '{self._namespace}/{key}': {e}", device_log.ERROR)
            return SENTINELS[kind]
        device_log.log(f"Read '{self._namespace}/{key}' = {value!r}", device_log.DEBUG)
        return value

    def _get(self, key: str, kind: SettingKind) -> Any:
        handle = self._open(key)
        if handle is None:
            return SENTINELS[kind]
        try:
            return self._read(handle, key, kind)
        finally:
            handle.close()

    def _set(self, key: str, kind: SettingKind, value: Any) -> bool:
        handle = self._open(key)
        if handle is None:
            return False
        try:
            handle.put(key, kind, value)
            handle.commit()
        except (OSError, ValueError) as e:
            device_log.log(f"Failed to write '{self._namespace}/{key}': {e}", device_log.ERROR)
            return False
        finally:
            handle.close()
        device_log.log(f"Saved '{self._namespace}/{key}'", device_log.OK)
        return True

    def get_text(self, key: str) -> str:
        return self._get(key, 'text')

    def get_int(self, key: str) -> int:
        return self._get(key, 'int')

    def get_bool(self, key: str) -> bool:
        return self._get(key, 'bool')

    def set_text(self, key: str, value: str) -> bool:
        return self._set(key, 'text', value)

    def set_int(self, key: str, value: int) -> bool:
        """Store an unsigned 16-bit integer.

        Raises:
            ValueError: If value does not fit in 0-65535.
        """
        if not 0 <= value <= UINT16_MAX:
            raise ValueError(f"'{key}' must be between 0 and {UINT16_MAX}, got {value}")
        return self._set(key, 'int', value)

    def set_bool(self, key: str, value: bool) -> bool:
        return self._set(key, 'bool', bool(value))

    def erase(self) -> bool:
        """Remove every key in the namespace.

        Returns:
            bool: False if the namespace could not be opened.
        """
        handle = self._open("*")
        if handle is None:
            return False
        try:
            handle.clear()
            handle.commit()
        except OSError as e:
            device_log.log(f"Failed to erase namespace '{self._namespace}': {e}", device_log.ERROR)
            return False
        finally:
            handle.close()
        device_log.log(f"Erased namespace '{self._namespace}'", device_log.OK)
        return True

    def load(self) -> DeviceConfig:
        """Read the whole configuration set in a single open/close.

        Keys that were never written are initialised to their sentinels.
        If the namespace cannot be opened every key comes back as its
        sentinel, which ConfigValidator will reject.

        Returns:
            DeviceConfig: Snapshot of all managed settings.
        """
        handle = self._open("*")
        if handle is None:
            return default_config()
        try:
            values = {key: self._read(handle, key, kind) for key, kind in CONFIGURATION_SET}
        finally:
            handle.close()
        return DeviceConfig(**values)

    def save(self, device_config: DeviceConfig) -> bool:
        """Write every managed setting in order, committed once.

        Nothing is committed if any value is rejected by the backend.

        Args:
            device_config: Values to persist. Every key of the configuration
                set must be present.

        Returns:
            bool: False if the namespace could not be opened or written.
        """
        handle = self._open("*")
        if handle is None:
            return False
        key = "*"
        try:
            for key, kind in CONFIGURATION_SET:
                handle.put(key, kind, device_config[key])
            key = "*"
            handle.commit()
        except (OSError, ValueError) as e:
            device_log.log(f"Failed to save '{self._namespace}/{key}': {e}", device_log.ERROR)
            return False
        finally:
            handle.close()

        for key, _ in CONFIGURATION_SET:
            device_log.log(f"Saved '{self._namespace}/{key}'", device_log.OK)
        return True