"""Persistent key/value backends for the settings store.

A backend hands out namespace handles. A handle is opened for a single
access (or a single batch of writes), committed and closed straight away,
mirroring how the ESP-IDF NVS API is meant to be used:

    handle = backend.open("smaf-config")
    try:
        handle.put("netName", "text", "Home")
        handle.commit()
    finally:
        handle.close()

Handle contract:
- get(key, kind): stored value, raises KeyError when the key is absent
- put(key, kind, value): stage a write, ValueError if the backend cannot hold it
- clear(): stage removal of every key in the namespace
- commit(): make staged changes durable, OSError on a storage fault
- close(): release the handle (uncommitted changes are dropped)

``open`` raises StorageOpenError when the namespace cannot be opened. The
settings store turns that into sentinel reads and failed writes, it is never
propagated to the portal.
"""

import json
import os

try:
    import esp32
except ImportError:
    # Desktop testing, or a board without NVS
    esp32 = None

from models import CONFIGURATION_SET, SettingKind


# esp_err_t codes raised by esp32.NVS as OSError
ESP_ERR_NVS_NOT_FOUND = 0x1102
ESP_ERR_NVS_INVALID_LENGTH = 0x110C


class StorageOpenError(Exception):
    """The namespace could not be opened for read/write."""


def _esp_error_code(error: OSError) -> int | None:
    code = error.args[0] if error.args else None
    return abs(code) if isinstance(code, int) else None


class NVSHandle:
    """Open NVS namespace. Ints and bools are i32, text is a UTF-8 blob."""

    # NVS blobs are read into a fixed buffer, put() refuses anything longer
    TEXT_MAX_BYTES: int = 256

    def __init__(self, nvs, known_keys: list[str]) -> None:
        self._nvs = nvs
        self._known_keys = known_keys

    def get(self, key: str, kind: SettingKind):
        """Read one value.

        Raises:
            KeyError: The key was never written.
            OSError: Any other NVS error, e.g. a blob too long for the buffer.
        """
        try:
            if kind == 'text':
                buffer = bytearray(self.TEXT_MAX_BYTES)
                length = self._nvs.get_blob(key, buffer)
                return bytes(buffer[:length]).decode("utf-8")
            value = self._nvs.get_i32(key)
        except OSError as e:
            if _esp_error_code(e) == ESP_ERR_NVS_NOT_FOUND:
                raise KeyError(key)
            raise
        return bool(value) if kind == 'bool' else value

    def put(self, key: str, kind: SettingKind, value) -> None:
        """Stage one value.

        Raises:
            ValueError: Text longer than TEXT_MAX_BYTES once encoded.
        """
        if kind == 'text':
            data = str(value).encode("utf-8")
            if len(data) > self.TEXT_MAX_BYTES:
                raise ValueError(
                    f"'{key}' is {len(data)} bytes, NVS text is limited to {self.TEXT_MAX_BYTES}"
                )
            self._nvs.set_blob(key, data)
        else:
            self._nvs.set_i32(key, int(value))

    def clear(self) -> None:
        # NVS cannot enumerate keys, erase everything we know about
        for key in self._known_keys:
            try:
                self._nvs.erase_key(key)
            except OSError:
                pass  # never written

    def commit(self) -> None:
        self._nvs.commit()

    def close(self) -> None:
        self._nvs = None


class NVSBackend:
    """ESP32 non-volatile storage via MicroPython's ``esp32.NVS``."""

    def __init__(self, known_keys: list[str] | None = None) -> None:
        self._known_keys = known_keys or [key for key, _ in CONFIGURATION_SET]

    def open(self, namespace: str) -> NVSHandle:
        if esp32 is None:
            raise StorageOpenError("NVS is not available on this platform")
        try:
            nvs = esp32.NVS(namespace)
        except OSError as e:
            raise StorageOpenError(f"cannot open NVS namespace '{namespace}': {e}")
        return NVSHandle(nvs, self._known_keys)


class JsonFileHandle:
    """Namespace held in memory, flushed to its JSON file on commit."""

    def __init__(self, path: str, data: dict) -> None:
        self._path = path
        self._data = data

    def get(self, key: str, kind: SettingKind):
        value = self._data[key]
        if kind == 'bool':
            return bool(value)
        if kind == 'int':
            return int(value)
        return str(value)

    def put(self, key: str, kind: SettingKind, value) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()

    def commit(self) -> None:
        # Write-then-rename so a power cut never leaves half a file behind
        tmp_path = self._path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(self._data, f)
        os.rename(tmp_path, self._path)

    def close(self) -> None:
        self._data = {}


class JsonFileBackend:
    """One JSON document per namespace inside ``directory``.

    Used on boards without NVS and on the desktop.
    """

    def __init__(self, directory: str) -> None:
        self._directory = directory

    def _path(self, namespace: str) -> str:
        return f"{self._directory}/{namespace}.json"

    def open(self, namespace: str) -> JsonFileHandle:
        path = self._path(namespace)
        try:
            try:
                os.stat(self._directory)
            except OSError:
                os.mkdir(self._directory)

            try:
                os.stat(path)
            except OSError:
                # First access, namespace file not created yet
                data = {}
            else:
                with open(path) as f:
                    data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageOpenError(f"cannot open namespace file '{path}': {e}")

        if not isinstance(data, dict):
            raise StorageOpenError(f"namespace file '{path}' is not a JSON object")
        return JsonFileHandle(path, data)


def default_backend(directory: str):
    """NVS on an ESP32, a JSON file per namespace everywhere else."""
    if esp32 is not None:
        return NVSBackend()
    return JsonFileBackend(directory)
