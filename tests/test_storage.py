"""Tests for the storage backends."""

from unittest.mock import MagicMock, patch

import pytest

from settings_store import SettingsStore
from storage import (
    ESP_ERR_NVS_INVALID_LENGTH,
    ESP_ERR_NVS_NOT_FOUND,
    JsonFileBackend,
    NVSBackend,
    NVSHandle,
    StorageOpenError,
    default_backend,
)


class FakeNVS:
    """In-memory stand-in for esp32.NVS with its error behaviour."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace
        self.values: dict[str, object] = {}
        self.committed: dict[str, object] = {}

    def set_i32(self, key, value):
        self.values[key] = value

    def get_i32(self, key):
        if key not in self.values:
            raise OSError(-ESP_ERR_NVS_NOT_FOUND)
        return self.values[key]

    def set_blob(self, key, value):
        self.values[key] = bytes(value)

    def get_blob(self, key, buffer):
        if key not in self.values:
            raise OSError(-ESP_ERR_NVS_NOT_FOUND)
        data = self.values[key]
        if len(data) > len(buffer):
            raise OSError(-ESP_ERR_NVS_INVALID_LENGTH)
        buffer[:len(data)] = data
        return len(data)

    def erase_key(self, key):
        if key not in self.values:
            raise OSError(-ESP_ERR_NVS_NOT_FOUND)
        del self.values[key]

    def commit(self):
        self.committed = dict(self.values)


class TestJsonFileBackend:
    """Tests for the JSON file backend."""

    def test_missing_key_raises_key_error(self, tmp_path):
        handle = JsonFileBackend(str(tmp_path)).open("ns")
        with pytest.raises(KeyError):
            handle.get("netName", "text")

    def test_commit_persists_across_handles(self, tmp_path):
        backend = JsonFileBackend(str(tmp_path))
        handle = backend.open("ns")
        handle.put("netName", "text", "Home")
        handle.put("mqttSrvPort", "int", 1883)
        handle.commit()
        handle.close()

        reopened = backend.open("ns")
        assert reopened.get("netName", "text") == "Home"
        assert reopened.get("mqttSrvPort", "int") == 1883

    def test_uncommitted_writes_are_dropped(self, tmp_path):
        backend = JsonFileBackend(str(tmp_path))
        handle = backend.open("ns")
        handle.put("netName", "text", "Home")
        handle.close()

        with pytest.raises(KeyError):
            backend.open("ns").get("netName", "text")

    def test_namespaces_are_separate_files(self, tmp_path):
        backend = JsonFileBackend(str(tmp_path))
        handle = backend.open("one")
        handle.put("netName", "text", "Home")
        handle.commit()

        assert (tmp_path / "one.json").exists()
        with pytest.raises(KeyError):
            backend.open("two").get("netName", "text")

    def test_directory_is_created(self, tmp_path):
        directory = tmp_path / "settings"
        handle = JsonFileBackend(str(directory)).open("ns")
        handle.commit()
        assert (directory / "ns.json").exists()

    def test_corrupt_file_fails_to_open(self, tmp_path):
        (tmp_path / "ns.json").write_text("{not json")
        with pytest.raises(StorageOpenError):
            JsonFileBackend(str(tmp_path)).open("ns")

    def test_non_object_file_fails_to_open(self, tmp_path):
        (tmp_path / "ns.json").write_text("[1, 2]")
        with pytest.raises(StorageOpenError):
            JsonFileBackend(str(tmp_path)).open("ns")

    def test_clear_removes_everything(self, tmp_path):
        backend = JsonFileBackend(str(tmp_path))
        handle = backend.open("ns")
        handle.put("netName", "text", "Home")
        handle.commit()

        handle = backend.open("ns")
        handle.clear()
        handle.commit()

        with pytest.raises(KeyError):
            backend.open("ns").get("netName", "text")


class TestNVSBackend:
    """Tests for the ESP32 NVS backend against a fake esp32 module."""

    def create_backend(self):
        fake_nvs = FakeNVS("ns")
        fake_esp32 = MagicMock()
        fake_esp32.NVS.return_value = fake_nvs
        return fake_esp32, fake_nvs

    def test_unavailable_without_esp32(self):
        with patch("storage.esp32", None):
            with pytest.raises(StorageOpenError):
                NVSBackend().open("ns")

    def test_open_error_becomes_storage_open_error(self):
        fake_esp32 = MagicMock()
        fake_esp32.NVS.side_effect = OSError(-4353)
        with patch("storage.esp32", fake_esp32):
            with pytest.raises(StorageOpenError):
                NVSBackend().open("ns")

    def test_typed_values_round_trip(self):
        fake_esp32, fake_nvs = self.create_backend()
        with patch("storage.esp32", fake_esp32):
            handle = NVSBackend().open("ns")
            handle.put("netName", "text", "Café")
            handle.put("mqttSrvPort", "int", 1883)
            handle.put("audioNotif", "bool", False)
            handle.commit()

            assert handle.get("netName", "text") == "Café"
            assert handle.get("mqttSrvPort", "int") == 1883
            assert handle.get("audioNotif", "bool") is False

        fake_esp32.NVS.assert_called_once_with("ns")
        assert fake_nvs.committed["mqttSrvPort"] == 1883
        assert fake_nvs.committed["audioNotif"] == 0

    def test_missing_key_raises_key_error(self):
        fake_esp32, _ = self.create_backend()
        with patch("storage.esp32", fake_esp32):
            handle = NVSBackend().open("ns")
            with pytest.raises(KeyError):
                handle.get("mqttSrvPort", "int")
            with pytest.raises(KeyError):
                handle.get("netName", "text")

    def test_clear_erases_known_keys_only(self):
        fake_esp32, fake_nvs = self.create_backend()
        fake_nvs.values = {"netName": b"Home", "other": 1}
        with patch("storage.esp32", fake_esp32):
            handle = NVSBackend().open("ns")
            handle.clear()

        assert fake_nvs.values == {"other": 1}

    def test_text_at_limit_round_trips(self):
        fake_esp32, _ = self.create_backend()
        value = "t" * NVSHandle.TEXT_MAX_BYTES
        with patch("storage.esp32", fake_esp32):
            handle = NVSBackend().open("ns")
            handle.put("mqttTopic", "text", value)
            assert handle.get("mqttTopic", "text") == value

    def test_text_over_limit_is_rejected(self):
        fake_esp32, fake_nvs = self.create_backend()
        with patch("storage.esp32", fake_esp32):
            handle = NVSBackend().open("ns")
            with pytest.raises(ValueError):
                # Multi-byte characters count by their encoded length
                handle.put("mqttPass", "text", "\u00e9" * 129)
        assert "mqttPass" not in fake_nvs.values

    def test_oversized_blob_is_not_reported_missing(self):
        fake_esp32, fake_nvs = self.create_backend()
        fake_nvs.values["mqttTopic"] = b"t" * 300
        with patch("storage.esp32", fake_esp32):
            handle = NVSBackend().open("ns")
            with pytest.raises(OSError):
                handle.get("mqttTopic", "text")


class TestSettingsStoreOnNVS:
    """SettingsStore over the NVS backend with long text values."""

    def create_backend(self):
        fake_nvs = FakeNVS("ns")
        fake_esp32 = MagicMock()
        fake_esp32.NVS.return_value = fake_nvs
        return fake_esp32, fake_nvs

    def test_long_value_is_refused_and_old_value_kept(self):
        fake_esp32, _ = self.create_backend()
        with patch("storage.esp32", fake_esp32):
            store = SettingsStore(NVSBackend(), "ns")
            assert store.set_text("mqttTopic", "sensors/desk") is True
            assert store.set_text("mqttTopic", "t/" * 150) is False
            assert store.get_text("mqttTopic") == "sensors/desk"

    def test_unreadable_value_is_not_replaced_by_sentinel(self):
        fake_esp32, fake_nvs = self.create_backend()
        fake_nvs.values["mqttTopic"] = b"t/" * 150
        with patch("storage.esp32", fake_esp32):
            store = SettingsStore(NVSBackend(), "ns")
            assert store.get_text("mqttTopic") == "Unknown"
        assert fake_nvs.values["mqttTopic"] == b"t/" * 150


class TestDefaultBackend:
    """Tests for backend selection."""

    def test_json_backend_off_device(self, tmp_path):
        with patch("storage.esp32", None):
            assert isinstance(default_backend(str(tmp_path)), JsonFileBackend)

    def test_nvs_backend_on_esp32(self, tmp_path):
        with patch("storage.esp32", MagicMock()):
            assert isinstance(default_backend(str(tmp_path)), NVSBackend)
