"""Tests for the boot controller."""

# pyright: reportPrivateUsage=false

from unittest.mock import Mock, patch

from main import DeviceController
from models import default_config
from settings_store import SettingsStore
from storage import JsonFileBackend


def complete_settings(tmp_path):
    """Persist a complete configuration in tmp_path."""
    device_config = default_config()
    device_config.update(
        netName="Home",
        netPass="secret",
        mqttSrvAdr="broker.local",
        mqttSrvPort=1883,
        mqttUser="device",
        mqttPass="hunter2",
        mqttClient="smaf-01",
        mqttTopic="sensors/desk",
        audioNotif=False,
        visualNotif=True,
    )
    SettingsStore(JsonFileBackend(str(tmp_path))).save(device_config)
    return device_config


def create_controller(tmp_path):
    with patch("main.default_backend", return_value=JsonFileBackend(str(tmp_path))):
        return DeviceController()


class TestDeviceController:
    """Tests for DeviceController boot decisions."""

    def test_fresh_device_needs_configuration(self, tmp_path):
        controller = create_controller(tmp_path)
        assert controller.device_config == default_config()
        assert controller.needs_configuration() is True

    def test_valid_settings_skip_portal(self, tmp_path):
        saved = complete_settings(tmp_path)
        controller = create_controller(tmp_path)

        with patch("main.CaptivePortalServer") as portal_class:
            assert controller.run() == saved
        portal_class.assert_not_called()

    def test_notifier_follows_stored_flags(self, tmp_path):
        complete_settings(tmp_path)
        controller = create_controller(tmp_path)
        assert controller._notifier._audio_enabled is False
        assert controller._notifier._visual_enabled is True

    def test_config_button_ignored_off_device(self, tmp_path):
        assert create_controller(tmp_path).config_button_held() is False


class TestPortalLoop:
    """Tests for the portal poll loop."""

    def test_bounded_loop_polls_then_stops(self, tmp_path):
        controller = create_controller(tmp_path)

        with patch("main.CaptivePortalServer") as portal_class, \
             patch("main.time.sleep") as sleep:
            controller.run_portal(max_polls=3)

        portal = portal_class.return_value
        portal.start.assert_called_once()
        assert portal.poll.call_count == 3
        assert sleep.call_count == 3
        portal.stop.assert_called_once()

    def test_portal_shares_store_and_notifier(self, tmp_path):
        controller = create_controller(tmp_path)

        with patch("main.CaptivePortalServer") as portal_class, \
             patch("main.time.sleep"):
            controller.run_portal(max_polls=1)

        portal_class.assert_called_once_with(controller._store, notifier=controller._notifier)

    def test_watchdog_fed_each_poll(self, tmp_path):
        controller = create_controller(tmp_path)
        controller._wdt = Mock()

        with patch("main.CaptivePortalServer"), patch("main.time.sleep"):
            controller.run_portal(max_polls=2)

        assert controller._wdt.feed.call_count == 2

    def test_incomplete_settings_enter_portal(self, tmp_path):
        controller = create_controller(tmp_path)

        with patch.object(controller, "run_portal") as run_portal:
            assert controller.run() is None
        run_portal.assert_called_once_with()


class TestFactoryReset:
    """Tests for erasing the stored settings."""

    def test_factory_reset_erases_settings(self, tmp_path):
        complete_settings(tmp_path)
        controller = create_controller(tmp_path)

        controller.factory_reset()

        assert SettingsStore(JsonFileBackend(str(tmp_path))).load() == default_config()
