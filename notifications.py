"""Audio and visual notifications shown while the device is being configured.

The portal calls two fire-and-forget hooks:
- configuration_started(): when the access point comes up
- configuration_saved(): after a submitted form has been persisted

Audio goes to a passive buzzer driven by PWM (one frequency per note), visual
feedback goes to the first two pixels of the on-board NeoPixel strip. Each
half can be switched off by the user through the audioNotif/visualNotif
settings, so a device in a quiet room does not beep every time it boots
into the portal.

Melodies:
--------
Notes are (frequency Hz, duration ms, pause after ms) tuples. The
maintenance melody is the familiar E6 E6 F6 G6 / E6 F6 G6 run the board
plays whenever it enters configuration mode.
"""

from __future__ import annotations

import time

try:
    import machine
    from machine import PWM, Pin
    import neopixel
except ImportError:
    # For desktop testing, machine module won't be available
    machine = None
    PWM = None
    Pin = None
    neopixel = None

import device_log

NOTE_E6 = 1319
NOTE_F6 = 1397
NOTE_G6 = 1568
NOTE_C7 = 2093

MAINTENANCE_MELODY: list[tuple[int, int, int]] = [
    (NOTE_E6, 120, 80),
    (NOTE_E6, 120, 80),
    (NOTE_F6, 120, 80),
    (NOTE_G6, 280, 0),
    (NOTE_E6, 120, 0),
    (NOTE_F6, 120, 0),
    (NOTE_G6, 320, 0),
]

SAVED_MELODY: list[tuple[int, int, int]] = [
    (NOTE_G6, 120, 40),
    (NOTE_C7, 320, 0),
]

MAGENTA = (255, 0, 255)
GREEN = (0, 204, 34)
OFF = (0, 0, 0)


class AudioVisualNotifier:
    """Plays tone sequences on the buzzer and colours on the status pixels.

    Attributes:
        _audio_enabled: Whether melodies may be played
        _visual_enabled: Whether the status pixels may be lit
        _buzzer: PWM object for the buzzer pin
        _pixels: NeoPixel object for the status LEDs
        _events: Names of notifications shown (for desktop testing)
    """

    STATUS_PIXELS: int = 2
    BUZZER_DUTY: int = 32768  # 50% square wave

    def __init__(
        self,
        buzzer_pin: int,
        led_pin: int,
        audio_enabled: bool = True,
        visual_enabled: bool = True,
    ) -> None:
        """Set up the buzzer and status pixels.

        Args:
            buzzer_pin: GPIO pin of the passive buzzer
            led_pin: GPIO pin of the NeoPixel data line
            audio_enabled: Stored audioNotif flag
            visual_enabled: Stored visualNotif flag
        """
        self._audio_enabled = audio_enabled
        self._visual_enabled = visual_enabled
        self._events: list[str] = []
        self._color: tuple[int, int, int] = OFF

        if machine is not None:
            self._buzzer = PWM(Pin(buzzer_pin), duty_u16=0)
            self._pixels = neopixel.NeoPixel(Pin(led_pin, Pin.OUT), self.STATUS_PIXELS)
        else:
            # Mock hardware for desktop testing
            self._buzzer = None
            self._pixels = None

    @property
    def events(self) -> list[str]:
        return list(self._events)

    @property
    def color(self) -> tuple[int, int, int]:
        return self._color

    def play(self, melody: list[tuple[int, int, int]]) -> None:
        """Play a melody, blocking until the last note ends."""
        if not self._audio_enabled or self._buzzer is None:
            return
        for frequency, duration_ms, pause_ms in melody:
            self._buzzer.freq(frequency)
            self._buzzer.duty_u16(self.BUZZER_DUTY)
            time.sleep_ms(duration_ms)
            self._buzzer.duty_u16(0)
            if pause_ms:
                time.sleep_ms(pause_ms)

    def show(self, color: tuple[int, int, int]) -> None:
        """Light the status pixels with one colour."""
        if not self._visual_enabled:
            return
        self._color = color
        if self._pixels is None:
            return
        for i in range(self.STATUS_PIXELS):
            self._pixels[i] = color
        self._pixels.write()

    def clear(self) -> None:
        """Silence the buzzer and switch the pixels off."""
        if self._buzzer is not None:
            self._buzzer.duty_u16(0)
        self._color = OFF
        if self._pixels is not None:
            self._pixels.fill(OFF)
            self._pixels.write()

    def _notify(self, name: str, color: tuple[int, int, int], melody: list[tuple[int, int, int]]) -> None:
        self._events.append(name)
        try:
            self.show(color)
            self.play(melody)
        except Exception as e:
            device_log.log(f"Notification '{name}' failed: {e}", device_log.ERROR)

    def configuration_started(self) -> None:
        self._notify("configuration_started", MAGENTA, MAINTENANCE_MELODY)

    def configuration_saved(self) -> None:
        self._notify("configuration_saved", GREEN, SAVED_MELODY)
