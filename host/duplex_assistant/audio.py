# duplex_assistant/audio.py
"""
Microphone capture and audio playback devices
"""

import asyncio
import io
import logging
import threading
from typing import Iterable, Optional

import numpy as np
import soundfile as sf

from .events import EventEmitter

logger = logging.getLogger(__name__)


def frame_energy(frame: bytes) -> float:
    """RMS energy of a raw int16 frame"""
    samples = np.frombuffer(frame, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples.astype(float) ** 2)))


def frames_to_wav(frames: Iterable[bytes], sample_rate: int) -> Optional[io.BytesIO]:
    """Pack raw int16 mono frames into an in-memory WAV file"""
    wav_buffer = io.BytesIO()
    try:
        with sf.SoundFile(
            wav_buffer,
            mode="w",
            samplerate=sample_rate,
            channels=1,
            subtype="PCM_16",
            format="WAV"
        ) as sound_file:
            for frame in frames:
                sound_file.buffer_write(frame, dtype="int16")
    except Exception as e:
        logger.error(f"Error creating WAV file: {e}")
        return None

    wav_buffer.seek(0)
    wav_buffer.name = "speech.wav"
    return wav_buffer


def wav_to_pcm(data: bytes, sample_rate: int) -> bytes:
    """Decode a WAV payload to raw int16 mono PCM at `sample_rate`"""
    samples, source_rate = sf.read(io.BytesIO(data), dtype="int16", always_2d=True)
    mono = samples.mean(axis=1).astype(np.int16)
    if source_rate != sample_rate and mono.size:
        # Linear resample, good enough for speech replies
        duration = mono.size / source_rate
        target = np.linspace(0, mono.size - 1, int(duration * sample_rate))
        mono = np.interp(target, np.arange(mono.size), mono).astype(np.int16)
    return mono.tobytes()


class Microphone(EventEmitter):
    """Captures the default input device and emits `data` frames while enabled.

    The stream runs continuously; `enabled` gates delivery. Frames are handed to
    the event loop thread so listeners never run on the audio thread.
    """

    def __init__(self, sample_rate: int = 16000, block_duration: float = 0.03,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self.sample_rate = sample_rate
        self.blocksize = int(sample_rate * block_duration)
        self.loop = loop
        self.stream = None
        self._enabled = False
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        value = bool(value)
        if value == self._enabled:
            return
        self._enabled = value
        logger.debug(f"Microphone {'enabled' if value else 'disabled'}")

    def start(self):
        """Open the input stream"""
        with self._lock:
            if self.stream:
                return
            import sounddevice as sd

            self.loop = self.loop or asyncio.get_running_loop()
            self.stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                blocksize=self.blocksize,
                dtype="int16",
                channels=1,
                callback=self._audio_callback
            )
            self.stream.start()
            logger.info("Microphone stream started")
        self.emit("ready")

    def close(self):
        with self._lock:
            self._enabled = False
            if self.stream:
                self.stream.stop()
                self.stream.close()
                self.stream = None
            logger.info("Microphone stream closed")

    def _audio_callback(self, indata, frames, time_info, status):
        if status:
            logger.warning(f"Audio input status: {status}")
        if self._enabled and self.loop:
            self.loop.call_soon_threadsafe(self._deliver, bytes(indata))

    def _deliver(self, frame: bytes):
        # Re-check on the loop thread, the gate may have closed meanwhile
        if self._enabled:
            self.emit("data", frame)


class Player(EventEmitter):
    """Plays raw int16 mono PCM chunks on the default output device.

    Emits `ready` once the output stream is open and `waiting` whenever the
    buffered audio has drained and the player goes idle.
    """

    PING_FREQUENCY = 880.0
    PING_DURATION = 0.12

    def __init__(self, sample_rate: int = 24000, ping_file: str = "",
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self.sample_rate = sample_rate
        self.ping_file = ping_file
        self.loop = loop
        self.stream = None
        self.playing = False
        self._buffer = bytearray()
        self._lock = threading.Lock()

    @property
    def idle(self) -> bool:
        return not self.playing

    def start(self):
        """Open the output stream"""
        if self.stream:
            return
        import sounddevice as sd

        self.loop = self.loop or asyncio.get_running_loop()
        self.stream = sd.RawOutputStream(
            samplerate=self.sample_rate,
            dtype="int16",
            channels=1,
            callback=self._output_callback
        )
        self.stream.start()
        logger.info("Audio player stream started")
        self.emit("ready")

    def close(self):
        self.stop()
        if self.stream:
            self.stream.stop()
            self.stream.close()
            self.stream = None

    def append_buffer(self, chunk: bytes):
        """Queue decoded audio and start playing it"""
        if not chunk:
            return
        with self._lock:
            self._buffer.extend(chunk)
        self.play()

    def play(self):
        """Play whatever is buffered. Goes idle immediately if nothing is."""
        with self._lock:
            has_audio = bool(self._buffer)
        if has_audio:
            self.playing = True
        elif self.playing:
            self._set_idle()

    def stop(self):
        """Discard buffered audio"""
        with self._lock:
            self._buffer.clear()
        if self.playing:
            self._set_idle()

    def play_ping(self):
        """Short audible cue, e.g. when the microphone opens"""
        self.append_buffer(self._ping_samples())

    def wait_idle(self) -> asyncio.Future:
        """Future resolved when playback is (or becomes) idle"""
        if self.idle:
            future = asyncio.get_running_loop().create_future()
            future.set_result(None)
            return future
        return self.wait_for("waiting")

    def _ping_samples(self) -> bytes:
        if self.ping_file:
            try:
                with open(self.ping_file, "rb") as f:
                    return wav_to_pcm(f.read(), self.sample_rate)
            except (OSError, RuntimeError) as e:
                logger.warning(f"Could not read ping file {self.ping_file}: {e}")
        t = np.arange(int(self.sample_rate * self.PING_DURATION)) / self.sample_rate
        envelope = np.hanning(t.size)
        tone = 0.3 * np.sin(2 * np.pi * self.PING_FREQUENCY * t) * envelope
        return (tone * 32767).astype(np.int16).tobytes()

    def _set_idle(self):
        self.playing = False
        logger.debug("Playback idle")
        self.emit("waiting")

    def _output_callback(self, outdata, frames, time_info, status):
        if status:
            logger.warning(f"Audio output status: {status}")
        wanted = len(outdata)
        with self._lock:
            chunk = bytes(self._buffer[:wanted])
            del self._buffer[:wanted]
            drained = not self._buffer
        outdata[:len(chunk)] = chunk
        if len(chunk) < wanted:
            outdata[len(chunk):] = b"\x00" * (wanted - len(chunk))
        if drained and self.playing and self.loop:
            self.loop.call_soon_threadsafe(self._drained)

    def _drained(self):
        with self._lock:
            empty = not self._buffer
        if empty and self.playing:
            self._set_idle()
