import asyncio
import logging
import threading

import pasimple
import webrtcvad

logger = logging.getLogger(__name__)

# webrtcvad aggressiveness 0–3: higher filters more non-speech
_AGGRESSIVENESS = {"high": 0, "medium": 1, "low": 2}


def vad_aggressiveness(sensitivity: str = "medium", noise_reduction: bool = True) -> int:
    level = _AGGRESSIVENESS.get(sensitivity, 1)
    if noise_reduction:
        level += 1
    return min(level, 3)


# ── MicrophoneStream: continuous VAD capture as an async iterator of frames ───
class MicrophoneStream:
    """
    Reads 16-bit PCM from PulseAudio on a background thread, classifies
    every frame with WebRTC VAD and yields ``(frame, is_speech)`` pairs.
    """

    def __init__(
        self,
        format=pasimple.PA_SAMPLE_S16LE,
        channels=1,
        sample_rate=16000,
        frame_ms=30,
        sensitivity="medium",
        noise_reduction=True,
    ):
        self.FORMAT = format
        self.channels = channels
        self.sample_rate = sample_rate
        self.sample_width = pasimple.format2width(format)
        self.frame_ms = frame_ms    # 10, 20 or 30
        self.FRAME_BYTES = int(sample_rate * frame_ms / 1000) * self.sample_width * channels

        self.vad = webrtcvad.Vad(vad_aggressiveness(sensitivity, noise_reduction))
        self._running = False
        self._loop = None
        self._queue = None

    @classmethod
    def from_config(cls, config: dict) -> "MicrophoneStream":
        audio = config["audio"]
        recognition = config["recognition"]
        return cls(
            sample_rate=audio["sample_rate"],
            frame_ms=audio["frame_ms"],
            sensitivity=recognition["sensitivity"],
            noise_reduction=recognition["noise_reduction"],
        )

    def open(self):
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._running = True
        threading.Thread(target=self._reader, daemon=True).start()

    def close(self):
        self._running = False
        if self._queue is not None:
            while not self._queue.empty():
                self._queue.get_nowait()

    def _push(self, item):
        self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def _reader(self):
        try:
            with pasimple.PaSimple(pasimple.PA_STREAM_RECORD, self.FORMAT, self.channels, self.sample_rate) as pa:
                while self._running:
                    frame = pa.read(self.FRAME_BYTES)
                    if len(frame) < self.FRAME_BYTES:
                        break
                    is_speech = self.vad.is_speech(frame, self.sample_rate)
                    self._push((frame, is_speech))
        except Exception as e:
            logger.error("Microphone capture failed: %s", e, exc_info=True)
            self._push(e)
        finally:
            self._running = False
            self._push(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._queue is None:
            self.open()
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise OSError(f"audio capture failed: {item}") from item
        return item
