import asyncio
import logging
import os
import subprocess
import threading
import uuid
from collections import deque

logger = logging.getLogger(__name__)


def _remove(path: str):
    try:
        os.remove(path)
    except OSError:
        logger.debug("Could not remove %s", path)


# ── AudioPlayer: FIFO playback queue on a worker thread ─────────────────────
class AudioPlayer:
    def __init__(self, command=("paplay",), tmp_dir: str = "tmp"):
        self.command = list(command)
        self.tmp_dir = tmp_dir

        self._audio_queue = deque()
        self._queue_lock = threading.Lock()
        self._queue_event = threading.Event()
        self._queue_running = True
        self._queue_process = None
        self._queue_thread = threading.Thread(target=self._queue_worker, daemon=True)
        self._queue_thread.start()

    @classmethod
    def from_config(cls, config: dict) -> "AudioPlayer":
        audio = config["audio"]
        return cls(command=audio["player_command"], tmp_dir=audio["tmp_dir"])

    async def play_bytes(self, data: bytes, suffix: str = ".mp3", interrupt: bool = False) -> str:
        """
        Write audio to a temp file and queue it; the file is removed after
        playback. With interrupt, the current sound and the queue are dropped.
        """
        path = os.path.join(self.tmp_dir, f"tts_{uuid.uuid4().hex}{suffix}")
        await asyncio.to_thread(self._write_file, path, data)
        if interrupt:
            self.force_queue_play(path, delete_after=True)
        else:
            self.add_audio_to_queue(path, delete_after=True)
        return path

    def _write_file(self, path: str, data: bytes):
        os.makedirs(self.tmp_dir, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def add_audio_to_queue(self, path: str, delete_after: bool = False):
        with self._queue_lock:
            self._audio_queue.append((path, delete_after))
            self._queue_event.set()

    def force_queue_play(self, path: str, delete_after: bool = False):
        with self._queue_lock:
            if self._queue_process:
                self._queue_process.kill()
            self._drop_queue()
            self._audio_queue.appendleft((path, delete_after))
            self._queue_event.set()

    def _queue_worker(self):
        while self._queue_running:
            self._queue_event.wait()
            while True:
                with self._queue_lock:
                    if not self._audio_queue:
                        self._queue_event.clear()
                        break
                    path, delete_after = self._audio_queue.popleft()
                try:
                    proc = subprocess.Popen(self.command + [path])
                    with self._queue_lock:
                        self._queue_process = proc
                    proc.wait()
                except OSError as e:
                    logger.error("Playback of %s failed: %s", path, e, exc_info=True)
                finally:
                    with self._queue_lock:
                        self._queue_process = None
                    if delete_after:
                        _remove(path)

    def _drop_queue(self):
        # caller holds _queue_lock
        for path, delete_after in self._audio_queue:
            if delete_after:
                _remove(path)
        self._audio_queue.clear()

    def stop_queue(self):
        self._queue_running = False
        with self._queue_lock:
            self._drop_queue()
            if self._queue_process:
                self._queue_process.kill()
        self._queue_event.set()
        self._queue_thread.join()
