import threading

class Handoff:
    """
    Passes what the emulation thread produces over to the UI thread.
    Only the newest frame is kept. Frames must be bytes, never the live
    framebuffer.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._frame = None
        self._beeps = 0
        self._error = None
        self._stop = threading.Event()

    def publish(self, frame):
        if not isinstance(frame, bytes):
            raise TypeError("Frames must be published as bytes snapshots")
        with self._lock:
            self._frame = frame

    def take_frame(self):
        with self._lock:
            frame, self._frame = self._frame, None
        return frame

    def signal_beep(self):
        with self._lock:
            self._beeps += 1

    def take_beep(self):
        with self._lock:
            beeps, self._beeps = self._beeps, 0
        return beeps

    def fail(self, error):
        with self._lock:
            self._error = error
        self._stop.set()

    def raise_if_failed(self):
        with self._lock:
            error = self._error
        if error is not None:
            raise error

    def stop(self):
        self._stop.set()

    @property
    def stopped(self):
        return self._stop.is_set()

    def wait(self, timeout):
        # True if stop() was called while waiting
        return self._stop.wait(timeout)
