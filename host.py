import logging, queue, time

from Chip8 import CHIP8Error

logger = logging.getLogger(__name__)

TIMER_HZ = 60

def apply_keys(chip, key_events):
    # Drain (key, pressed) pairs queued by the UI thread
    while True:
        try:
            key, pressed = key_events.get_nowait()
        except queue.Empty:
            return
        if pressed:
            chip.press(key)
        else:
            chip.release(key)

def emulate(chip, handoff, key_events, ips):
    """
    Emulation thread. Owns the machine: applies queued key changes, runs
    ips/TIMER_HZ instructions per timer tick and publishes snapshots.
    A CHIP8Error stops the loop and is handed over to the UI thread.
    """
    steps_per_tick = max(1, ips // TIMER_HZ)
    period = 1 / TIMER_HZ
    next_tick = time.perf_counter()
    try:
        while not handoff.stopped:
            apply_keys(chip, key_events)
            for _ in range(steps_per_tick):
                chip.step()
            if chip.tick():
                handoff.signal_beep()
            if chip.drawFlag:
                chip.drawFlag = False
                handoff.publish(chip.snapshot())
            next_tick += period
            delay = next_tick - time.perf_counter()
            if delay > 0:
                handoff.wait(delay)
            else:
                next_tick = time.perf_counter()
    except CHIP8Error as e:
        logger.debug(f"Emulation stopped at {hex(chip.pc)}: {e}")
        handoff.fail(e)
