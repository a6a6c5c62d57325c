#!/usr/bin/env python3
try:
    import better_exceptions as b_e
    import sys
    sys.excepthook = b_e.excepthook
except ImportError:
    pass

import argparse, logging, queue, sys, threading
import numpy as np
import pygame

from Chip8 import CHIP8, CHIP8Error, DISPLAY_WIDTH, DISPLAY_HEIGHT
from handoff import Handoff
from host import emulate
from loader import loadfile, HexImageError

OFF_COLOR = ( 20, 50, 80)
ON_COLOR  = (100,255,100)
PIX_SIZE = 20
FPS = 60 # Frames per Second
IPS = 700 # Instructions per Second
TONE_HZ = 440
SAMPLE_RATE = 44100
BEEP_MS = 120
KEYMAP = {
    pygame.K_1: 0x1, pygame.K_2: 0x2, pygame.K_3: 0x3, pygame.K_4: 0xC,
    pygame.K_q: 0x4, pygame.K_w: 0x5, pygame.K_e: 0x6, pygame.K_r: 0xD,
    pygame.K_a: 0x7, pygame.K_s: 0x8, pygame.K_d: 0x9, pygame.K_f: 0xE,
    pygame.K_z: 0xA, pygame.K_x: 0x0, pygame.K_c: 0xB, pygame.K_v: 0xF,

    pygame.K_SPACE: 0x6,

                        pygame.K_UP:   0x5,
    pygame.K_LEFT: 0x7, pygame.K_DOWN: 0x8, pygame.K_RIGHT: 0x9,
}

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run a CHIP-8 program")
    parser.add_argument("rom",
                        help="Program image, hex words unless --binary")
    parser.add_argument("-b", "--binary", action="store_true",
                        help="Read the program as raw .ch8 bytes")
    parser.add_argument("--ips", type=int, default=IPS,
                        help="Instructions executed per second")
    parser.add_argument("--scale", type=int, default=PIX_SIZE,
                        help="Size of one CHIP-8 pixel on screen")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every instruction")
    return parser.parse_args(argv)

def make_buzzer():
    # One second of a sine tone, cut short by play(maxtime=...)
    length = SAMPLE_RATE / TONE_HZ
    one_cycle = 4096 * np.sin(np.arange(int(length)) * (np.pi * 2 / length))
    wave = np.resize(one_cycle, (SAMPLE_RATE,)).astype(np.int16)
    return pygame.sndarray.make_sound(wave)

def draw(frame, win, pix_size):
    for i in range(DISPLAY_WIDTH*DISPLAY_HEIGHT):
        pix_rect = (
            i%DISPLAY_WIDTH*pix_size, i//DISPLAY_WIDTH*pix_size,
            pix_size, pix_size
        )
        pygame.draw.rect(win, ON_COLOR if frame[i] else OFF_COLOR, pix_rect)
    pygame.display.update()

def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s]:  %(message)s", stream=sys.stdout
    )

    try:
        code = loadfile(args.rom, args.binary)
    except (OSError, HexImageError) as e:
        sys.stderr.write(f"Could not load {args.rom}: {e}\n")
        return 1

    c = CHIP8()
    c.load_font()
    try:
        c.load_program(code)
    except CHIP8Error as e:
        sys.stderr.write("CHIP-8 Error: " + str(e) + "\n")
        return 1

    pygame.mixer.init(SAMPLE_RATE, -16, 1, 64)
    pygame.init()
    win = pygame.display.set_mode((DISPLAY_WIDTH*args.scale, DISPLAY_HEIGHT*args.scale))
    pygame.display.set_caption("Chippy")
    buzz = make_buzzer()
    draw(c.snapshot(), win, args.scale)

    handoff = Handoff()
    key_events = queue.Queue()
    worker = threading.Thread(
        target=emulate, args=(c, handoff, key_events, args.ips), daemon=True
    )
    worker.start()

    status = 0
    clock = pygame.time.Clock()
    try:
        while True:
            clock.tick(FPS)
            for event in pygame.event.get():
                if event.type in (pygame.KEYDOWN, pygame.KEYUP):
                    if event.key in KEYMAP:
                        key_events.put((KEYMAP[event.key], event.type == pygame.KEYDOWN))
                elif event.type == pygame.QUIT:
                    raise KeyboardInterrupt()
            handoff.raise_if_failed()
            frame = handoff.take_frame()
            if frame is not None:
                draw(frame, win, args.scale)
            if handoff.take_beep():
                buzz.play(maxtime=BEEP_MS)
    except CHIP8Error as e:
        sys.stderr.write("CHIP-8 Error: " + str(e) + "\n")
        status = 1
    except KeyboardInterrupt:
        print("Goodbye!")
    finally:
        handoff.stop()
        worker.join()
        pygame.quit()
    return status

if __name__ == "__main__":
    sys.exit(main())
