import logging, random
from collections import namedtuple
from enum import IntEnum

#4x5 hex fontset
from fontset import fontset, FONT_START, GLYPH_SIZE

logger = logging.getLogger(__name__)

MEMORY_SIZE = 4096
PROGRAM_START = 0x200
DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
STACK_DEPTH = 16
KEY_COUNT = 16

class CHIP8Error(Exception):
    pass

class ImageTooLarge(CHIP8Error):
    pass

class AddressOutOfRange(CHIP8Error):
    pass

class StackOverflow(CHIP8Error):
    pass

class StackUnderflow(CHIP8Error):
    pass

class OpGroup(IntEnum):
    """High nibble of an instruction word."""
    SYSTEM = 0x0
    JUMP = 0x1
    CALL = 0x2
    SKIP_EQ_IMM = 0x3
    SKIP_NE_IMM = 0x4
    SKIP_EQ_REG = 0x5
    LOAD_IMM = 0x6
    ADD_IMM = 0x7
    ALU = 0x8
    SKIP_NE_REG = 0x9
    LOAD_INDEX = 0xA
    JUMP_OFFSET = 0xB
    RANDOM = 0xC
    DRAW = 0xD
    KEY = 0xE
    MISC = 0xF

# A decoded instruction word: the group tag plus every operand field
Instruction = namedtuple("Instruction", "group word x y n nn nnn")

class CHIP8:
    """
    A single CHIP-8 machine. The host drives it by calling step() at its
    own instruction rate and tick() at the timer rate (usually 60Hz), and
    must do both from the same thread.
    """
    def __init__(self, rng=None):
        self.memory = bytearray(MEMORY_SIZE)
        self.V = bytearray(16)
        self.I = 0
        self.pc = PROGRAM_START
        self.gfx = bytearray(DISPLAY_WIDTH*DISPLAY_HEIGHT)

        self.delay_timer = 0
        self.sound_timer = 0

        self.keys = bytearray(KEY_COUNT)

        self.drawFlag = False
        self.awaiting_key = False

        self.stack = []

        self.rng = rng if rng is not None else random.Random()

        self._handlers = {
            OpGroup.SYSTEM: self._system,
            OpGroup.JUMP: self._jump,
            OpGroup.CALL: self._call,
            OpGroup.SKIP_EQ_IMM: self._skip_eq_imm,
            OpGroup.SKIP_NE_IMM: self._skip_ne_imm,
            OpGroup.SKIP_EQ_REG: self._skip_eq_reg,
            OpGroup.LOAD_IMM: self._load_imm,
            OpGroup.ADD_IMM: self._add_imm,
            OpGroup.ALU: self._alu,
            OpGroup.SKIP_NE_REG: self._skip_ne_reg,
            OpGroup.LOAD_INDEX: self._load_index,
            OpGroup.JUMP_OFFSET: self._jump_offset,
            OpGroup.RANDOM: self._random,
            OpGroup.DRAW: self._draw,
            OpGroup.KEY: self._key,
            OpGroup.MISC: self._misc,
        }

    @property
    def sp(self):
        return len(self.stack)

    def _check_span(self, address, length):
        if address < 0 or address + length > MEMORY_SIZE:
            raise AddressOutOfRange(
                f"Access of {length} byte(s) at {hex(address)} leaves memory"
            )

    def load_program(self, data):
        data = bytes(data)
        if PROGRAM_START + len(data) > MEMORY_SIZE:
            raise ImageTooLarge(
                f"Program is {len(data)} bytes, only "
                f"{MEMORY_SIZE - PROGRAM_START} fit after {hex(PROGRAM_START)}"
            )
        self.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        logger.debug(f"Loaded {len(data)} byte program at {hex(PROGRAM_START)}")

    def load_font(self, glyphs=fontset, address=FONT_START):
        glyphs = bytes(glyphs)
        self._check_span(address, len(glyphs))
        self.memory[address:address + len(glyphs)] = glyphs
        logger.debug(f"Loaded {len(glyphs)} byte font at {hex(address)}")

    def press(self, key):
        if not 0 <= key < KEY_COUNT:
            raise ValueError(f"No such key: {key}")
        self.keys[key] = 1

    def release(self, key):
        if not 0 <= key < KEY_COUNT:
            raise ValueError(f"No such key: {key}")
        self.keys[key] = 0

    def snapshot(self):
        """Return an immutable copy of the framebuffer, row-major, one byte per pixel."""
        return bytes(self.gfx)

    def fetch(self):
        self._check_span(self.pc, 2)
        opcode = self.memory[self.pc] << 8 | self.memory[self.pc + 1]
        self.pc += 2
        return opcode

    @staticmethod
    def decode(opcode):
        return Instruction(
            group=OpGroup(opcode >> 12),
            word=opcode,
            x=(opcode & 0x0F00) >> 8,
            y=(opcode & 0x00F0) >> 4,
            n=opcode & 0x000F,
            nn=opcode & 0x00FF,
            nnn=opcode & 0x0FFF,
        )

    def execute(self, op):
        self._handlers[op.group](op)

    def step(self):
        op = self.decode(self.fetch())
        logger.debug("%03X: %04X", self.pc - 2, op.word)
        self.awaiting_key = False
        self.execute(op)
        return op

    def tick(self):
        """
        Count both timers down by one, stopping at 0. Returns True when the
        sound timer ran out on this tick.
        """
        beep = self.sound_timer == 1
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1
        if beep:
            logger.debug("Sound timer expired")
        return beep

    def _unknown(self, op):
        logger.warning(f"Unknown OpCode at {hex(self.pc - 2)}: 0x{op.word:04X}")

    def _skip(self):
        self.pc += 2

    # Execute, one handler per OpGroup

    def _system(self, op):
        if op.word == 0x00E0:
            # 00E0: Clear screen
            self.gfx[:] = bytes(len(self.gfx))
            self.drawFlag = True
        elif op.word == 0x00EE:
            # 00EE: Return from subroutine
            if not self.stack:
                raise StackUnderflow(f"Return at {hex(self.pc - 2)} has nowhere to go")
            self.pc = self.stack.pop()
        else:
            self._unknown(op)

    def _jump(self, op):
        # 1nnn: Jump to [nnn]
        self.pc = op.nnn

    def _call(self, op):
        # 2nnn: Call subroutine at [nnn]
        if len(self.stack) == STACK_DEPTH:
            raise StackOverflow(f"Stack is full, cannot call {hex(op.nnn)}")
        self.stack.append(self.pc)
        self.pc = op.nnn

    def _skip_eq_imm(self, op):
        # 3xnn: Skips next instruction if V[x] equals [nn]
        if self.V[op.x] == op.nn:
            self._skip()

    def _skip_ne_imm(self, op):
        # 4xnn: Skips next instruction if V[x] doesn't equal [nn]
        if self.V[op.x] != op.nn:
            self._skip()

    def _skip_eq_reg(self, op):
        # 5xy0: Skips next instruction if V[x] equals V[y]
        if self.V[op.x] == self.V[op.y]:
            self._skip()

    def _load_imm(self, op):
        # 6xnn: Set V[x] to [nn]
        self.V[op.x] = op.nn

    def _add_imm(self, op):
        # 7xnn: Add [nn] to V[x], VF untouched
        self.V[op.x] = (self.V[op.x] + op.nn) % 256

    def _alu(self, op):
        V, x, y = self.V, op.x, op.y
        # Vf is written before V[x], so with x or y = F the result sees the flag
        if op.n == 0x0:
            # 8xy0: Set V[x] to V[y]
            V[x] = V[y]
        elif op.n == 0x1:
            # 8xy1: Set V[x] to V[x] OR V[y]
            V[x] |= V[y]
        elif op.n == 0x2:
            # 8xy2: Set V[x] to V[x] AND V[y]
            V[x] &= V[y]
        elif op.n == 0x3:
            # 8xy3: Set V[x] to V[x] XOR V[y]
            V[x] ^= V[y]
        elif op.n == 0x4:
            # 8xy4: Add V[y] to V[x], Vf is the carry
            total = V[x] + V[y]
            V[0xF] = int(total > 255)
            V[x] = total % 256
        elif op.n == 0x5:
            # 8xy5: Subtract V[y] from V[x], Vf is 1 only when V[x] > V[y]
            V[0xF] = int(V[x] > V[y])
            V[x] = (V[x] - V[y]) % 256
        elif op.n == 0x6:
            # 8xy6: Shift V[x] right by 1, Vf is the bit shifted out
            V[0xF] = V[x] & 1
            V[x] = V[x] >> 1
        elif op.n == 0x7:
            # 8xy7: Set V[x] to V[y] - V[x], Vf is 1 only when V[y] > V[x]
            V[0xF] = int(V[y] > V[x])
            V[x] = (V[y] - V[x]) % 256
        elif op.n == 0xE:
            # 8xyE: Shift V[x] left by 1, Vf is the bit shifted out
            V[0xF] = V[x] >> 7
            V[x] = (V[x] << 1) % 256
        else:
            self._unknown(op)

    def _skip_ne_reg(self, op):
        # 9xy0: Skips next instruction if V[x] doesn't equal V[y]
        if self.V[op.x] != self.V[op.y]:
            self._skip()

    def _load_index(self, op):
        # Annn: Set I to [nnn]
        self.I = op.nnn

    def _jump_offset(self, op):
        # Bnnn: Jump to [nnn] plus V0
        self.pc = op.nnn + self.V[0]

    def _random(self, op):
        # Cxnn: Set V[x] to a random number, and bitwise-AND it with [nn]
        self.V[op.x] = self.rng.getrandbits(8) & op.nn

    def _draw(self, op):
        # Dxyn: XOR sprite stored at I with height [n] at V[x], V[y],
        # wrapping around both edges of the display
        self._check_span(self.I, op.n)
        x, y = self.V[op.x], self.V[op.y]
        flipped_off = 0
        for sy in range(op.n):
            row = self.memory[self.I + sy]
            for sx in range(8):
                if not row & (0x80 >> sx):
                    continue
                gfx_index = ((x + sx) % DISPLAY_WIDTH) + \
                    ((y + sy) % DISPLAY_HEIGHT) * DISPLAY_WIDTH
                flipped_off |= self.gfx[gfx_index]
                self.gfx[gfx_index] ^= 1
        self.V[0xF] = flipped_off
        self.drawFlag = True

    def _key_down(self, value):
        # Keys outside the keypad are never pressed
        return value < KEY_COUNT and bool(self.keys[value])

    def _key(self, op):
        if op.nn == 0x9E:
            # Ex9E: Skips next instruction if the key V[x] is pressed
            if self._key_down(self.V[op.x]):
                self._skip()
        elif op.nn == 0xA1:
            # ExA1: Skips next instruction if the key V[x] is not pressed
            if not self._key_down(self.V[op.x]):
                self._skip()
        else:
            self._unknown(op)

    def _misc(self, op):
        x = op.x
        if op.nn == 0x07:
            # Fx07: Set V[x] to delay timer
            self.V[x] = self.delay_timer
        elif op.nn == 0x0A:
            # Fx0A: Await key press and store in V[x]
            for i in range(KEY_COUNT):
                if self.keys[i]:
                    self.V[x] = i
                    break
            else:
                self.pc -= 2
                self.awaiting_key = True
        elif op.nn == 0x15:
            # Fx15: Set delay timer to V[x]
            self.delay_timer = self.V[x]
        elif op.nn == 0x18:
            # Fx18: Set sound timer to V[x]
            self.sound_timer = self.V[x]
        elif op.nn == 0x1E:
            # Fx1E: Add V[x] to I, VF untouched
            self.I = (self.I + self.V[x]) & 0xFFFF
        elif op.nn == 0x29:
            # Fx29: Set I to the font glyph for the value of V[x]
            self.I = FONT_START + self.V[x] * GLYPH_SIZE
        elif op.nn == 0x33:
            # Fx33: Dump the 3-digit decimal representation of V[x] into
            # memory, starting at I
            self._check_span(self.I, 3)
            value = self.V[x]
            self.memory[self.I] = value // 100
            self.memory[self.I + 1] = value // 10 % 10
            self.memory[self.I + 2] = value % 10
        elif op.nn == 0x55:
            # Fx55: Dump V0..V[x] into memory, starting at I
            self._check_span(self.I, x + 1)
            self.memory[self.I:self.I + x + 1] = self.V[:x + 1]
        elif op.nn == 0x65:
            # Fx65: Load memory into V0..V[x], starting at I
            self._check_span(self.I, x + 1)
            self.V[:x + 1] = self.memory[self.I:self.I + x + 1]
        else:
            self._unknown(op)
