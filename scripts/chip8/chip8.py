# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite


import argparse
import array
import enum
import random
import sys
from collections import namedtuple
from functools import wraps
from types import MappingProxyType

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_0, K_1, K_2, K_3,
    K_4, K_5, K_6, K_7,
    K_8, K_9, K_a, K_b,
    K_c, K_d, K_e, K_f,
)


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

# host key -> logical key
KEY_MAPPINGS = MappingProxyType({
    K_0: 0x0,
    K_1: 0x1,
    K_2: 0x2,
    K_3: 0x3,
    K_4: 0x4,
    K_5: 0x5,
    K_6: 0x6,
    K_7: 0x7,
    K_8: 0x8,
    K_9: 0x9,
    K_a: 0xA,
    K_b: 0xB,
    K_c: 0xC,
    K_d: 0xD,
    K_e: 0xE,
    K_f: 0xF,
})

MEMORY_SIZE = 4096
FONT_START_ADDRESS = 0x000
GLYPH_HEIGHT = 5
ROM_START_ADDRESS = 0x200
REGISTER_COUNT = 16
STACK_DEPTH = 16
KEY_COUNT = 16
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
SCALE = 10
WINDOW_TITLE = "Chip8 Window"
FRAME_RATE = 60                     # host loop iterations per second
TIMER_HZ = 60
INSTRUCTIONS_PER_SECOND = 700
MAX_FRAME_TIME = 0.25               # seconds, longer pauses are not caught up
TONE_HZ = 440
SAMPLE_RATE = 44100
VOLUME = 0.05


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """base class of every error raised by the emulator"""


class ProgramTooLarge(Chip8Error):
    pass


class ExecutionError(Chip8Error):
    """an error that stops the run, located at the instruction that caused it"""
    def __init__(self, message, opcode=None, address=None):
        super().__init__(message)
        self.message = message
        self.opcode = opcode
        self.address = address

    def locate(self, opcode, address):
        if self.opcode is None:
            self.opcode = opcode
        if self.address is None:
            self.address = address

    def __str__(self):
        where = []
        if self.opcode is not None:
            where.append(f"opcode 0x{self.opcode:04x}")
        if self.address is not None:
            where.append(f"at 0x{self.address:04x}")
        if not where:
            return self.message
        return f"{self.message} ({' '.join(where)})"


class IllegalOpcode(ExecutionError):
    pass


class StackOverflow(ExecutionError):
    pass


class StackUnderflow(ExecutionError):
    pass


class MemoryAccessError(ExecutionError):
    pass


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to print out the ASM of the instruction being executed"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(self, ins):
            if DEBUG: print(f"mem_addr: 0x{self.fetched_at:04x}    instruction: " + msg.format(**ins._asdict()))
            return fn(self, ins)
        return wrapper_fn
    return decorator

def get_args(argv=None):
    parser = argparse.ArgumentParser(description="CHIP-8 emulator")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("--scale", type=int, default=SCALE,
                        help=f"window pixels per CHIP-8 pixel (default {SCALE})")
    parser.add_argument("--ips", type=int, default=INSTRUCTIONS_PER_SECOND,
                        help=f"instructions executed per second (default {INSTRUCTIONS_PER_SECOND})")
    parser.add_argument("--coupled", action="store_true",
                        help="execute one instruction per 60Hz timer tick")
    parser.add_argument("--legacy-store", action="store_true",
                        help="FX55/FX65 increment I past the copied registers")
    return parser.parse_args(argv)

def read_rom(path):
    """read a ROM image from the user specified path"""
    with open(path, mode='rb') as f:
        return f.read()

def square_wave(tone_hz=TONE_HZ, sample_rate=SAMPLE_RATE, volume=VOLUME, channels=1):
    """one second of signed 16 bit samples, interleaved when there is more than one channel"""
    amplitude = int(32767 * volume)
    half_period = max(1, sample_rate // (2 * tone_hz))
    samples = array.array("h")
    for t in range(sample_rate):
        value = amplitude if (t // half_period) % 2 == 0 else -amplitude
        samples.extend([value] * channels)
    return samples


# ******************** I/O SECTION
class Keyboard:
    def __init__(self, key_map=KEY_MAPPINGS):
        self.key_map = key_map
        self.key_states = [False] * KEY_COUNT

    def __str__(self):
        return str([f"{k:X}" for k, down in enumerate(self.key_states) if down])

    def map_key(self, host_key):
        return self.key_map.get(host_key)

    def key_down(self, host_key):
        """mark the logical key bound to host_key as pressed, return it (None when unmapped)"""
        key = self.map_key(host_key)
        if key is not None:
            self.key_states[key] = True
        return key

    def key_up(self, host_key):
        key = self.map_key(host_key)
        if key is not None:
            self.key_states[key] = False
        return key

    def is_key_down(self, key):
        return self.key_states[key]

class Screen:
    """
    monochrome framebuffer kept twice: one boolean per pixel for the interpreter
    and a packed RGB buffer (3 bytes per pixel, row-major) for whoever presents it
    """
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.pixel_states = [False] * w * h
        self.pixels_for_draw = bytearray(w * h * 3)
        self.dirty = True

    def __str__(self):
        return f"{self.w}x{self.h}, {sum(self.pixel_states)} pixels on"

    def pixel(self, x, y):
        """return True if pixel is ON, return False if pixel is OFF"""
        return self.pixel_states[y * self.w + x]

    def pixel_colors(self):
        return memoryview(self.pixels_for_draw).toreadonly()

    def _toggle_pixel(self, x, y):
        idx = y * self.w + x
        self.pixel_states[idx] = not self.pixel_states[idx]
        for i in range(idx * 3, idx * 3 + 3):
            self.pixels_for_draw[i] ^= 0xFF

    def draw_sprite(self, x, y, sprite):
        """
        XOR the sprite rows onto the screen, wrapping around the edges
        return True if any pixel that was ON got erased
        """
        collision = False
        for row, sprite_byte in enumerate(sprite):
            y_coordinate = (y + row) % self.h
            for col in range(8):            # MSB is the leftmost pixel
                if not sprite_byte & (0x80 >> col):
                    continue
                x_coordinate = (x + col) % self.w
                if self.pixel(x_coordinate, y_coordinate):
                    collision = True
                self._toggle_pixel(x_coordinate, y_coordinate)
        self.dirty = True
        return collision

    def clear(self):
        self.pixel_states = [False] * self.w * self.h
        self.pixels_for_draw[:] = bytes(len(self.pixels_for_draw))
        self.dirty = True

class Display:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, title=WINDOW_TITLE):
        pygame.display.set_caption(title)
        self.surface = pygame.display.set_mode((w * s, h * s))

    def render(self, screen):
        """scale the screen's RGB buffer up to the window and flip it"""
        frame = pygame.image.frombuffer(bytes(screen.pixel_colors()), (screen.w, screen.h), "RGB")
        self.surface.blit(pygame.transform.scale(frame, self.surface.get_size()), (0, 0))
        pygame.display.flip()
        screen.dirty = False

def make_beep(tone_hz=TONE_HZ, volume=VOLUME):
    """build the looping tone for the mixer, None when there is no audio device"""
    try:
        if not pygame.mixer.get_init():
            pygame.mixer.init(SAMPLE_RATE, -16, 1, 512)
        frequency, _, channels = pygame.mixer.get_init()
    except pygame.error as err:
        print(f"audio disabled: {err}", file=sys.stderr)
        return None
    wave = square_wave(tone_hz, frequency, volume, channels)
    return pygame.mixer.Sound(buffer=wave.tobytes())

class Beeper:
    def __init__(self, sound=None):
        self.playing = False
        self.sound = sound

    def update(self, active):
        """start or stop the tone, only acting when the state changes"""
        if active == self.playing:
            return
        self.playing = active
        if self.sound is None:
            return
        if active:
            self.sound.play(loops=-1)
        else:
            self.sound.stop()


# ******************** MEMORY SECTION
# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE OF 16 ADDRESSES
class Stack:
    def __init__(self, depth=STACK_DEPTH):
        self.addr_list = [0] * depth
        self.sp = 0

    def __len__(self):
        return self.sp

    def __str__(self):
        return str([f"0x{addr:04x}" for addr in self.addr_list[:self.sp]])

    def push(self, address):
        if self.sp >= len(self.addr_list):
            raise StackOverflow(f"The CHIP-8 stack can contain at most {len(self.addr_list)} addresses. Limit exceeded")
        self.addr_list[self.sp] = address
        self.sp += 1

    def pop(self):
        if self.sp == 0:
            raise StackUnderflow("Return from a subroutine with an empty stack")
        self.sp -= 1
        return self.addr_list[self.sp]

# ********** WRAPS A BYTEARRAY TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
class Memory:
    def __init__(self, size=MEMORY_SIZE):
        self.inner = bytearray(size)
        self.inner[FONT_START_ADDRESS:FONT_START_ADDRESS+len(C8_FONTS)] = bytes(C8_FONTS)

    def __len__(self):
        return len(self.inner)

    def _check(self, key):
        """validate an address or a contiguous range of addresses"""
        if isinstance(key, slice):
            start = 0 if key.start is None else key.start
            stop = len(self.inner) if key.stop is None else key.stop
            if key.step not in (None, 1) or start < 0 or stop > len(self.inner) or start > stop:
                raise MemoryAccessError(f"Memory range [{start:#06x}:{stop:#06x}] is out of bounds")
            return slice(start, stop)
        if not 0 <= key < len(self.inner):
            raise MemoryAccessError(f"Memory address {key:#06x} is out of bounds")
        return key

    def __setitem__(self, key, value):
        key = self._check(key)
        if isinstance(key, slice) and len(value) != key.stop - key.start:
            raise MemoryAccessError(f"Cannot write {len(value)} bytes into [{key.start:#06x}:{key.stop:#06x}]")
        self.inner[key] = value

    def __getitem__(self, key):
        key = self._check(key)
        if isinstance(key, slice):
            return bytes(self.inner[key])
        return self.inner[key]

    def load_rom(self, rom):
        """copy the ROM image at the start address, leaving memory untouched if it does not fit"""
        end = ROM_START_ADDRESS + len(rom)
        if end >= len(self.inner):
            limit = len(self.inner) - ROM_START_ADDRESS - 1
            raise ProgramTooLarge(f"The program size is too large: {len(rom)} bytes, at most {limit} fit")
        self.inner[ROM_START_ADDRESS:end] = bytes(rom)

class Registers:
    def __init__(self):
        self.v = [0] * REGISTER_COUNT
        self.i = 0      # specify where the sprites reside in memory
        self.pc = ROM_START_ADDRESS
        self.dt = 0     # delay timer, active when non-zero
        self.st = 0     # sound timer, active when non-zero

    def __str__(self):
        return (f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.i:04x} | DT:{self.dt} | ST:{self.st} | "
                f"VARIABLE_REGISTERS:{self.v}")


# ******************** DECODER SECTION
class Op(enum.Enum):
    """every CHIP-8 instruction, valued by its opcode with the operand fields zeroed"""
    CLS = 0x00E0
    RET = 0x00EE
    JP = 0x1000
    CALL = 0x2000
    SE_BYTE = 0x3000
    SNE_BYTE = 0x4000
    SE_REG = 0x5000
    LD_BYTE = 0x6000
    ADD_BYTE = 0x7000
    LD_REG = 0x8000
    OR = 0x8001
    AND = 0x8002
    XOR = 0x8003
    ADD_REG = 0x8004
    SUB = 0x8005
    SHR = 0x8006
    SUBN = 0x8007
    SHL = 0x800E
    SNE_REG = 0x9000
    LD_I = 0xA000
    JP_V0 = 0xB000
    RND = 0xC000
    DRW = 0xD000
    SKP = 0xE09E
    SKNP = 0xE0A1
    LD_VX_DT = 0xF007
    LD_VX_K = 0xF00A
    LD_DT_VX = 0xF015
    LD_ST_VX = 0xF018
    ADD_I = 0xF01E
    LD_F = 0xF029
    LD_B = 0xF033
    LD_MEM_VX = 0xF055
    LD_VX_MEM = 0xF065

Instruction = namedtuple("Instruction", "op x y n kk nnn")

# WATCH OUT: masks order is important!!!
# the lookup stops at the first mask whose table knows the masked opcode
OPCODE_MASKS = (
    (0xFFFF, (Op.CLS, Op.RET)),
    (0xF0FF, (Op.SKP, Op.SKNP, Op.LD_VX_DT, Op.LD_VX_K, Op.LD_DT_VX, Op.LD_ST_VX,
              Op.ADD_I, Op.LD_F, Op.LD_B, Op.LD_MEM_VX, Op.LD_VX_MEM)),
    (0xF00F, (Op.SE_REG, Op.LD_REG, Op.OR, Op.AND, Op.XOR, Op.ADD_REG, Op.SUB,
              Op.SHR, Op.SUBN, Op.SHL, Op.SNE_REG)),
    (0xF000, (Op.JP, Op.CALL, Op.SE_BYTE, Op.SNE_BYTE, Op.LD_BYTE, Op.ADD_BYTE,
              Op.LD_I, Op.JP_V0, Op.RND, Op.DRW)),
)
DECODE_TABLE = tuple((mask, {op.value: op for op in ops}) for mask, ops in OPCODE_MASKS)

def decode(opcode):
    """split an opcode into its instruction and operand fields"""
    for mask, ops in DECODE_TABLE:
        op = ops.get(opcode & mask)
        if op is not None:
            return Instruction(
                op=op,
                x=(opcode & 0x0F00) >> 8,
                y=(opcode & 0x00F0) >> 4,
                n=opcode & 0x000F,
                kk=opcode & 0x00FF,
                nnn=opcode & 0x0FFF,
            )
    raise IllegalOpcode(f"Illegal instruction 0x{opcode:04x}", opcode)


# ******************** CPU SECTION
class Chip8:
    def __init__(self, keyboard=None, screen=None, rng=None, legacy_store=False):
        self.mem = Memory()
        self.regs = Registers()
        self.stack = Stack()
        self.keyboard = keyboard if keyboard is not None else Keyboard()
        self.screen = screen if screen is not None else Screen()
        self.rng = rng if rng is not None else random.Random()
        self.legacy_store = legacy_store    # if True, FX55/FX65 increment I (COSMAC VIP quirk)
        self.waiting_for_key = None         # register index while FX0A is pending
        self.sound_active = False
        self.fetched_at = self.regs.pc
        self.instructions = {
            Op.CLS: self._clear_screen,
            Op.RET: self._return,
            Op.JP: self._jump,
            Op.CALL: self._call_addr,
            Op.SE_BYTE: self._skip_if_eq,
            Op.SNE_BYTE: self._skip_if_not_eq,
            Op.SE_REG: self._skip_if_eq_regs,
            Op.LD_BYTE: self._set_vk,
            Op.ADD_BYTE: self._add_to_vk,
            Op.LD_REG: self._set_vx_to_vy,
            Op.OR: self._set_vx_or_vy,
            Op.AND: self._set_vx_and_vy,
            Op.XOR: self._set_vx_xor_vy,
            Op.ADD_REG: self._add_vx_vy,
            Op.SUB: self._sub_vx_vy,
            Op.SHR: self._shr,
            Op.SUBN: self._subn_vx_vy,
            Op.SHL: self._shl,
            Op.SNE_REG: self._skip_if_not_eq_regs,
            Op.LD_I: self._set_idx,
            Op.JP_V0: self._jump_plus,
            Op.RND: self._random_byte_and,
            Op.DRW: self._to_screen,
            Op.SKP: self._skip_if_pressed,
            Op.SKNP: self._skip_if_not_pressed,
            Op.LD_VX_DT: self._set_vx_dt,
            Op.LD_VX_K: self._wait_keypress,
            Op.LD_DT_VX: self._set_dt_vx,
            Op.LD_ST_VX: self._set_st,
            Op.ADD_I: self._add_to_idx,
            Op.LD_F: self._select_char,
            Op.LD_B: self._bcd_repr,
            Op.LD_MEM_VX: self._store_vregs,
            Op.LD_VX_MEM: self._load_vregs,
        }

    def __str__(self):
        devices = f"SCREEN:{self.screen} | KEYBOARD:{self.keyboard}"
        registers = str(self.regs)
        stack = f"STACK:{self.stack}"
        flags = f"WAITING_FOR_KEY: {self.waiting_for_key} | SOUND: {self.sound_active}"
        return f"{registers}\n{stack}\n{devices}\n{flags}"

    def load(self, rom):
        self.mem.load_rom(rom)
        self.regs.pc = ROM_START_ADDRESS

    # ********** HOST INPUT
    def press(self, host_key):
        """forward a key-down event, completing a pending FX0A if the key is mapped"""
        key = self.keyboard.key_down(host_key)
        if key is not None and self.waiting_for_key is not None:
            self.regs.v[self.waiting_for_key] = key
            self.waiting_for_key = None
        return key

    def release(self, host_key):
        return self.keyboard.key_up(host_key)

    # ********** TIMERS
    def tick_delay(self):
        if self.regs.dt > 0:
            self.regs.dt -= 1

    def tick_sound(self):
        """decrement ST, the tone stays on for as long as ST was non-zero at the tick"""
        if self.regs.st > 0:
            self.sound_active = True
            self.regs.st -= 1
        else:
            self.sound_active = False

    # ********** FETCH / DECODE / EXECUTE
    def fetch(self):
        """each instruction is two bytes long, stored big-endian"""
        pc = self.regs.pc
        return self.mem[pc] << 8 | self.mem[pc + 1]

    def execute(self, opcode, address=None):
        """decode and run a single opcode, address defaults to the current PC"""
        self.fetched_at = self.regs.pc if address is None else address
        try:
            ins = decode(opcode)
            self.instructions[ins.op](ins)
        except ExecutionError as err:
            err.locate(opcode, self.fetched_at)
            raise

    def cycle(self):
        """run one instruction, return False while FX0A keeps the CPU suspended"""
        if self.waiting_for_key is not None:
            return False
        address = self.regs.pc
        try:
            opcode = self.fetch()
        except ExecutionError as err:
            err.locate(None, address)
            raise
        self._goto_next_instruction()
        self.execute(opcode, address)
        return True

    def _goto_next_instruction(self):
        self.regs.pc = (self.regs.pc + 0x2) & 0xFFFF

    # ********** INSTRUCTIONS
    @asm("CLS")
    def _clear_screen(self, ins):
        self.screen.clear()

    @asm("RET")
    def _return(self, ins):
        """return from a subroutine"""
        self.regs.pc = self.stack.pop()

    @asm("JP 0x{nnn:03x}")
    def _jump(self, ins):
        self.regs.pc = ins.nnn

    @asm("CALL 0x{nnn:03x}")
    def _call_addr(self, ins):
        self.stack.push(self.regs.pc)
        self.regs.pc = ins.nnn

    @asm("SE V{x:X}, {kk}")
    def _skip_if_eq(self, ins):
        if self.regs.v[ins.x] == ins.kk:
            self._goto_next_instruction()

    @asm("SNE V{x:X}, {kk}")
    def _skip_if_not_eq(self, ins):
        if self.regs.v[ins.x] != ins.kk:
            self._goto_next_instruction()

    @asm("SE V{x:X}, V{y:X}")
    def _skip_if_eq_regs(self, ins):
        if self.regs.v[ins.x] == self.regs.v[ins.y]:
            self._goto_next_instruction()

    @asm("SNE V{x:X}, V{y:X}")
    def _skip_if_not_eq_regs(self, ins):
        if self.regs.v[ins.x] != self.regs.v[ins.y]:
            self._goto_next_instruction()

    @asm("LD V{x:X}, {kk}")
    def _set_vk(self, ins):
        """set the value of one of the 16 variable registers, Vx"""
        self.regs.v[ins.x] = ins.kk

    @asm("ADD V{x:X}, {kk}")
    def _add_to_vk(self, ins):
        """add to the value already present in one of the variable registers, VF untouched"""
        v = self.regs.v
        v[ins.x] = (v[ins.x] + ins.kk) & 0xFF

    @asm("LD V{x:X}, V{y:X}")
    def _set_vx_to_vy(self, ins):
        self.regs.v[ins.x] = self.regs.v[ins.y]

    @asm("OR V{x:X}, V{y:X}")
    def _set_vx_or_vy(self, ins):
        self.regs.v[ins.x] |= self.regs.v[ins.y]

    @asm("AND V{x:X}, V{y:X}")
    def _set_vx_and_vy(self, ins):
        self.regs.v[ins.x] &= self.regs.v[ins.y]

    @asm("XOR V{x:X}, V{y:X}")
    def _set_vx_xor_vy(self, ins):
        self.regs.v[ins.x] ^= self.regs.v[ins.y]

    @asm("ADD V{x:X}, V{y:X}")
    def _add_vx_vy(self, ins):
        """set Vx = Vx + Vy, VF = carry"""
        v = self.regs.v
        total = v[ins.x] + v[ins.y]
        v[ins.x] = total & 0xFF     # keep only the lowest 8 bits from the result
        v[0xF] = 1 if total > 0xFF else 0

    @asm("SUB V{x:X}, V{y:X}")
    def _sub_vx_vy(self, ins):
        """set Vx = Vx - Vy, VF = NOT borrow"""
        v = self.regs.v
        vx, vy = v[ins.x], v[ins.y]
        v[0xF] = 1 if vx > vy else 0
        v[ins.x] = (vx - vy) & 0xFF

    @asm("SHR V{x:X}")
    def _shr(self, ins):
        v = self.regs.v
        vx = v[ins.x]
        v[0xF] = vx & 0x1
        v[ins.x] = vx >> 1

    @asm("SUBN V{x:X}, V{y:X}")
    def _subn_vx_vy(self, ins):
        """set Vx = Vy - Vx, VF = NOT borrow"""
        v = self.regs.v
        vx, vy = v[ins.x], v[ins.y]
        v[0xF] = 1 if vy > vx else 0
        v[ins.x] = (vy - vx) & 0xFF

    @asm("SHL V{x:X}")
    def _shl(self, ins):
        """set Vx = Vx SHL 1, VF keeps the masked MSB (0x80 or 0) without shifting it down"""
        v = self.regs.v
        vx = v[ins.x]
        v[0xF] = vx & 0x80
        v[ins.x] = (vx << 1) & 0xFF

    @asm("LD I, 0x{nnn:03x}")
    def _set_idx(self, ins):
        self.regs.i = ins.nnn

    @asm("JP V0, 0x{nnn:03x}")
    def _jump_plus(self, ins):
        self.regs.pc = (ins.nnn + self.regs.v[0x0]) & 0xFFFF

    @asm("RND V{x:X}, 0x{kk:02x}")
    def _random_byte_and(self, ins):
        self.regs.v[ins.x] = self.rng.randint(0, 255) & ins.kk

    @asm("DRW V{x:X}, V{y:X}, {n}")
    def _to_screen(self, ins):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        v = self.regs.v
        sprite = self.mem[self.regs.i:self.regs.i + ins.n]
        v[0xF] = 1 if self.screen.draw_sprite(v[ins.x], v[ins.y], sprite) else 0

    @asm("SKP V{x:X}")
    def _skip_if_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is pressed"""
        if self.keyboard.is_key_down(self.regs.v[ins.x] & 0xF):
            self._goto_next_instruction()

    @asm("SKNP V{x:X}")
    def _skip_if_not_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT pressed"""
        if not self.keyboard.is_key_down(self.regs.v[ins.x] & 0xF):
            self._goto_next_instruction()

    @asm("LD V{x:X}, DT")
    def _set_vx_dt(self, ins):
        self.regs.v[ins.x] = self.regs.dt

    @asm("LD V{x:X}, K")
    def _wait_keypress(self, ins):
        """suspend execution until the next key press, press() stores the key in Vx"""
        self.waiting_for_key = ins.x

    @asm("LD DT, V{x:X}")
    def _set_dt_vx(self, ins):
        self.regs.dt = self.regs.v[ins.x]

    @asm("LD ST, V{x:X}")
    def _set_st(self, ins):
        self.regs.st = self.regs.v[ins.x]

    @asm("ADD I, V{x:X}")
    def _add_to_idx(self, ins):
        self.regs.i = (self.regs.i + self.regs.v[ins.x]) & 0xFFFF

    @asm("LD F, V{x:X}")
    def _select_char(self, ins):
        """set I to location of sprite for digit Vx"""
        self.regs.i = FONT_START_ADDRESS + self.regs.v[ins.x] * GLYPH_HEIGHT

    @asm("LD B, V{x:X}")
    def _bcd_repr(self, ins):
        """store the hundreds digit of Vx in memory at I, the tens digit at I+1, the ones digit at I+2"""
        value = self.regs.v[ins.x]
        i = self.regs.i
        self.mem[i:i+3] = bytes((value // 100, value // 10 % 10, value % 10))

    @asm("LD [I], V{x:X}")
    def _store_vregs(self, ins):
        """store registers V0 through Vx (included) in memory starting at location I"""
        i = self.regs.i
        self.mem[i:i+ins.x+1] = bytes(self.regs.v[:ins.x+1])
        if self.legacy_store:
            self.regs.i = (i + ins.x + 1) & 0xFFFF

    @asm("LD V{x:X}, [I]")
    def _load_vregs(self, ins):
        """read registers V0 through Vx (included) from memory starting at location I"""
        i = self.regs.i
        self.regs.v[:ins.x+1] = list(self.mem[i:i+ins.x+1])
        if self.legacy_store:
            self.regs.i = (i + ins.x + 1) & 0xFFFF


# ******************** TIMING SECTION
class Cadence:
    """
    turns the wall-clock time reported by the host loop into timer ticks and instructions
    timers always tick at timer_hz, instructions run at instructions_per_second unless
    coupled is set, in which case one instruction runs on every delay timer tick
    """
    def __init__(self, chip, instructions_per_second=INSTRUCTIONS_PER_SECOND, timer_hz=TIMER_HZ, coupled=False):
        self.chip = chip
        self.timer_period = 1.0 / timer_hz
        self.instruction_period = 1.0 / instructions_per_second
        self.coupled = coupled
        self.delay_elapsed = 0.0
        self.sound_elapsed = 0.0
        self.instruction_elapsed = 0.0

    def advance(self, elapsed):
        """account for elapsed seconds, return the number of instructions executed"""
        elapsed = min(max(elapsed, 0.0), MAX_FRAME_TIME)
        executed = 0
        self.delay_elapsed += elapsed
        while self.delay_elapsed >= self.timer_period:
            self.delay_elapsed -= self.timer_period
            self.chip.tick_delay()
            if self.coupled and self.chip.cycle():
                executed += 1
        self.sound_elapsed += elapsed
        while self.sound_elapsed >= self.timer_period:
            self.sound_elapsed -= self.timer_period
            self.chip.tick_sound()
        if self.coupled:
            return executed
        self.instruction_elapsed += elapsed
        while self.instruction_elapsed >= self.instruction_period:
            self.instruction_elapsed -= self.instruction_period
            if self.chip.cycle():
                executed += 1
        return executed


# ******************** ENTRY POINT SECTION
def main(argv=None):
    args = get_args(argv)
    chip = Chip8(legacy_store=args.legacy_store)
    try:
        chip.load(read_rom(args.file))
    except (ProgramTooLarge, OSError) as err:
        sys.exit(f"Cannot load {args.file}: {err}")
    if DEBUG: print(f"The ROM at path {args.file} has been loaded successfully")
    # pygame initialization
    pygame.mixer.pre_init(SAMPLE_RATE, -16, 1, 512)
    pygame.init()
    clock = pygame.time.Clock()
    # IO
    display = Display(s=args.scale)
    beeper = Beeper(make_beep())
    cadence = Cadence(chip, args.ips, coupled=args.coupled)
    # emulation loop
    run = True
    try:
        while run:
            elapsed = clock.tick(FRAME_RATE) / 1000
            # process user input
            # loop throught the event queue
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    run = False
                elif event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        run = False
                    else:
                        chip.press(event.key)
                elif event.type == pygame.KEYUP:
                    chip.release(event.key)
            cadence.advance(elapsed)
            beeper.update(chip.sound_active)
            if chip.screen.dirty:
                display.render(chip.screen)
    except ExecutionError as err:
        sys.exit(f"********** THE EMULATOR CRASHED WITH THE FOLLOWING STATE\n{err}\n{chip}")
    finally:
        pygame.quit()


if __name__ == "__main__":
    main()
