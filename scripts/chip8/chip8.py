# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# TECHNICAL REFERENCE
# http://devernay.free.fr/hacks/chip8/C8TECH10.HTM
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite


import argparse
import logging
import queue
import random
import sys
import threading
from functools import wraps

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame


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

MEMORY_SIZE = 4096
FONT_START_ADDRESS = 0x050
FONT_GLYPH_SIZE = 5
ROM_START_ADDRESS = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - ROM_START_ADDRESS
FLAG_REGISTER = 0xF
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
SCALE = 15
TIMER_PERIOD = 1.0          # seconds between two timer decrements
STEP_INTERVAL_MS = 100      # default driver cadence
PIXEL_ON = "██"
PIXEL_OFF = "  "
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)

logger = logging.getLogger(__name__)


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """base class for every fault raised by the interpreter"""

class OutOfBoundsAccess(Chip8Error, IndexError):
    def __init__(self, address):
        super().__init__(f"Memory access out of bounds at address 0x{address:04x}")
        self.address = address

class UnknownOpcode(Chip8Error):
    def __init__(self, opcode):
        super().__init__(f"Unknown opcode 0x{opcode:04x}")
        self.opcode = opcode

class RomTooLarge(Chip8Error, ValueError):
    def __init__(self, size):
        super().__init__(f"ROM is {size} bytes long, at most {MAX_ROM_SIZE} bytes fit in memory")
        self.size = size


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to log the ASM of the instruction being called"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(*args, **kwargs):
            mem_addr = args[0].pc - 0x2     # args[0] equals self of the decorated method, pc was already advanced by the fetch
            vals = fn(*args, **kwargs)      # use the locals() values of each decorated function in the message
            vals['mem_addr'] = mem_addr
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(msg.format(**vals))
        return wrapper_fn
    return decorator

def configure_logging(verbose=False):
    level = logging.DEBUG if verbose or DEBUG else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s]  %(message)s", stream=sys.stderr)

def positive_int(value):
    """argparse type for values that must be at least 1"""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return number

def get_args(argv=None):
    parser = argparse.ArgumentParser(description="CHIP-8 interpreter")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("-i", "--interval", type=positive_int, default=STEP_INTERVAL_MS, help="milliseconds between two instructions")
    parser.add_argument("--strict", action="store_true", help="halt the program on unknown opcodes")
    parser.add_argument("--window", action="store_true", help="draw frames in a pygame window instead of the terminal")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every executed instruction")
    return parser.parse_args(argv)

def read_rom(path):
    """read the raw bytes of the ROM file at the given path"""
    with open(path, mode='rb') as f:
        return f.read()


# ******************** I/O SECTION
class Frame:
    """immutable snapshot of the display, handed over to whoever consumes frames"""
    def __init__(self, pixels, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.pixels = tuple(bool(p) for p in pixels)

    def __getitem__(self, pos):
        x, y = pos
        return self.pixels[y * self.w + x]

    def __eq__(self, other):
        return isinstance(other, Frame) and self.pixels == other.pixels

    def __str__(self):
        rows = []
        for y in range(self.h):
            row = self.pixels[y * self.w:(y + 1) * self.w]
            rows.append("".join(PIXEL_ON if p else PIXEL_OFF for p in row))
        return "\n".join(rows)

class Screen:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def show(self, frame):
        """repaint the whole surface from a frame and flip it on screen"""
        self.surface.fill(self.background)
        for y in range(self.h):
            for x in range(self.w):
                if frame[x, y]:
                    pygame.draw.rect(
                        self.surface,
                        self.foreground,
                        (x * self.scale, y * self.scale, self.scale, self.scale)
                    )
        pygame.display.flip()


# ******************** MEMORY SECTION
# ********** WRAPS A LIST TO REPRESENT A GROWABLE STACK OF RETURN ADDRESSES
class Stack:
    def __init__(self):
        self.addr_list = []

    def __len__(self):
        return len(self.addr_list)

    def __str__(self):
        return "[" + ", ".join(f"0x{a:04x}" for a in self.addr_list) + "]"

    def append(self, address):
        self.addr_list.append(address)

    def pop(self):
        """pop the last return address, an empty stack yields address 0"""
        if not self.addr_list:
            logger.warning("Tried popping from the stack while it is empty, using address 0x0000")
            return 0
        return self.addr_list.pop()

# ********** WRAPS A LIST TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
class Memory:
    def __init__(self):
        self.inner = [0] * MEMORY_SIZE
        self.inner[FONT_START_ADDRESS:FONT_START_ADDRESS+len(C8_FONTS)] = C8_FONTS

    def __len__(self):
        return len(self.inner)

    def _check(self, address):
        if not 0 <= address < MEMORY_SIZE:
            raise OutOfBoundsAccess(address)

    def check_range(self, address, length):
        """raise OutOfBoundsAccess unless the length bytes starting at address are all inside memory"""
        self._check(address)
        self._check(address + length - 1)

    def __setitem__(self, address, value):
        self._check(address)
        self.inner[address] = value & 0xFF

    def __getitem__(self, address):
        self._check(address)
        return self.inner[address]

    def load_rom(self, rom):
        """copy the ROM bytes into memory starting at ROM_START_ADDRESS, raise RomTooLarge if they don't fit"""
        if len(rom) > MAX_ROM_SIZE:
            raise RomTooLarge(len(rom))
        self.inner[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = list(rom)
        logger.info(f"ROM of {len(rom)} bytes loaded at 0x{ROM_START_ADDRESS:04x}")


# ******************** TIMERS SECTION
class Timers:
    """
    delay and sound timers, decremented once per period by a background thread
    every access goes through the lock because the CPU reads and writes them from another thread
    """
    def __init__(self, period=TIMER_PERIOD):
        self.period = period
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread = None
        self._delay = 0
        self._sound = 0

    @property
    def delay(self):
        with self._lock:
            return self._delay

    @delay.setter
    def delay(self, value):
        with self._lock:
            self._delay = value & 0xFF

    @property
    def sound(self):
        with self._lock:
            return self._sound

    @sound.setter
    def sound(self, value):
        with self._lock:
            self._sound = value & 0xFF

    def decrement(self):
        """lower both timers by one, they never go below 0"""
        with self._lock:
            if self._delay > 0:
                self._delay -= 1
            if self._sound > 0:
                self._sound -= 1

    def tick(self, elapsed=1):
        """consume the given number of elapsed periods"""
        for _ in range(elapsed):
            self.decrement()

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="chip8-timers", daemon=True)
        self._thread.start()

    def stop(self):
        self._stopped.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        # wait() returns True as soon as stop() is called
        while not self._stopped.wait(self.period):
            self.tick()


# ******************** CPU SECTION
class Chip8:
    def __init__(self, rom=None, frames=None, strict=False, timer_period=TIMER_PERIOD, handoff=False):
        self.mem = Memory()
        self.stack = Stack()
        self.v_regs = [0] * 16
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # specify where the sprites reside in memory
        self.display = [False] * SCREEN_WIDTH * SCREEN_HEIGHT
        # with a one slot queue a draw only blocks while the previous frame is still waiting,
        # handoff=True also waits for the consumer to call task_done() on every frame
        # (needs a consumer on another thread, the window driver drains the queue on the stepping thread)
        self.frames = frames if frames is not None else queue.Queue(maxsize=1)
        self.handoff = handoff
        self.strict = strict
        self.halted = False
        self.fault = None
        self.instructions = {
            0x00E0: self._clear_screen,
            0x00EE: self._return,
            0x1000: self._jump,
            0x2000: self._call_addr,
            0x3000: self._skip_if_eq,
            0x4000: self._skip_if_not_eq,
            0x5000: self._skip_if_eq_regs,
            0x6000: self._set_vk,
            0x7000: self._add_to_vk,
            0x8000: self._set_vx_to_vy,
            0x8001: self._set_vx_or_vy,
            0x8002: self._set_vx_and_vy,
            0x8003: self._set_vx_xor_vy,
            0x8004: self._add_vx_vy,
            0x8005: self._sub_vx_vy,
            0x8006: self._shr,
            0x8007: self._subn_vx_vy,
            0x800E: self._shl,
            0x9000: self._skip_if_not_eq_regs,
            0xA000: self._set_idx,
            0xB000: self._jump_plus,
            0xC000: self._random_byte_and,
            0xD000: self._to_screen,
            0xF007: self._set_vx_dt,
            0xF015: self._set_dt_vx,
            0xF018: self._set_st,
            0xF01E: self._add_to_idx,
            0xF029: self._select_char,
            0xF033: self._bcd_repr,
            0xF055: self._store_vregs,
            0xF065: self._load_vregs,
        }
        if rom is not None:
            self.mem.load_rom(rom)
        self.timers = Timers(timer_period)
        self.timers.start()

    def __str__(self):
        registers = " ".join(f"V{i:X}:0x{v:02x}" for i, v in enumerate(self.v_regs))
        registers = f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.idx:04x} | VARIABLE_REGISTERS:{registers}"
        stack = f"STACK:{self.stack}"
        timers = f"DELAY_TIMER:{self.timers.delay} | SOUND_TIMER:{self.timers.sound}"
        return f"{registers}\n{stack}\n{timers}"

    def stop(self):
        """stop the background timer thread"""
        self.timers.stop()

    def render(self):
        return Frame(self.display)

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, DT")
    def _set_vx_dt(self, opcode):
        """set Vx = DT (delay timer) value"""
        x = (opcode & 0x0F00) >> 8
        self.v_regs[x] = self.timers.delay
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD DT, V{x}")
    def _set_dt_vx(self, opcode):
        """set DT (delay timer) = Vx"""
        x = (opcode & 0x0F00) >> 8
        self.timers.delay = self.v_regs[x]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CLS")
    def _clear_screen(self, opcode):
        self.display = [False] * SCREEN_WIDTH * SCREEN_HEIGHT
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RET")
    def _return(self, opcode):
        """return from a subroutine"""
        self.pc = self.stack.pop()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP 0x{address:04x}")
    def _jump(self, opcode):
        address = opcode & 0x0FFF
        self.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CALL 0x{address:04x}")
    def _call_addr(self, opcode):
        address = opcode & 0x0FFF
        self.stack.append(self.pc)
        self.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x}, {comparison_value}")
    def _skip_if_eq(self, opcode):
        x = (opcode & 0x0F00) >> 8
        comparison_value = opcode & 0x00FF
        if self.v_regs[x] == comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x}, {comparison_value}")
    def _skip_if_not_eq(self, opcode):
        x = (opcode & 0x0F00) >> 8
        comparison_value = opcode & 0x00FF
        if self.v_regs[x] != comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x}, V{y}")
    def _skip_if_eq_regs(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        if self.v_regs[x] == self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x}, V{y}")
    def _skip_if_not_eq_regs(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        if self.v_regs[x] != self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, {value}")
    def _set_vk(self, opcode):
        """set the value of one of the 16 variable registers, Vx"""
        x, value = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        self.v_regs[x] = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x}, {value}")
    def _add_to_vk(self, opcode):
        """add to the value already present in one of the variable registers, VF untouched"""
        x, value = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        self.v_regs[x] = (self.v_regs[x] + value) & 0xFF    # keep only the lowest 8 bits from the result and store them in Vx
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, V{y}")
    def _set_vx_to_vy(self, opcode):
        """set the value of Vx equal to that of Vy"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] = self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: OR V{x}, V{y}")
    def _set_vx_or_vy(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] |= self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: AND V{x}, V{y}")
    def _set_vx_and_vy(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] &= self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: XOR V{x}, V{y}")
    def _set_vx_xor_vy(self, opcode):
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        self.v_regs[x] ^= self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x}, V{y}")
    def _add_vx_vy(self, opcode):
        """set the value of Vx to Vx + Vy, VF = carry"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        total = self.v_regs[x] + self.v_regs[y]
        self.v_regs[x] = total & 0xFF   # keep only the lowest 8 bits from the result and store them in Vx
        self.v_regs[FLAG_REGISTER] = 1 if total > 255 else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUB V{x}, V{y}")
    def _sub_vx_vy(self, opcode):
        """set the value of Vx to Vx - Vy, VF = NOT borrow"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        no_borrow = 1 if self.v_regs[x] > self.v_regs[y] else 0
        self.v_regs[x] = (self.v_regs[x] - self.v_regs[y]) & 0xFF
        self.v_regs[FLAG_REGISTER] = no_borrow
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHR V{x}")
    def _shr(self, opcode):
        """set Vx equal to Vx SHR 1, VF = shifted out bit"""
        x = (opcode & 0x0F00) >> 8
        LSB = self.v_regs[x] & 0x1
        self.v_regs[x] = self.v_regs[x] >> 1
        self.v_regs[FLAG_REGISTER] = LSB
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUBN V{x}, V{y}")
    def _subn_vx_vy(self, opcode):
        """set the value of Vx to Vy - Vx, VF = NOT borrow"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        no_borrow = 1 if self.v_regs[y] > self.v_regs[x] else 0
        self.v_regs[x] = (self.v_regs[y] - self.v_regs[x]) & 0xFF
        self.v_regs[FLAG_REGISTER] = no_borrow
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHL V{x}")
    def _shl(self, opcode):
        """set Vx equal to Vx SHL 1, VF = shifted out bit"""
        x = (opcode & 0x0F00) >> 8
        MSB = (self.v_regs[x] & 0x80) >> 7
        self.v_regs[x] = (self.v_regs[x] << 1) & 0xFF   # multiply by 2 and keep only the lowest 8 bits from the result
        self.v_regs[FLAG_REGISTER] = MSB
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD I, 0x{value:04x}")
    def _set_idx(self, opcode):
        """set the value of the I register"""
        value = opcode & 0x0FFF
        self.idx = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP V0, 0x{address:04x}")
    def _jump_plus(self, opcode):
        address = opcode & 0x0FFF
        v0 = self.v_regs[0x0]
        self.pc = address + v0      # may land past the end of memory, the next fetch faults
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RND V{x}, 0x{kk:02x}")
    def _random_byte_and(self, opcode):
        x, kk = (opcode & 0x0F00) >> 8, opcode & 0x00FF
        rnd = random.randint(0,255)
        self.v_regs[x] = rnd & kk
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD ST, V{register}")
    def _set_st(self, opcode):
        """set ST = Vx"""
        register = (opcode & 0x0F00) >> 8
        self.timers.sound = self.v_regs[register]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD I, V{register}")
    def _add_to_idx(self, opcode):
        """set I = I + Vx"""
        register = (opcode & 0x0F00) >> 8
        self.idx = (self.idx + self.v_regs[register]) & 0xFFFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD F, V{register}")
    def _select_char(self, opcode):
        """set I to location of sprite for digit Vx"""
        register = (opcode & 0x0F00) >> 8
        self.idx = FONT_START_ADDRESS + (self.v_regs[register] & 0xF) * FONT_GLYPH_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD [I], V{x}")
    def _store_vregs(self, opcode):
        """store registers V0 through Vx (included) in memory starting at location I"""
        x = (opcode & 0x0F00) >> 8
        self.mem.check_range(self.idx, x + 1)
        for offset in range(x + 1):
            self.mem[self.idx + offset] = self.v_regs[offset]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x}, [I]")
    def _load_vregs(self, opcode):
        """read registers V0 through Vx (included) from memory starting at location I"""
        x = (opcode & 0x0F00) >> 8
        # read everything first so a fault leaves the registers untouched
        values = [self.mem[self.idx + offset] for offset in range(x + 1)]
        self.v_regs[:x+1] = values
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD B, V{x}")
    def _bcd_repr(self, opcode):
        """store the hundreds digit of Vx in memory at I, the tens digit at I+1, the ones digit at I+2"""
        x = (opcode & 0x0F00) >> 8
        value = self.v_regs[x]
        hundreds, tens, ones = value // 100, (value // 10) % 10, value % 10
        self.mem.check_range(self.idx, 3)
        self.mem[self.idx], self.mem[self.idx+1], self.mem[self.idx+2] = hundreds, tens, ones
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: DRW V{x}, V{y}, {n_bytes}")
    def _to_screen(self, opcode):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        x, y = (opcode & 0x0F00) >> 8, (opcode & 0x00F0) >> 4
        start_x, y_coordinate = self.v_regs[x] % SCREEN_WIDTH, self.v_regs[y] % SCREEN_HEIGHT
        n_bytes = opcode & 0x000F
        # rows below the bottom edge are never read, a faulting read leaves the screen and VF untouched
        rows = min(n_bytes, SCREEN_HEIGHT - y_coordinate)
        sprite = [self.mem[self.idx + i] for i in range(rows)]
        self.v_regs[FLAG_REGISTER] = 0
        # step through each sprite byte, sprites get clipped at the screen edges instead of wrapping around
        for sprite_byte in sprite:
            x_coordinate = start_x
            for bit in range(7, -1, -1):    # most significant bit first
                if x_coordinate >= SCREEN_WIDTH:
                    break
                if (sprite_byte >> bit) & 0x1:
                    pos = y_coordinate * SCREEN_WIDTH + x_coordinate
                    # sprites are XORed onto the existing screen, erasing a pixel sets VF=1
                    if self.display[pos]:
                        self.v_regs[FLAG_REGISTER] = 1
                    self.display[pos] = not self.display[pos]
                x_coordinate += 1
            y_coordinate += 1
        self.frames.put(self.render())     # blocks until the consumer took the previous frame
        if self.handoff:
            self.frames.join()
        return locals()

    def _unknown(self, opcode):
        if self.strict:
            raise UnknownOpcode(opcode)
        logger.debug(f"mem_addr: 0x{self.pc - 0x2:04x}    ignoring unknown opcode 0x{opcode:04x}")

    def _goto_next_instruction(self):
        self.pc += 0x2

    def decode(self, opcode):
        """decode opcodes using masks and return respective function"""
        # WATCH OUT: masks order is important!!!
        # as the for loop breaks out as soon as it finds a match
        masks = {
            0xFFFF: [0x00E0,0x00EE],
            0xF0FF: [0xF007,0xF015,0xF018,0xF01E,0xF029,0xF033,0xF055,0xF065],
            0xF00F: [0x5000,0x8000,0x8001,0x8002,0x8003,0x8004,0x8005,0x8006,0x8007,0x800E,0x9000],
            0xF000: [0x1000,0x2000,0x3000,0x4000,0x6000,0x7000,0xA000,0xB000,0xC000,0xD000],
        }
        # get correct mask to decode the opcode
        for m, ops in masks.items():
            if (opcode & m) in ops:
                return self.instructions[opcode & m]     # retrieve and return relative instruction
        return self._unknown

    def fetch(self):
        # each instruction is two bytes long, stored big-endian
        opcode = self.mem[self.pc] << 8 | self.mem[self.pc + 1]
        self._goto_next_instruction()
        return opcode

    def step(self):
        """emulate one machine cycle (fetch, decode, execute), return False once the program is halted"""
        if self.halted:
            return False
        try:
            opcode = self.fetch()
            instruction = self.decode(opcode)
            instruction(opcode)
        except Chip8Error as e:
            self.halted = True
            self.fault = e
            logger.error(f"{e}, the program has been halted with the following state\n{self}")
            return False
        return True


# ******************** ENTRY POINT SECTION
def print_frames(frames):
    """consume frames forever, printing each one to the terminal"""
    while True:
        frame = frames.get()
        print(frame, flush=True)
        frames.task_done()

def main(argv=None):
    args = get_args(argv)
    configure_logging(args.verbose)
    try:
        rom = read_rom(args.file)
        # the terminal printer runs on its own thread so every draw waits until its frame is printed
        chip = Chip8(rom, strict=args.strict, handoff=not args.window)
    except (OSError, RomTooLarge) as e:
        sys.exit(f"Could not load the ROM at path {args.file}: {e}")
    # pygame initialization
    pygame.init()
    clock = pygame.time.Clock()
    screen = None
    if args.window:
        pygame.display.set_caption(os.path.basename(args.file))
        screen = Screen()
    else:
        threading.Thread(target=print_frames, args=(chip.frames,), name="chip8-frames", daemon=True).start()
    # emulation loop
    run = True
    try:
        while run:
            clock.tick(1000 / args.interval)
            # a halted program stays on screen until the user quits
            if not chip.halted and not chip.step():
                logger.info("Press ESC or Ctrl-C to quit")
            if screen is not None:
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        run = False
                    elif event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                        run = False
                # the frame queue holds at most one frame and it's drained after every step
                try:
                    screen.show(chip.frames.get_nowait())
                except queue.Empty:
                    pass
    except KeyboardInterrupt:
        pass
    finally:
        chip.stop()
        pygame.quit()
    if chip.fault is not None:
        sys.exit(f"********** THE PROGRAM HALTED WITH THE FOLLOWING STATE\n{chip}")


if __name__ == "__main__":
    main()
