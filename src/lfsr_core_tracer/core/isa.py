# lfsr_core_tracer/core/isa.py
"""
命令セット定義モジュール。

命令語のビットレイアウト（INDIRECTフラグ、3ビットのオペコード、オペランド）と、
オペコード番号とニーモニックの対応を定義します。
この番号付けはプログラムイメージのワイヤ契約であり、変更してはいけません。

    bit (width-1)        : INDIRECT
    bit (width-2)..(w-4) : opcode (0-7)
    残りの下位ビット      : operand / address
"""
from enum import IntEnum
from typing import NamedTuple

from lfsr_core_tracer.common.types import bit_mask

DEFAULT_WORD_WIDTH = 16

# @intent:responsibility オペコード番号を定義します。
# @intent:rationale JMPZはACCが0のときに分岐します。
class Opcode(IntEnum):
    XOR = 0
    AND = 1
    LSL1 = 2
    LSR1 = 3
    LOAD = 4
    STORE = 5
    JMP = 6
    JMPZ = 7

MNEMONICS = {
    Opcode.XOR: "xor",
    Opcode.AND: "and",
    Opcode.LSL1: "lsl1",
    Opcode.LSR1: "lsr1",
    Opcode.LOAD: "load",
    Opcode.STORE: "store",
    Opcode.JMP: "jmp",
    Opcode.JMPZ: "jmpz",
}

# ADDモードではLSL1のスロットが加算命令になる
ADD_MNEMONIC = "add"

# @intent:data_structure デコード済みの命令語。
class Instruction(NamedTuple):
    indirect: bool
    opcode: Opcode
    operand: int

# @intent:responsibility 語長に応じた命令語のフィールド位置を保持します。
class InstructionFormat:
    """
    語長（デフォルト16ビット）から各フィールドのマスクとシフト量を導出します。
    最上位ビットはINDIRECTフラグであり、同時にロード/ストアの実効アドレスにおいて
    I/O空間を示すビットでもあります。
    """
    def __init__(self, word_width: int = DEFAULT_WORD_WIDTH):
        if not isinstance(word_width, int) or word_width < 8:
            raise ValueError("Word width must be an integer of at least 8 bits.")
        self.word_width = word_width
        self.word_mask = bit_mask(word_width)
        self.top_bit = 1 << (word_width - 1)
        self.opcode_shift = word_width - 4
        self.operand_mask = bit_mask(word_width - 4)

    def decode(self, word: int) -> Instruction:
        return Instruction(
            indirect=bool(word & self.top_bit),
            opcode=Opcode((word >> self.opcode_shift) & 0x7),
            operand=word & self.operand_mask,
        )

    # @intent:pre-condition operandはオペランドフィールドに収まる必要があります。
    def encode(self, opcode: int, operand: int = 0, indirect: bool = False) -> int:
        if not 0 <= operand <= self.operand_mask:
            raise ValueError(f"Operand {operand:#x} does not fit in {self.word_width - 4} bits.")
        word = (int(opcode) & 0x7) << self.opcode_shift | operand
        if indirect:
            word |= self.top_bit
        return word

    # @intent:responsibility 実効アドレスがI/O空間を指しているか判定します。
    def is_io_address(self, address: int) -> bool:
        return bool(address & self.top_bit)

# @intent:responsibility オペコードの表示名を返します。
def mnemonic_for(opcode: Opcode, add_mode: bool = False) -> str:
    if add_mode and opcode == Opcode.LSL1:
        return ADD_MNEMONIC
    return MNEMONICS[opcode]
