# lfsr_core_tracer/core/disassembler.py
"""
LFSRマシン 逆アセンブラ

メモリ上の命令語を解析し、アセンブラ表記に変換します。
バスアクセスログを汚さないよう、読み出しにはpeekを使用します。
"""
from typing import List, Optional, Tuple

from lfsr_core_tracer.common.types import SymbolMap
from lfsr_core_tracer.core.isa import InstructionFormat, mnemonic_for
from lfsr_core_tracer.core.pc_unit import PcUnit
from lfsr_core_tracer.transport.bus import Bus

# @intent:responsibility 1命令語をアセンブラ表記に変換します。
def format_word(word: int, instruction_format: InstructionFormat, add_mode: bool = False,
                symbol_map: Optional[SymbolMap] = None) -> str:
    instruction = instruction_format.decode(word)
    operand_text = f"${instruction.operand:03X}"
    if symbol_map:
        for name, addr in symbol_map.items():
            if addr == instruction.operand:
                operand_text = name
                break
    if instruction.indirect:
        operand_text = f"({operand_text})"
    return f"{mnemonic_for(instruction.opcode, add_mode).upper()} {operand_text}"

# @intent:responsibility 指定されたメモリ範囲を逆アセンブルし、表示用データを生成します。
def disassemble(bus: Bus, start_addr: int, length: int,
                instruction_format: Optional[InstructionFormat] = None,
                pc_unit: Optional[PcUnit] = None, add_mode: bool = False,
                symbol_map: Optional[SymbolMap] = None) -> List[Tuple[int, str, str]]:
    """
    指定された範囲のメモリを逆アセンブルします。
    pc_unitが与えられた場合、アドレスは連続した整数ではなくPCの実行順に並びます。

    Returns:
        List of (address, hex_word, text) tuples.
    """
    instruction_format = instruction_format or InstructionFormat()
    if pc_unit is not None:
        addresses = pc_unit.sequence(start_addr, length)
    else:
        addresses = [start_addr + i for i in range(length)]

    hex_digits = (instruction_format.word_width + 3) // 4
    result = []
    for addr in addresses:
        word = bus.peek(addr)
        result.append((addr, f"{word:0{hex_digits}X}",
                       format_word(word, instruction_format, add_mode, symbol_map)))
    return result
