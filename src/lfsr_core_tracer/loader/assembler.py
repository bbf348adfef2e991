# lfsr_core_tracer/loader/assembler.py
"""
LFSRマシン用の簡易アセンブラ。

PCは加算ではなくPC更新ユニットの漸化式で進むため、連続する命令は
連続した整数アドレスではなく、advance()が生成するアドレス列に配置されます。
PCが届かないアドレス（PC幅を超え、オペランドで指せる範囲内）にはDWによるデータのみを
置くことができ、そこでは連続した整数アドレスに配置されます。

    ; コメント
    start:  jmp   main          ; アドレス0はLFSRの不動点なので先頭で離れる
            ORG   1
    main:   load  (uart)        ; (x) は INDIRECT
            store (uart)
            jmp   main
    uart:   DW    $8000
"""
import re
from typing import Dict, List, Optional, Tuple

from lfsr_core_tracer.common.types import SymbolMap
from lfsr_core_tracer.core.isa import InstructionFormat, Opcode, mnemonic_for
from lfsr_core_tracer.core.pc_unit import PcUnit

ParsedLine = Tuple[int, Optional[str], Optional[str], str]

# @intent:responsibility アセンブラの行解析と数値解析の共通処理を提供します。
class BaseAssembler:
    def _parse_line(self, line: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        line = line.strip()
        if not line or line.startswith(';'):
            return None, None, None

        line = line.split(';')[0].strip()

        label = None
        if ':' in line:
            label, rest = line.split(':', 1)
            label = label.strip()
            line = rest.strip()

        if not line:
            return label, None, None

        parts = re.split(r'\s+', line, maxsplit=1)
        mnemonic = parts[0].upper()
        operands = parts[1] if len(parts) > 1 else ""

        return label, mnemonic, operands

    def _parse_val(self, val_str: str, symbol_map: SymbolMap) -> int:
        # @intent:utility_function 多様な数値表現（$, 0x, h）およびラベル名を安全に数値に変換します。
        val_str = val_str.strip()
        if val_str in symbol_map:
            return symbol_map[val_str]
        number = val_str.replace('$', '0x')
        if re.fullmatch(r'[0-9][0-9a-fA-F]*[hH]', number):
            number = '0x' + number[:-1]
        try:
            if number.lower().startswith('0x'):
                return int(number, 16)
            return int(number)
        except ValueError:
            raise ValueError(f"Undefined symbol or invalid value: {val_str}")

# @intent:responsibility LFSRマシンのアセンブリソースを命令語列に変換します。
class LfsrAssembler(BaseAssembler):
    """
    2パスアセンブラ。1パス目でPCの実行順に従ってラベルのアドレスを確定し、
    2パス目で命令語を生成します。同じアドレスへの二重配置（例えば不動点での停滞）は
    エラーとして報告します。
    """
    def __init__(self, pc_unit: Optional[PcUnit] = None,
                 instruction_format: Optional[InstructionFormat] = None, add_mode: bool = False):
        self._pc_unit = pc_unit if pc_unit is not None else PcUnit()
        self._format = instruction_format if instruction_format is not None else InstructionFormat()
        # ニーモニック -> オペコードの逆引きマップ
        self._mnemonic_map: Dict[str, Opcode] = {
            mnemonic_for(opcode, add_mode).upper(): opcode for opcode in Opcode
        }

    # @intent:responsibility 行単位のソースを解析し、シンボルマップと(アドレス, 命令語)のリストを返します。
    def assemble(self, lines: List[str]) -> Tuple[SymbolMap, List[Tuple[int, int]]]:
        parsed_lines: List[ParsedLine] = []
        for line_num, line in enumerate(lines, 1):
            label, mnemonic, operands = self._parse_line(line)
            if label is None and mnemonic is None:
                continue
            parsed_lines.append((line_num, label, mnemonic, operands or ""))

        symbol_map = self._first_pass(parsed_lines)
        return symbol_map, self._second_pass(parsed_lines, symbol_map)

    # @intent:responsibility 各ラベルに配置アドレスを割り当てます。
    def _first_pass(self, parsed_lines: List[ParsedLine]) -> SymbolMap:
        symbol_map: SymbolMap = {}
        occupied: Dict[int, int] = {}
        cursor = 0
        for line_num, label, mnemonic, operands in parsed_lines:
            if mnemonic == "ORG":
                cursor = self._parse_org(operands, symbol_map, line_num)
            if label:
                if label in symbol_map:
                    raise ValueError(f"Line {line_num}: duplicate label '{label}'")
                symbol_map[label] = cursor
            if mnemonic is None or mnemonic == "ORG":
                continue
            for _ in range(self._word_count(mnemonic, operands, line_num)):
                self._check_placement(cursor, mnemonic, line_num)
                if cursor in occupied:
                    raise ValueError(
                        f"Line {line_num}: address {cursor:#04x} is already used by line {occupied[cursor]}"
                    )
                occupied[cursor] = line_num
                cursor = self._next_address(cursor)
        return symbol_map

    def _second_pass(self, parsed_lines: List[ParsedLine], symbol_map: SymbolMap) -> List[Tuple[int, int]]:
        binary_data = []
        cursor = 0
        for line_num, label, mnemonic, operands in parsed_lines:
            if mnemonic is None:
                continue
            if mnemonic == "ORG":
                cursor = self._parse_org(operands, symbol_map, line_num)
                continue
            if mnemonic == "DW":
                words = [self._parse_at(v, symbol_map, line_num) & self._format.word_mask
                         for v in operands.split(',')]
            else:
                words = [self._encode(mnemonic, operands, symbol_map, line_num)]
            for word in words:
                binary_data.append((cursor, word))
                cursor = self._next_address(cursor)
        return binary_data

    # @intent:responsibility 次の配置アドレスを返します。PCが届く範囲はPCの実行順、その外側は連続アドレスです。
    def _next_address(self, cursor: int) -> int:
        if cursor > self._pc_unit.mask:
            return cursor + 1
        return self._pc_unit.advance(cursor)

    # @intent:pre-condition 配置先はオペランドで指せる範囲内。命令はPCが届く範囲内である必要があります。
    def _check_placement(self, cursor: int, mnemonic: str, line_num: int) -> None:
        if cursor > self._format.operand_mask:
            raise ValueError(f"Line {line_num}: address {cursor:#x} is out of range")
        if mnemonic != "DW" and cursor > self._pc_unit.mask:
            raise ValueError(f"Line {line_num}: instruction at {cursor:#x} is not reachable by the PC")

    def _parse_org(self, operands: str, symbol_map: SymbolMap, line_num: int) -> int:
        address = self._parse_at(operands, symbol_map, line_num)
        if not 0 <= address <= self._format.operand_mask:
            raise ValueError(f"Line {line_num}: ORG address {address:#x} is out of range")
        return address

    def _word_count(self, mnemonic: str, operands: str, line_num: int) -> int:
        if mnemonic == "DW":
            return len(operands.split(','))
        if mnemonic not in self._mnemonic_map:
            raise ValueError(f"Line {line_num}: unknown mnemonic '{mnemonic}'")
        return 1

    def _encode(self, mnemonic: str, operands: str, symbol_map: SymbolMap, line_num: int) -> int:
        if mnemonic not in self._mnemonic_map:
            raise ValueError(f"Line {line_num}: unknown mnemonic '{mnemonic}'")
        operand_str = operands.strip()
        indirect = operand_str.startswith('(') and operand_str.endswith(')')
        if indirect:
            operand_str = operand_str[1:-1]
        operand = self._parse_at(operand_str, symbol_map, line_num) if operand_str else 0
        try:
            return self._format.encode(self._mnemonic_map[mnemonic], operand, indirect)
        except ValueError as e:
            raise ValueError(f"Line {line_num}: {e}")

    def _parse_at(self, val_str: str, symbol_map: SymbolMap, line_num: int) -> int:
        try:
            return self._parse_val(val_str, symbol_map)
        except ValueError as e:
            raise ValueError(f"Line {line_num}: {e}")

# @intent:responsibility 配置済みの命令語をメモリイメージ（アドレス0始まりのワード列）に展開します。
def to_image(binary_data: List[Tuple[int, int]], size: int) -> List[int]:
    image = [0] * size
    for address, word in binary_data:
        image[address % size] = word
    return image
