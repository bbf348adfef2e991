"""
ALU (算術論理演算ユニット)。

(opcode, acc, arg) から新しいACC、またはメモリアクセス要求・分岐先を計算する純粋関数群です。
メモリやI/Oには一切触れません。アクセス要求の実行はエンジンの責務です。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from lfsr_core_tracer.core.isa import Opcode

# @intent:responsibility メモリアクセス要求の種類を定義します。
class RequestType(Enum):
    READ = "READ"
    WRITE = "WRITE"

# @intent:data_structure ALUがエンジンに依頼するメモリ（またはI/O）アクセス。
@dataclass(frozen=True)
class MemoryRequest:
    request_type: RequestType
    address: int
    value: int = 0

# @intent:data_structure 1命令分のALU演算結果。
@dataclass(frozen=True)
class AluResult:
    """
    acc: 演算後のACC（LOADの場合は読み込み前の値のまま）
    request: メモリ/I/Oアクセス要求（LOAD/STOREのみ）
    jump: 分岐先（分岐が成立した場合のみ）。Noneなら次のPCはadvance(PC)。
    """
    acc: int
    request: Optional[MemoryRequest] = None
    jump: Optional[int] = None

def _xor(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    return AluResult(acc=(acc ^ arg) & mask)

def _and(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    return AluResult(acc=acc & arg & mask)

def _lsl1(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    if add_mode:
        return AluResult(acc=(acc + arg) & mask)
    return AluResult(acc=(arg << 1) & mask)

def _lsr1(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    return AluResult(acc=(arg & mask) >> 1)

def _load(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    return AluResult(acc=acc, request=MemoryRequest(RequestType.READ, arg))

def _store(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    return AluResult(acc=acc, request=MemoryRequest(RequestType.WRITE, arg, acc))

def _jmp(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    return AluResult(acc=acc, jump=arg)

def _jmpz(acc: int, arg: int, mask: int, add_mode: bool) -> AluResult:
    return AluResult(acc=acc, jump=arg if acc == 0 else None)

# @intent:map オペコードから演算関数へのマッピングテーブル。
ALU_MAP: Dict[Opcode, Callable[[int, int, int, bool], AluResult]] = {
    Opcode.XOR: _xor,
    Opcode.AND: _and,
    Opcode.LSL1: _lsl1,
    Opcode.LSR1: _lsr1,
    Opcode.LOAD: _load,
    Opcode.STORE: _store,
    Opcode.JMP: _jmp,
    Opcode.JMPZ: _jmpz,
}

# @intent:responsibility 1命令分の演算を行い、結果を返します。
# @intent:post-condition 結果のACCは常にword_maskの幅に切り詰められています。例外は発生しません。
def execute(opcode: int, acc: int, arg: int, word_mask: int = 0xFFFF, add_mode: bool = False) -> AluResult:
    """
    オペコードに応じた演算を行います。add_modeが真の場合、LSL1はACC + ARGとして振る舞います。
    """
    return ALU_MAP[Opcode(opcode & 0x7)](acc & word_mask, arg & word_mask, word_mask, add_mode)
