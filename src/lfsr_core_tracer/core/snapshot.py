# lfsr_core_tracer/core/snapshot.py
"""
実行状態の不変スナップショット

このモジュールは、1ステップ実行後のCPUとバスの状態を記録した不変のデータ構造と、
命令リタイア毎にトレースコールバックへ渡すレコードを定義します。
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from lfsr_core_tracer.core.state import CpuState
from lfsr_core_tracer.transport.bus import BusAccess

# @intent:responsibility 1ステップの結果を外部の駆動側に伝えます。
class StepResult(Enum):
    PROGRESSED = "PROGRESSED" # 状態が進んだ
    BLOCKED = "BLOCKED"       # I/O待ちまたはpauseで停滞（状態は不変）
    HALTED = "HALTED"         # 自己ジャンプにより停止

# @intent:responsibility 実行中の命令の詳細を記録します。
@dataclass(frozen=True) # 不変データ構造
class Operation:
    """
    命令語とそのデコード結果（ニーモニック、INDIRECTフラグ、オペランド）を記録するデータクラス。
    """
    address: int
    word: int
    mnemonic: str
    indirect: bool = False
    operand: int = 0

    # @intent:responsibility アセンブラ表記（例: "load (0x005)"）を返します。
    def to_text(self) -> str:
        operand_text = f"0x{self.operand:03X}"
        if self.indirect:
            operand_text = f"({operand_text})"
        return f"{self.mnemonic} {operand_text}"

# @intent:responsibility 実行に関するメタデータを記録します。
@dataclass(frozen=True) # 不変データ構造
class Metadata:
    cycle_count: int          # 累計ステップ数
    instruction_count: int    # 累計リタイア命令数
    symbol_info: Optional[str] = None # 例: "loop: jmpz 0x010"

# @intent:responsibility ある一時点におけるCPUとバスの状態を不変に記録します。
@dataclass(frozen=True) # 不変データ構造
class Snapshot:
    """
    step()の戻り値。resultが駆動側の判断材料となり、retiredはこのステップで
    命令が完了した（PCがコミットされた）かどうかを示します。
    """
    state: CpuState
    operation: Operation
    metadata: Metadata
    result: StepResult
    retired: bool = False
    bus_activity: List[BusAccess] = field(default_factory=list)

# @intent:responsibility リタイアした命令1つ分のトレース情報を記録します。
@dataclass(frozen=True)
class TraceRecord:
    """
    命令リタイア毎に1件、実行順に生成されます。機能的な状態には影響しません。
    """
    pc: int
    indirect: bool
    mnemonic: str
    acc: int          # フェッチ時のACC
    acc_after: int
    index: int        # このレコード以前にリタイアした命令数
    wrote_output: bool = False

    # @intent:responsibility 実装間でトレースを比較するための1行表現を返します。
    def format(self) -> str:
        return f"{self.pc}: {'i' if self.indirect else '-'} a_{self.mnemonic} {self.acc}"
