# lfsr_core_tracer/debugger/debugger.py
"""
デバッガモジュール。

実行エンジンを外部から1ステップずつ駆動し、ユーザーが指定した条件（ブレークポイント）で
実行を中断させる責務を負います。エンジンの状態は不変オブジェクトなので、
履歴に積んだSnapshotからそのまま状態を復元できます。
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from lfsr_core_tracer.core.cpu import LfsrCpu
from lfsr_core_tracer.core.snapshot import Snapshot, StepResult
from lfsr_core_tracer.core.state import CpuState, ControlState
from lfsr_core_tracer.transport.bus import BusAccessType

# @intent:responsibility ブレークポイントの条件タイプを定義します。
class BreakpointConditionType(Enum):
    PC_MATCH = "PC_MATCH"               # 次にフェッチする命令のアドレスが一致
    MEMORY_READ = "MEMORY_READ"         # 特定のアドレスが読み込まれた
    MEMORY_WRITE = "MEMORY_WRITE"       # 特定のアドレスに書き込まれた
    IO_READ = "IO_READ"                 # 特定のI/Oアドレスから読み込まれた
    IO_WRITE = "IO_WRITE"               # 特定のI/Oアドレスに書き込まれた
    REGISTER_VALUE = "REGISTER_VALUE"   # 特定のレジスタが特定の値になった
    REGISTER_CHANGE = "REGISTER_CHANGE" # 特定のレジスタの値が変化した

_ACCESS_TYPES = {
    BreakpointConditionType.MEMORY_READ: BusAccessType.READ,
    BreakpointConditionType.MEMORY_WRITE: BusAccessType.WRITE,
    BreakpointConditionType.IO_READ: BusAccessType.IO_READ,
    BreakpointConditionType.IO_WRITE: BusAccessType.IO_WRITE,
}

# @intent:responsibility ブレークポイントをトリガーする条件を定義します。
@dataclass(frozen=True)
class BreakpointCondition:
    """
    ブレークポイントがヒットするための条件を定義するデータクラス。
    """
    condition_type: BreakpointConditionType
    value: Optional[int] = None           # PC_MATCH, REGISTER_VALUEで使用
    address: Optional[int] = None         # MEMORY_*, IO_*で使用
    register_name: Optional[str] = None   # REGISTER_VALUE, REGISTER_CHANGEで使用 ("acc", "pc")
    enabled: bool = True                  # 有効/無効状態

# @intent:responsibility エンジンの実行制御とブレークポイント管理を行います。
class Debugger:
    """
    CPUの実行を制御し、ブレークポイントと実行履歴を管理するクラス。
    """
    def __init__(self, cpu: LfsrCpu):
        self._cpu = cpu
        self._breakpoints: List[BreakpointCondition] = []
        self._running: bool = False
        self._previous_state: CpuState = self._cpu.get_state()
        self._last_snapshot: Optional[Snapshot] = None
        # @intent:responsibility 実行履歴を保持し、ステップバックをサポートします。
        self._history: List[Snapshot] = []
        # @intent:responsibility 履歴が尽きた時に戻るための初期状態を保持します。
        self._initial_state: CpuState = self._cpu.get_state()

    def add_breakpoint(self, condition: BreakpointCondition) -> None:
        if condition not in self._breakpoints:
            self._breakpoints.append(condition)

    def remove_breakpoint(self, condition: BreakpointCondition) -> None:
        if condition in self._breakpoints:
            self._breakpoints.remove(condition)

    def get_breakpoints(self) -> List[BreakpointCondition]:
        return list(self._breakpoints)

    def get_history(self) -> List[Snapshot]:
        return list(self._history)

    def get_last_snapshot(self) -> Optional[Snapshot]:
        return self._last_snapshot

    def _check_pc_breakpoints(self, state: CpuState) -> bool:
        if state.control != ControlState.FETCH or state.halted:
            return False
        for bp in self._breakpoints:
            if bp.enabled and bp.condition_type == BreakpointConditionType.PC_MATCH and bp.value == state.pc:
                return True
        return False

    def _check_other_breakpoints(self, snapshot: Snapshot) -> bool:
        """
        Snapshotに基づいてPC_MATCH以外のブレークポイントをチェックします。
        """
        current_state = snapshot.state

        for bp in self._breakpoints:
            if not bp.enabled:
                continue

            access_type = _ACCESS_TYPES.get(bp.condition_type)
            if access_type is not None:
                for access in snapshot.bus_activity:
                    if access.access_type == access_type and access.address == bp.address:
                        return True
            elif bp.condition_type == BreakpointConditionType.REGISTER_VALUE:
                if bp.register_name and hasattr(current_state, bp.register_name):
                    if getattr(current_state, bp.register_name) == bp.value:
                        return True
            elif bp.condition_type == BreakpointConditionType.REGISTER_CHANGE:
                if bp.register_name and hasattr(current_state, bp.register_name):
                    if getattr(current_state, bp.register_name) != getattr(self._previous_state, bp.register_name):
                        return True
        return False

    # @intent:responsibility エンジンを1状態遷移だけ進め、履歴に記録します。
    def step(self) -> Snapshot:
        self._previous_state = self._cpu.get_state()
        snapshot = self._cpu.step()
        self._last_snapshot = snapshot
        if snapshot.result == StepResult.PROGRESSED or snapshot.retired:
            self._history.append(snapshot)
        return snapshot

    # @intent:responsibility 1命令が完了するまで（またはHALT/ブロックまで）エンジンを進めます。
    def step_instruction(self) -> Snapshot:
        """
        命令がリタイアしたステップ、またはHALTED/BLOCKEDとなったステップのSnapshotを返します。
        """
        while True:
            snapshot = self.step()
            if snapshot.retired or snapshot.result != StepResult.PROGRESSED:
                return snapshot

    # @intent:responsibility 実行履歴を1ステップ戻り、CPUとメモリの状態を復元します。
    # @intent:rationale I/Oチャネルへの入出力は外部への副作用であり、取り消しません。
    def step_back(self) -> Optional[Snapshot]:
        if not self._history:
            return None

        # 1. 履歴から最新のスナップショットを取り出し、削除する
        snapshot_to_revert = self._history.pop()

        # 2. メモリ書き込みの取り消し (Undo)
        bus = self._cpu.bus
        for access in reversed(snapshot_to_revert.bus_activity):
            if access.access_type == BusAccessType.WRITE and access.previous_data is not None:
                bus.load(access.address, access.previous_data)

        # 3. CPU状態の復元
        if self._history:
            previous_snapshot = self._history[-1]
            self._cpu.restore_state(previous_snapshot.state)
            self._last_snapshot = previous_snapshot
            return previous_snapshot
        self._cpu.restore_state(self._initial_state)
        self._last_snapshot = None
        return None

    # @intent:responsibility HALT、ブレークポイント、停止要求、ステップ上限のいずれかまで実行を継続します。
    def run(self, max_steps: Optional[int] = None) -> Optional[Snapshot]:
        self._running = True
        steps = 0

        # 現在位置のPCブレークポイントで止まり続けないよう、最初の1命令は無条件に実行する
        if self._check_pc_breakpoints(self._cpu.get_state()):
            self.step_instruction()

        while self._running:
            if max_steps is not None and steps >= max_steps:
                self._running = False
                break

            state = self._cpu.get_state()
            if self._check_pc_breakpoints(state):
                self._running = False
                print(f"Breakpoint hit at PC: {state.pc:#04x}")
                break

            snapshot = self.step()
            steps += 1

            if snapshot.result == StepResult.HALTED:
                self._running = False
                break

            if self._check_other_breakpoints(snapshot):
                self._running = False
                print(f"Breakpoint hit at PC: {snapshot.operation.address:#04x}")

        return self._last_snapshot

    def stop(self) -> None:
        self._running = False
