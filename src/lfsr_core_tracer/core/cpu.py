# lfsr_core_tracer/core/cpu.py
"""
Core Layer (実行エンジン)

このモジュールは、LFSRをプログラムカウンタとするアキュムレータマシンの
フェッチ・デコード・実行サイクルを状態機械として実装します。
1回のstep()はハードウェアFSMの1状態遷移に対応し、命令の意味論はこのモジュールだけが持ちます。

    FETCH -> (INDIRECT)? -> (IN | OUT | メモリアクセス) -> NEXT -> FETCH
"""
from typing import Callable, Dict, List, Optional, Tuple

from lfsr_core_tracer.common.types import SymbolMap
from lfsr_core_tracer.core import alu
from lfsr_core_tracer.core.alu import RequestType
from lfsr_core_tracer.core.isa import InstructionFormat, Instruction, Opcode, mnemonic_for, DEFAULT_WORD_WIDTH
from lfsr_core_tracer.core.pc_unit import PcUnit
from lfsr_core_tracer.core.snapshot import Snapshot, Operation, Metadata, StepResult, TraceRecord
from lfsr_core_tracer.core.state import CpuState, ControlState
from lfsr_core_tracer.transport.bus import Bus

TraceCallback = Callable[[TraceRecord], None]

# @intent:responsibility 命令セットの唯一の意味論を持つ実行エンジン。
class LfsrCpu:
    """
    16ビット（デフォルト）アキュムレータマシンの実行エンジン。
    状態はCpuStateとして保持され、ステップ毎に新しいインスタンスに置き換えられます。
    メモリとI/OチャネルはBusを介してこのエンジンだけが操作します。
    """
    # @intent:responsibility CPUの状態とバス、PC更新ユニットへの参照を初期化します。
    # @intent:pre-condition `bus`のメモリ語長はword_widthと一致している必要があります。
    def __init__(self, bus: Bus, pc_unit: Optional[PcUnit] = None, word_width: int = DEFAULT_WORD_WIDTH,
                 add_mode: bool = False, non_blocking: bool = False, halt_on_self_jump: bool = True,
                 trace: Optional[TraceCallback] = None):
        self._bus = bus
        self._pc_unit = pc_unit if pc_unit is not None else PcUnit()
        self._format = InstructionFormat(word_width)
        self._add_mode = add_mode
        self._non_blocking = non_blocking
        self._halt_on_self_jump = halt_on_self_jump
        self._trace = trace
        self._state: CpuState = self._create_initial_state()
        self._cycle_count: int = 0
        self._instruction_count: int = 0
        self._paused: bool = False
        self._stop_requested: bool = False
        self._symbol_map: SymbolMap = {}
        self._reverse_symbol_map: Dict[int, str] = {}
        # @intent:map 制御ステートから遷移関数へのマッピングテーブル。
        self._handlers: Dict[ControlState, Callable[[CpuState], Optional[CpuState]]] = {
            ControlState.FETCH: self._fetch,
            ControlState.INDIRECT: self._indirect,
            ControlState.IN: self._input,
            ControlState.OUT: self._output,
            ControlState.NEXT: self._next,
        }
        # @intent:rationale Stateオブジェクトの直接操作を避けるため、protectedな命名規則を採用。
        #                  外部からのアクセスは`get_state()`メソッドを介して行う。

    @property
    def bus(self) -> Bus:
        return self._bus

    @property
    def pc_unit(self) -> PcUnit:
        return self._pc_unit

    @property
    def instruction_format(self) -> InstructionFormat:
        return self._format

    @property
    def add_mode(self) -> bool:
        return self._add_mode

    @property
    def is_halted(self) -> bool:
        return self._state.halted

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def instruction_count(self) -> int:
        return self._instruction_count

    # @intent:responsibility 命令リタイア毎に呼び出されるトレースコールバックを設定します。
    def set_trace(self, trace: Optional[TraceCallback]) -> None:
        self._trace = trace

    # @intent:responsibility シンボルマップを設定します。
    def set_symbol_map(self, symbol_map: SymbolMap) -> None:
        self._symbol_map = symbol_map
        # 逆引きマップを作成して、アドレスからラベルを素早く引けるようにする
        self._reverse_symbol_map = {addr: name for name, addr in symbol_map.items()}

    def get_symbol_map(self) -> SymbolMap:
        return self._symbol_map

    def _create_initial_state(self) -> CpuState:
        return CpuState()

    # @intent:responsibility ACC、PC、制御ステートを初期値に戻します。
    # @intent:rationale resetはステップ境界でのみ呼ばれるため、命令の途中状態が残ることはありません。
    #                  メモリの内容はリセットしません。
    def reset(self) -> None:
        self._state = self._create_initial_state()
        self._stop_requested = False

    # @intent:responsibility 現在のCPUの状態を返します。
    def get_state(self) -> CpuState:
        return self._state

    # @intent:responsibility デバッガのステップバック用に状態を復元します。
    def restore_state(self, state: CpuState) -> None:
        self._state = state

    # @intent:responsibility FETCHステートでの外部ストール（シングルステップ用）を設定します。
    def pause(self, paused: bool = True) -> None:
        self._paused = paused

    # @intent:responsibility run()に次のステップ境界での停止を要求します。
    def stop(self) -> None:
        self._stop_requested = True

    # @intent:responsibility エンジンを1状態遷移進め、その結果のスナップショットを返します。
    # @intent:rationale 再入可能であり、I/O待ちで停滞中に繰り返し呼び出しても状態は変化しません。
    def step(self) -> Snapshot:
        # 1. 前処理: 前サイクルまでの残存ログを破棄
        self._bus.get_and_clear_activity_log()
        state = self._state

        # 2. HALT / pause判定
        if state.halted:
            return self._create_snapshot(state, StepResult.HALTED, retired=False)
        self._cycle_count += 1
        if state.control == ControlState.FETCH and self._paused:
            return self._create_snapshot(state, StepResult.BLOCKED, retired=False)

        # 3. 現在の制御ステートに応じた遷移
        handler = self._handlers[state.control]
        new_state = handler(state)
        if new_state is None:
            return self._create_snapshot(state, StepResult.BLOCKED, retired=False)

        # 4. コミット
        self._state = new_state
        retired = new_state.control == ControlState.FETCH
        if retired:
            self._emit_trace(new_state)
            self._instruction_count += 1
        result = StepResult.HALTED if new_state.halted else StepResult.PROGRESSED
        return self._create_snapshot(new_state, result, retired)

    # @intent:responsibility 停止条件（HALT、停止要求、ステップ上限）まで実行を続けます。
    def run(self, max_steps: Optional[int] = None) -> StepResult:
        """
        最後のステップの結果を返します。HALTED以外で戻った場合は、停止要求か
        ステップ上限に達したことを意味します。
        """
        self._stop_requested = False
        result = StepResult.HALTED if self._state.halted else StepResult.PROGRESSED
        steps = 0
        while not self._stop_requested and result != StepResult.HALTED:
            if max_steps is not None and steps >= max_steps:
                break
            result = self.step().result
            steps += 1
        return result

    # @intent:responsibility Memory[PC]から命令をフェッチし、ラッチします。
    #                  INDIRECT=0であれば同じステップ内でALUディスパッチまで行います。
    def _fetch(self, state: CpuState) -> CpuState:
        word = self._bus.read(state.pc)
        instruction = self._format.decode(word)
        latched = state.replace(
            instruction=word,
            instruction_pc=state.pc,
            entry_acc=state.acc,
            next_pc=self._pc_unit.advance(state.pc),
        )
        if instruction.indirect:
            return latched.replace(control=ControlState.INDIRECT)
        return self._dispatch(latched, instruction, instruction.operand)

    # @intent:responsibility Memory[operand]を引数として読み込み、ALUディスパッチを行います。
    # @intent:rationale 間接参照は1段のみ。読み込んだ値をさらに間接参照することはありません。
    def _indirect(self, state: CpuState) -> CpuState:
        instruction = self._format.decode(state.instruction)
        return self._dispatch(state, instruction, self._bus.read(instruction.operand))

    # @intent:responsibility ALUの結果に基づき、ACCの更新、メモリアクセス、分岐、I/O待ちへの遷移を行います。
    def _dispatch(self, state: CpuState, instruction: Instruction, arg: int) -> CpuState:
        result = alu.execute(instruction.opcode, state.acc, arg, self._format.word_mask, self._add_mode)

        request = result.request
        if request is not None:
            state = state.replace(address=request.address)
            if self._format.is_io_address(request.address):
                if request.request_type == RequestType.READ:
                    return state.replace(control=ControlState.IN)
                return state.replace(control=ControlState.OUT)
            if request.request_type == RequestType.READ:
                return self._retire(state.replace(acc=self._bus.read(request.address)))
            self._bus.write(request.address, request.value)
            return self._retire(state)

        if result.jump is not None:
            target = result.jump & self._pc_unit.mask
            halt = (instruction.opcode == Opcode.JMP and self._halt_on_self_jump
                    and target == state.instruction_pc)
            return self._retire(state.replace(next_pc=target), halt=halt)

        return self._retire(state.replace(acc=result.acc))

    # @intent:responsibility I/Oチャネルから1バイトを読み込みます。データが無ければブロックします。
    # @intent:post-condition ブロックした場合はNoneを返し、状態は一切変更しません。
    def _input(self, state: CpuState) -> Optional[CpuState]:
        data = self._bus.read_io(state.address)
        if data is None:
            if not (self._non_blocking or self._bus.channel.exhausted):
                return None
            data = self._format.word_mask
        return state.replace(acc=data, control=ControlState.NEXT)

    # @intent:responsibility ACCの下位バイトをI/Oチャネルへ書き込みます。シンクがbusyならブロックします。
    def _output(self, state: CpuState) -> Optional[CpuState]:
        if not self._bus.write_io(state.address, state.acc):
            return None
        return state.replace(control=ControlState.NEXT)

    def _next(self, state: CpuState) -> CpuState:
        return self._retire(state)

    # @intent:responsibility ラッチ済みの次のPCをコミットし、FETCHへ戻ります。
    def _retire(self, state: CpuState, halt: bool = False) -> CpuState:
        return state.replace(pc=state.next_pc, control=ControlState.FETCH, halted=halt)

    def _emit_trace(self, state: CpuState) -> None:
        if self._trace is None:
            return
        instruction = self._format.decode(state.instruction)
        wrote_output = instruction.opcode == Opcode.STORE and self._format.is_io_address(state.address)
        self._trace(TraceRecord(
            pc=state.instruction_pc,
            indirect=instruction.indirect,
            mnemonic=mnemonic_for(instruction.opcode, self._add_mode),
            acc=state.entry_acc,
            acc_after=state.acc,
            index=self._instruction_count,
            wrote_output=wrote_output,
        ))

    # @intent:responsibility ラッチされた命令からOperationを生成します。
    def _current_operation(self, state: CpuState) -> Operation:
        instruction = self._format.decode(state.instruction)
        return Operation(
            address=state.instruction_pc,
            word=state.instruction,
            mnemonic=mnemonic_for(instruction.opcode, self._add_mode),
            indirect=instruction.indirect,
            operand=instruction.operand,
        )

    # @intent:responsibility スナップショットを生成します。
    def _create_snapshot(self, state: CpuState, result: StepResult, retired: bool) -> Snapshot:
        # このサイクルで発生したバスアクティビティを取得
        bus_activity = self._bus.get_and_clear_activity_log()
        operation = self._current_operation(state)

        # シンボル情報の取得
        symbol_label = self._reverse_symbol_map.get(operation.address, "")
        symbol_info = f"{symbol_label}: " if symbol_label else ""
        symbol_info += operation.to_text()

        return Snapshot(
            state=state,
            operation=operation,
            metadata=Metadata(
                cycle_count=self._cycle_count,
                instruction_count=self._instruction_count,
                symbol_info=symbol_info,
            ),
            result=result,
            retired=retired,
            bus_activity=bus_activity,
        )

    # @intent:responsibility 現在のレジスタ値を辞書形式で返します。
    def get_register_map(self) -> Dict[str, int]:
        return {"PC": self._state.pc, "ACC": self._state.acc}

    # @intent:responsibility 指定されたメモリ範囲を逆アセンブルします。
    # @intent:rationale follow_pcが真の場合、連続した整数アドレスではなくPCの実行順に走査します。
    def disassemble(self, start_addr: int, length: int, follow_pc: bool = False) -> List[Tuple[int, str, str]]:
        from lfsr_core_tracer.core import disassembler
        return disassembler.disassemble(
            self._bus, start_addr, length,
            instruction_format=self._format,
            pc_unit=self._pc_unit if follow_pc else None,
            add_mode=self._add_mode,
            symbol_map=self._symbol_map,
        )
