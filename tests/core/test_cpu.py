# tests/core/test_cpu.py
"""
lfsr_core_tracer.core.cpuモジュールの単体テスト。
実行エンジンの状態遷移、間接参照、メモリマップドI/O、HALT検出、トレースを検証します。
"""
import pytest

from lfsr_core_tracer.core.cpu import LfsrCpu
from lfsr_core_tracer.core.pc_unit import PcUnit, PcMode
from lfsr_core_tracer.core.snapshot import StepResult
from lfsr_core_tracer.core.state import CpuState, ControlState
from lfsr_core_tracer.transport.bus import Bus, Memory, BusAccessType
from lfsr_core_tracer.transport.io_channel import BufferedIoChannel

# @intent:test_suite 実行エンジンの命令意味論と状態機械を検証します。

# デフォルトLFSR(0xB8)でのアドレス列: 1 -> 0xB8 -> 0x5C -> 0x2E -> 0x17
JMP_1 = 0x6001

def make_cpu(words, channel=None, **kwargs):
    channel = channel if channel is not None else BufferedIoChannel()
    bus = Bus(Memory(0x1000), channel)
    for address, word in words.items():
        bus.load(address, word)
    cpu = LfsrCpu(bus, **kwargs)
    return cpu, bus, channel

class TestInitialState:
    def test_initial_state(self):
        cpu, _, _ = make_cpu({})
        state = cpu.get_state()
        assert state == CpuState()
        assert state.pc == 0
        assert state.acc == 0
        assert state.control == ControlState.FETCH

class TestScenarios:
    """
    代表的なシナリオのテスト。
    """
    # @intent:test_case_self_jump_halt 自己ジャンプでHALTすることを検証します。
    def test_jump_then_self_jump_halts(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: JMP_1})

        first = cpu.step()
        assert first.result == StepResult.PROGRESSED
        assert first.retired
        assert cpu.get_state().pc == 1

        second = cpu.step()
        assert second.result == StepResult.HALTED
        assert second.retired
        assert cpu.get_state().pc == 1
        assert cpu.is_halted

        # HALT後のステップは何も変更しない
        third = cpu.step()
        assert third.result == StepResult.HALTED
        assert not third.retired
        assert cpu.instruction_count == 2
        assert cpu.cycle_count == 2

    # @intent:test_case_jump_to_zero アドレス0へのジャンプは自己ジャンプではないことを検証します。
    def test_jump_back_to_zero_does_not_halt(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x6000})
        assert cpu.run(max_steps=6) == StepResult.PROGRESSED
        assert not cpu.is_halted

    # @intent:test_case_and_immediate ACC=0とのANDは0のまま、PCは1ステップ進むことを検証します。
    def test_and_immediate(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x1FFF})
        cpu.step()
        snapshot = cpu.step()
        assert snapshot.retired
        assert cpu.get_state().acc == 0
        assert cpu.get_state().pc == 0xB8

    # @intent:test_case_indirect_jump 間接JMPはメモリから読んだ値に分岐することを検証します。
    def test_indirect_jump(self):
        cpu, _, _ = make_cpu({0: 0xE005, 5: 10})

        fetch = cpu.step()
        assert fetch.result == StepResult.PROGRESSED
        assert not fetch.retired
        assert cpu.get_state().control == ControlState.INDIRECT

        cpu.step()
        assert cpu.get_state().pc == 10
        assert cpu.get_state().control == ControlState.FETCH

class TestAluInstructions:
    def test_xor_lsl1_lsr1(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x0005, 0xB8: 0x2003, 0x5C: 0x3009})
        cpu.step()
        cpu.step()
        assert cpu.get_state().acc == 5
        cpu.step()
        assert cpu.get_state().acc == 6 # 3 << 1
        cpu.step()
        assert cpu.get_state().acc == 4 # 9 >> 1
        assert cpu.get_state().pc == 0x2E

    # @intent:test_case_add_mode ADDモードではLSL1スロットが加算になることを検証します。
    def test_add_mode(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x0005, 0xB8: 0x2007}, add_mode=True)
        for _ in range(3):
            cpu.step()
        assert cpu.get_state().acc == 12

    def test_indirect_operand(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x8020, 0x20: 0xABCD})
        cpu.step()
        cpu.step()
        cpu.step()
        assert cpu.get_state().acc == 0xABCD

    def test_jmpz_taken_and_not_taken(self):
        # ACC=0: jmpz 0x10 は分岐する
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x7010})
        cpu.step()
        cpu.step()
        assert cpu.get_state().pc == 0x10

        # ACC!=0: jmpz は分岐せずPCを進める
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x0001, 0xB8: 0x7010})
        for _ in range(3):
            cpu.step()
        assert cpu.get_state().pc == 0x5C
        assert cpu.get_state().acc == 1

    # @intent:test_case_jmpz_self JMPZによる自己ジャンプはHALT扱いにならないことを検証します。
    def test_jmpz_self_loop_does_not_halt(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x7001})
        assert cpu.run(max_steps=5) == StepResult.PROGRESSED
        assert cpu.get_state().pc == 1

    # @intent:test_case_jump_mask 分岐先はPC幅に切り詰められることを検証します。
    def test_jump_target_truncated_to_pc_width(self):
        cpu, _, _ = make_cpu({0: 0x61B8})
        cpu.step()
        assert cpu.get_state().pc == 0xB8

class TestMemoryAccess:
    def test_store_and_load(self):
        cpu, bus, _ = make_cpu({
            0: JMP_1,
            1: 0x0123,     # xor 0x123
            0xB8: 0x5020,  # store 0x020
            0x5C: 0x0123,  # xor 0x123 -> 0
            0x2E: 0x4020,  # load 0x020
        })
        for _ in range(5):
            cpu.step()
        assert bus.peek(0x20) == 0x0123
        assert cpu.get_state().acc == 0x0123
        assert cpu.get_state().pc == 0x17

    # @intent:test_case_wrap メモリサイズを超えるアドレスは剰余でラップすることを検証します。
    def test_store_wraps_modulo_memory_size(self):
        cpu, bus, _ = make_cpu({0: JMP_1, 1: 0x0077, 0xB8: 0xD010, 0x10: 0x1020})
        for _ in range(4):
            cpu.step()
        assert bus.peek(0x020) == 0x0077

    def test_store_logs_bus_write(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x5030})
        cpu.step()
        snapshot = cpu.step()
        writes = [a for a in snapshot.bus_activity if a.access_type == BusAccessType.WRITE]
        assert len(writes) == 1
        assert writes[0].address == 0x30
        assert writes[0].previous_data == 0

class TestOutput:
    """
    メモリマップドI/O（出力）のテスト。
    """
    @pytest.fixture
    def setup_output(self):
        # xor 'A' ; store (0x10) ; mem[0x10] = 0x8000
        channel = BufferedIoChannel(busy=True)
        cpu, bus, _ = make_cpu({0: JMP_1, 1: 0x0041, 0xB8: 0xD010, 0x10: 0x8000}, channel)
        for _ in range(4):
            cpu.step()
        return cpu, bus, channel

    # @intent:test_case_busy シンクがbusyの間はOUTに留まり、何も書き込まないことを検証します。
    def test_blocks_while_busy(self, setup_output):
        cpu, bus, channel = setup_output
        assert cpu.get_state().control == ControlState.OUT

        before_state = cpu.get_state()
        before_memory = bus.memory.dump()
        for _ in range(5):
            snapshot = cpu.step()
            assert snapshot.result == StepResult.BLOCKED
            assert snapshot.bus_activity == []
        assert cpu.get_state() is before_state
        assert bus.memory.dump() == before_memory
        assert channel.output == bytearray()

    # @intent:test_case_busy_clears busyが解除されると1バイトだけ書き込み、PCを進めることを検証します。
    def test_writes_once_busy_clears(self, setup_output):
        cpu, _, channel = setup_output
        cpu.step()
        channel.busy_flag = False

        snapshot = cpu.step()
        assert snapshot.result == StepResult.PROGRESSED
        assert [a.access_type for a in snapshot.bus_activity] == [BusAccessType.IO_WRITE]
        assert cpu.get_state().control == ControlState.NEXT

        snapshot = cpu.step()
        assert snapshot.retired
        assert cpu.get_state().pc == 0x5C
        assert channel.output == bytearray(b"A")

    def test_writes_low_byte_only(self):
        channel = BufferedIoChannel()
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x8011, 0x11: 0x1234, 0xB8: 0xD010, 0x10: 0x8000}, channel)
        cpu.run(max_steps=7)
        assert channel.output[0] == 0x34

class TestInput:
    """
    メモリマップドI/O（入力）のテスト。
    """
    PROGRAM = {0: JMP_1, 1: 0xC010, 0x10: 0x8000} # load (0x10)

    # @intent:test_case_non_blocking 非ブロッキングモードでデータが無い場合、ACCが全ビット1になることを検証します。
    def test_non_blocking_without_data(self):
        cpu, _, _ = make_cpu(self.PROGRAM, non_blocking=True)
        results = [cpu.step().result for _ in range(4)]
        assert StepResult.BLOCKED not in results
        assert cpu.get_state().acc == 0xFFFF
        cpu.step()
        assert cpu.get_state().pc == 0xB8

    # @intent:test_case_blocking ブロッキングモードではデータが来るまでINに留まることを検証します。
    def test_blocks_until_data(self):
        cpu, _, channel = make_cpu(self.PROGRAM)
        for _ in range(3):
            cpu.step()
        assert cpu.get_state().control == ControlState.IN

        before_state = cpu.get_state()
        for _ in range(3):
            assert cpu.step().result == StepResult.BLOCKED
        assert cpu.get_state() is before_state

        channel.feed(b"\x07")
        snapshot = cpu.step()
        assert snapshot.bus_activity[0].access_type == BusAccessType.IO_READ
        assert cpu.get_state().acc == 0x0007
        cpu.step()
        assert cpu.get_state().pc == 0xB8
        assert not channel.have_data

    # @intent:test_case_exhausted 終端に達した入力は全ビット1として読まれることを検証します。
    def test_exhausted_source_reads_all_ones(self):
        channel = BufferedIoChannel(closed=True)
        cpu, _, _ = make_cpu(self.PROGRAM, channel)
        cpu.run(max_steps=5)
        assert cpu.get_state().acc == 0xFFFF

    def test_byte_is_zero_extended(self):
        channel = BufferedIoChannel(b"\xff")
        cpu, _, _ = make_cpu(self.PROGRAM, channel)
        cpu.run(max_steps=5)
        assert cpu.get_state().acc == 0x00FF

class TestControl:
    """
    外部からの駆動（pause、reset、run、stop）のテスト。
    """
    # @intent:test_case_pause pause中はFETCHで停滞することを検証します。
    def test_pause_stalls_in_fetch(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: JMP_1})
        cpu.pause()
        assert cpu.step().result == StepResult.BLOCKED
        assert cpu.get_state() == CpuState()
        cpu.pause(False)
        assert cpu.step().result == StepResult.PROGRESSED
        assert cpu.get_state().pc == 1

    # @intent:test_case_reset resetはACC、PC、制御ステートを戻し、メモリは保持することを検証します。
    def test_reset(self):
        cpu, bus, _ = make_cpu({0: JMP_1, 1: 0x0042, 0xB8: 0x5020, 0x5C: 0x605C})
        assert cpu.run() == StepResult.HALTED
        assert bus.peek(0x20) == 0x42

        cpu.reset()
        assert cpu.get_state() == CpuState()
        assert not cpu.is_halted
        assert bus.peek(0x20) == 0x42

    # @intent:test_case_handler_table 制御ステートの遷移テーブルは構築時に一度だけ作られ、ステップ間で共有されることを検証します。
    def test_handler_table_built_once(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0xC010, 0x10: 0x0020, 0x20: 0x0042})
        table = cpu._handlers
        assert set(table) == set(ControlState)
        for _ in range(3):
            cpu.step()
        assert cpu._handlers is table

    def test_run_until_halt(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x0042, 0xB8: 0x60B8})
        assert cpu.run() == StepResult.HALTED
        assert cpu.get_state().acc == 0x42
        assert cpu.get_state().pc == 0xB8

    def test_run_respects_max_steps(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x60B8, 0xB8: JMP_1})
        assert cpu.run(max_steps=10) == StepResult.PROGRESSED
        assert cpu.cycle_count == 10

    # @intent:test_case_stop 停止要求は次のステップ境界で反映されることを検証します。
    def test_stop_request(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x60B8, 0xB8: JMP_1})
        cpu.set_trace(lambda record: cpu.stop() if record.index == 2 else None)
        cpu.run()
        assert cpu.instruction_count == 3

    def test_halt_rule_can_be_disabled(self):
        cpu, _, _ = make_cpu({0: 0x6000}, halt_on_self_jump=False)
        assert cpu.run(max_steps=5) == StepResult.PROGRESSED
        assert cpu.get_state().pc == 0

    # @intent:test_case_counter_mode カウンタモードでも同じ意味論で実行されることを検証します。
    def test_counter_mode(self):
        cpu, _, _ = make_cpu({0: 0x0005, 1: 0x2003, 2: 0x6002}, pc_unit=PcUnit(mode=PcMode.COUNTER))
        assert cpu.run() == StepResult.HALTED
        assert cpu.get_state().acc == 6
        assert cpu.get_state().pc == 2

class TestTrace:
    """
    トレースコールバックのテスト。
    """
    # @intent:test_case_trace リタイアした命令毎に1件、実行順に記録されることを検証します。
    def test_one_record_per_retired_instruction(self):
        records = []
        channel = BufferedIoChannel(busy=True)
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x0041, 0xB8: 0xD010, 0x10: 0x8000, 0x5C: 0x605C},
                             channel, trace=records.append)
        cpu.run(max_steps=8)
        assert len(records) == 2 # STOREはbusyで未完了
        channel.busy_flag = False
        assert cpu.run() == StepResult.HALTED

        assert [r.format() for r in records] == [
            "0: - a_jmp 0",
            "1: - a_xor 0",
            "184: i a_store 65",
            "92: - a_jmp 65",
        ]
        assert [r.index for r in records] == [0, 1, 2, 3]
        assert [r.wrote_output for r in records] == [False, False, True, False]
        assert records[1].acc_after == 0x41

    def test_add_mode_mnemonic(self):
        records = []
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0x2001}, add_mode=True, trace=records.append)
        cpu.step()
        cpu.step()
        assert records[1].mnemonic == "add"

class TestInspection:
    def test_symbol_info(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: JMP_1})
        cpu.set_symbol_map({"start": 0, "done": 1})
        snapshot = cpu.step()
        assert snapshot.metadata.symbol_info == "start: jmp 0x001"
        assert snapshot.operation.address == 0

    def test_register_map(self):
        cpu, _, _ = make_cpu({0: JMP_1})
        cpu.step()
        assert cpu.get_register_map() == {"PC": 1, "ACC": 0}

    # @intent:test_case_disassemble 逆アセンブル結果（線形とPC順）を検証します。
    def test_disassemble(self):
        cpu, _, _ = make_cpu({0: JMP_1, 1: 0xE005, 0xB8: 0x1FFF})
        assert cpu.disassemble(0, 2) == [
            (0, "6001", "JMP $001"),
            (1, "E005", "JMP ($005)"),
        ]
        listing = cpu.disassemble(1, 2, follow_pc=True)
        assert [entry[0] for entry in listing] == [1, 0xB8]
        assert listing[1][2] == "AND $FFF"
