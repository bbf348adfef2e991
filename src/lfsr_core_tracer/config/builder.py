from typing import Optional, Tuple
from lfsr_core_tracer.transport.bus import Bus, Memory
from lfsr_core_tracer.transport.io_channel import IoChannel, BufferedIoChannel
from lfsr_core_tracer.core.cpu import LfsrCpu, TraceCallback
from lfsr_core_tracer.core.pc_unit import PcUnit, PcMode
from .models import SystemConfig

# @intent:responsibility システム構成（Config）に基づいて、Memory、Bus、PC更新ユニット、CPUを生成・接続します。
class SystemBuilder:
    def build_system(self, config: SystemConfig, channel: Optional[IoChannel] = None,
                     trace: Optional[TraceCallback] = None) -> Tuple[LfsrCpu, Bus]:
        machine = config.machine
        memory = Memory(machine.memory_size, machine.word_width)
        bus = Bus(memory, channel if channel is not None else BufferedIoChannel())

        try:
            mode = PcMode(machine.pc_mode)
        except ValueError:
            raise ValueError(f"Unsupported PC mode: {machine.pc_mode}")
        pc_unit = PcUnit(machine.pc_width, machine.polynomial, mode)

        cpu = LfsrCpu(
            bus,
            pc_unit=pc_unit,
            word_width=machine.word_width,
            add_mode=machine.add_mode,
            non_blocking=config.io.non_blocking,
            halt_on_self_jump=machine.halt_on_self_jump,
            trace=trace,
        )
        return cpu, bus
