from dataclasses import dataclass, field

@dataclass
class MachineConfig:
    word_width: int = 16
    memory_size: int = 0x1000
    pc_width: int = 8
    pc_mode: str = "lfsr"  # "lfsr", "counter"
    polynomial: int = 0xB8
    add_mode: bool = False # LSL1のスロットをADDとして扱う
    halt_on_self_jump: bool = True

@dataclass
class IoConfig:
    non_blocking: bool = False # データが無い場合、待たずにACCを全ビット1にする

@dataclass
class SystemConfig:
    machine: MachineConfig = field(default_factory=MachineConfig)
    io: IoConfig = field(default_factory=IoConfig)
    debug: bool = False
