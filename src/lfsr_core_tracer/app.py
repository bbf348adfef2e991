# lfsr_core_tracer/app.py
"""
コマンドラインのエントリポイント。

    lfsr-vm prog.hex            プログラムイメージを読み込み、HALTするまで実行する
    lfsr-asm prog.asm prog.hex  アセンブリソースをプログラムイメージに変換する

入出力はプロセスの標準入出力に接続されます。環境変数DEBUGが0以外の整数であれば、
リタイアした命令毎に1行のトレースを標準エラー出力に書き出します。
"""
import sys
from typing import List, Optional

import yaml

from lfsr_core_tracer.config.builder import SystemBuilder
from lfsr_core_tracer.config.loader import ConfigLoader
from lfsr_core_tracer.config.models import SystemConfig
from lfsr_core_tracer.core.isa import InstructionFormat
from lfsr_core_tracer.core.pc_unit import PcUnit, PcMode
from lfsr_core_tracer.core.snapshot import TraceRecord
from lfsr_core_tracer.loader.assembler import LfsrAssembler, to_image
from lfsr_core_tracer.loader.loader import HexImageLoader, save_image
from lfsr_core_tracer.transport.io_channel import StdIoChannel

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_UNREADABLE = 2
EXIT_ASSEMBLY = 3
EXIT_CONFIG = 4

# @intent:responsibility 命令毎のトレース行と、最初の出力までのサイクル数を書き出します。
class DebugTracer:
    def __init__(self, stream=None):
        self._stream = stream if stream is not None else sys.stderr
        self._first_output = True

    def __call__(self, record: TraceRecord) -> None:
        print(record.format(), file=self._stream)
        if record.wrote_output and self._first_output:
            self._first_output = False
            print(f"Cycles until first output: {record.index}", file=self._stream)

# @intent:responsibility 環境変数LFSR_CONFIGとDEBUGから設定を読み込みます。
# @intent:post-condition 読み込めない、または不正な設定の場合はメッセージを出力してNoneを返します。
def _load_config() -> Optional[SystemConfig]:
    try:
        return ConfigLoader().load_from_environment()
    except OSError as e:
        print(f"Unable to read configuration `{e.filename}`", file=sys.stderr)
    except (ValueError, yaml.YAMLError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
    return None

# @intent:responsibility プログラムイメージを読み込み、HALTするまで実行します。
def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) < 1:
        print("Usage: lfsr-vm prog.hex", file=sys.stderr)
        return EXIT_USAGE

    config = _load_config()
    if config is None:
        return EXIT_CONFIG
    tracer = DebugTracer() if config.debug else None
    try:
        cpu, bus = SystemBuilder().build_system(
            config, StdIoChannel(non_blocking=config.io.non_blocking), trace=tracer)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        HexImageLoader().load_image(args[0], bus, cpu.instruction_format.word_mask)
    except OSError:
        print(f"Unable to open file `{args[0]}` for reading", file=sys.stderr)
        return EXIT_UNREADABLE

    cpu.run()
    return EXIT_OK

# @intent:responsibility アセンブリソースをプログラムイメージに変換します。
def assemble_main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) < 2:
        print("Usage: lfsr-asm prog.asm prog.hex", file=sys.stderr)
        return EXIT_USAGE

    config = _load_config()
    if config is None:
        return EXIT_CONFIG
    machine = config.machine
    try:
        assembler = LfsrAssembler(
            PcUnit(machine.pc_width, machine.polynomial, PcMode(machine.pc_mode)),
            InstructionFormat(machine.word_width),
            add_mode=machine.add_mode,
        )
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG
    try:
        with open(args[0], 'r', encoding="utf-8") as f:
            lines = f.readlines()
    except (OSError, UnicodeDecodeError):
        print(f"Unable to open file `{args[0]}` for reading", file=sys.stderr)
        return EXIT_UNREADABLE

    try:
        _, binary_data = assembler.assemble(lines)
    except ValueError as e:
        print(f"{args[0]}: {e}", file=sys.stderr)
        return EXIT_ASSEMBLY

    save_image(to_image(binary_data, machine.memory_size), args[1])
    return EXIT_OK

if __name__ == '__main__':
    sys.exit(main())
