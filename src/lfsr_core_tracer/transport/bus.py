# lfsr_core_tracer/transport/bus.py
"""
Transport Layer (メモリとバス)

このモジュールは、ワード単位の線形メモリと、エンジンからのメモリ/I/Oアクセスを
仲介してすべてのアクセスを記録するバスを提供します。
アドレスの最上位ビットによるI/O判定はエンジンの責務であり、メモリ自体は
常にアドレスをサイズで剰余した位置にアクセスします。
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from lfsr_core_tracer.common.types import bit_mask
from lfsr_core_tracer.transport.io_channel import IoChannel, BufferedIoChannel

DEFAULT_MEMORY_SIZE = 0x1000

# @intent:responsibility バスアクセスを記録するためのタイプを定義します。
class BusAccessType(Enum):
    READ = "READ"
    WRITE = "WRITE"
    IO_READ = "IO_READ"
    IO_WRITE = "IO_WRITE"

# @intent:responsibility 個々のバスアクセス操作を記録します。
@dataclass(frozen=True) # 不変データ構造
class BusAccess:
    """
    バス上で行われた単一のアクセスを記録するデータクラス。
    WRITEの場合、previous_dataに書き込み前の値を保持し、デバッガのステップバックに使用します。
    """
    address: int
    data: int
    access_type: BusAccessType
    previous_data: Optional[int] = None

# @intent:responsibility 固定サイズのワード配列としてのメモリを提供します。
class Memory:
    """
    サイズが2のべき乗のワード配列。アドレスは常にサイズで剰余されます。
    範囲外アドレスはエラーではなく、定義されたラップアラウンドです。
    """
    # @intent:pre-condition sizeは2のべき乗の正の整数である必要があります。
    def __init__(self, size: int = DEFAULT_MEMORY_SIZE, word_width: int = 16):
        if not isinstance(size, int) or size <= 0 or size & (size - 1):
            raise ValueError("Memory size must be a positive power of two.")
        self._size = size
        self._word_mask = bit_mask(word_width)
        self._cells: List[int] = [0] * size

    def read(self, address: int) -> int:
        return self._cells[address % self._size]

    def write(self, address: int, data: int) -> None:
        self._cells[address % self._size] = data & self._word_mask

    def get_size(self) -> int:
        return self._size

    # @intent:responsibility メモリ内容のコピーを返します（検査用）。
    def dump(self) -> List[int]:
        return list(self._cells)

    # @intent:responsibility 全セルを0に戻します。
    def clear(self) -> None:
        self._cells = [0] * self._size

# @intent:responsibility メモリとI/Oチャネルへのアクセスをディスパッチし、記録する共通バス。
# @intent:rationale バスの全てのアクセスを記録し、Snapshotに含めることでシステムの観測可能性を高めます。
class Bus:
    """
    エンジンが唯一の利用者となるバス。メモリとI/Oチャネルを排他的に所有します。
    """
    def __init__(self, memory: Optional[Memory] = None, channel: Optional[IoChannel] = None):
        self._memory = memory if memory is not None else Memory()
        self._channel = channel if channel is not None else BufferedIoChannel()
        self._bus_activity_log: List[BusAccess] = [] # バスアクセスログ

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def channel(self) -> IoChannel:
        return self._channel

    def _log_access(self, address: int, data: int, access_type: BusAccessType,
                    previous_data: Optional[int] = None) -> None:
        self._bus_activity_log.append(BusAccess(address, data, access_type, previous_data))

    # @intent:responsibility 記録されたバスアクティビティログを取得し、クリアします。
    def get_and_clear_activity_log(self) -> List[BusAccess]:
        log = self._bus_activity_log
        self._bus_activity_log = [] # ログをクリア
        return log

    # @intent:responsibility メモリから1ワードを読み出します。アクセスはログに記録されます。
    def read(self, address: int) -> int:
        address %= self._memory.get_size()
        data = self._memory.read(address)
        self._log_access(address, data, BusAccessType.READ)
        return data

    # @intent:responsibility ログを記録せずにメモリから読み出します。
    def peek(self, address: int) -> int:
        """
        UI、逆アセンブラ、テストなどのインスペクタ用。
        """
        return self._memory.read(address)

    # @intent:responsibility メモリに1ワードを書き込みます。書き込み前の値も記録します。
    def write(self, address: int, data: int) -> None:
        address %= self._memory.get_size()
        previous = self._memory.read(address)
        self._memory.write(address, data)
        self._log_access(address, self._memory.read(address), BusAccessType.WRITE, previous)

    # @intent:responsibility ログを記録せずにメモリへ書き込みます。
    # @intent:rationale プログラムイメージのロードやステップバックによる復元は、
    #                  実行中のバスアクティビティではないため記録しません。
    def load(self, address: int, data: int) -> None:
        self._memory.write(address, data)

    # @intent:responsibility I/Oチャネルから1バイトの読み出しを試みます。
    # @intent:post-condition データが無い場合はNoneを返し、ログには何も記録しません。
    def read_io(self, address: int) -> Optional[int]:
        data = self._channel.try_read()
        if data is not None:
            self._log_access(address, data, BusAccessType.IO_READ)
        return data

    # @intent:responsibility I/Oチャネルへ1バイトの書き込みを試みます。
    # @intent:post-condition シンクがbusyの場合はFalseを返し、ログには何も記録しません。
    def write_io(self, address: int, data: int) -> bool:
        accepted = self._channel.try_write(data & 0xFF)
        if accepted:
            self._log_access(address, data & 0xFF, BusAccessType.IO_WRITE)
        return accepted
