# lfsr_core_tracer/transport/io_channel.py
"""
Transport Layer (バイトI/Oチャネル)

このモジュールは、1つの入力バイトソースと1つの出力バイトシンクを抽象化します。
空/満杯の状態は例外ではなく、準備完了フラグ（have_data / busy）として表現され、
エンジンはステップ毎にこれを参照してブロッキングの再試行を判断します。
"""
import os
import select
import sys
from abc import ABC, abstractmethod
from collections import deque
from typing import BinaryIO, Iterable, Optional

# @intent:responsibility バイトI/Oチャネルの抽象インターフェースを定義します。
class IoChannel(ABC):
    """
    エンジンが期待するブロッキング契約に合わせた、バイト単位のI/Oアダプタ。
    どのメソッドも空/満杯を理由に例外を送出してはいけません。
    """
    # @intent:responsibility 読み出し可能なバイトがあるかを返します。
    @property
    @abstractmethod
    def have_data(self) -> bool:
        pass

    # @intent:responsibility 出力シンクが書き込みを受け付けられない状態かを返します。
    @property
    @abstractmethod
    def busy(self) -> bool:
        pass

    # @intent:responsibility 入力ソースが終端に達し、今後データが来ないことを返します。
    # @intent:rationale 終端に達したソースを待ち続けるとエンジンが永久に停止するため、
    #                  エンジンはこれを非ブロッキングモードと同様に扱います。
    @property
    def exhausted(self) -> bool:
        return False

    # @intent:responsibility 1バイトを消費して返します。データが無ければNoneを返します。
    @abstractmethod
    def try_read(self) -> Optional[int]:
        pass

    # @intent:responsibility 1バイトの書き込みを試みます。受け付けた場合のみTrueを返します。
    @abstractmethod
    def try_write(self, data: int) -> bool:
        pass

# @intent:responsibility メモリ上のキューとバッファによるI/Oチャネル（組み込み・テスト用）。
class BufferedIoChannel(IoChannel):
    """
    入力はキュー、出力はbytearrayに蓄積します。
    busyフラグは外部から設定でき、出力シンクの混雑を再現できます。
    """
    def __init__(self, input_data: Iterable[int] = b"", busy: bool = False, closed: bool = False):
        self._input = deque(b & 0xFF for b in input_data)
        self.output = bytearray()
        self.busy_flag = busy
        self.closed = closed

    @property
    def have_data(self) -> bool:
        return bool(self._input)

    @property
    def busy(self) -> bool:
        return self.busy_flag

    # @intent:responsibility closeされ、かつキューが空の場合に終端とみなします。
    @property
    def exhausted(self) -> bool:
        return self.closed and not self._input

    # @intent:responsibility 入力キューにバイト列を追加します。
    def feed(self, data: Iterable[int]) -> None:
        self._input.extend(b & 0xFF for b in data)

    def try_read(self) -> Optional[int]:
        if not self._input:
            return None
        return self._input.popleft()

    def try_write(self, data: int) -> bool:
        if self.busy_flag:
            return False
        self.output.append(data & 0xFF)
        return True

# @intent:responsibility プロセスの標準入出力をバイトストリームとして扱うI/Oチャネル。
class StdIoChannel(IoChannel):
    """
    ブロッキングモードでは、標準入力からの読み出しはOSレベルでブロックします。
    non_blockingモードでは、select()で入力の有無を確認し、データが無ければNoneを返します。
    ストリーム終端に達するとexhaustedになります。対話的なエコーのため、出力は1バイト毎に
    フラッシュします。

    ファイル記述子を持つストリームはos.read()で1バイトずつ読み、Python側のバッファに
    先読みされたバイトがselect()から見えなくなることを避けます。ファイル記述子を持たない
    メモリ上のストリーム（io.BytesIOなど）は常に読み出し可能として扱います。
    """
    def __init__(self, stdin: Optional[BinaryIO] = None, stdout: Optional[BinaryIO] = None,
                 non_blocking: bool = False):
        self._in = stdin if stdin is not None else sys.stdin.buffer
        self._out = stdout if stdout is not None else sys.stdout.buffer
        self._non_blocking = non_blocking
        self._fd = self._fileno(self._in)
        self._eof = False

    @staticmethod
    def _fileno(stream) -> Optional[int]:
        try:
            return stream.fileno()
        except (AttributeError, OSError, ValueError): # io.UnsupportedOperation
            return None

    # @intent:responsibility 読み出しがブロックしないか（データまたは終端があるか）を判定します。
    def _ready(self) -> bool:
        if self._fd is None:
            return True
        readable, _, _ = select.select([self._fd], [], [], 0)
        return bool(readable)

    @property
    def have_data(self) -> bool:
        return not self._eof and self._ready()

    @property
    def busy(self) -> bool:
        return False

    @property
    def exhausted(self) -> bool:
        return self._eof

    def try_read(self) -> Optional[int]:
        if self._eof:
            return None
        if self._non_blocking and not self._ready():
            return None
        if self._fd is not None:
            data = os.read(self._fd, 1)
        else:
            data = self._in.read(1)
        if not data:
            self._eof = True
            return None
        return data[0]

    def try_write(self, data: int) -> bool:
        self._out.write(bytes([data & 0xFF]))
        self._out.flush()
        return True
