# lfsr_core_tracer/core/pc_unit.py
"""
Core Layer (PC更新ユニット)

このモジュールは、プログラムカウンタの次の値を計算する責務を負います。
加算器の代わりにGalois形式のLFSRを用いるモードと、通常のインクリメントを行う
カウンタモードを提供します。どちらのモードも純粋関数として振る舞い、
エンジン側はどちらの演算形式であるかを前提にしてはいけません。
"""
from enum import Enum
from typing import List

from lfsr_core_tracer.common.types import bit_mask

DEFAULT_PC_WIDTH = 8
DEFAULT_POLYNOMIAL = 0xB8 # 周期255。0x84はタップ数2だが周期217になる

# @intent:responsibility PCの更新方式を定義します。
class PcMode(Enum):
    LFSR = "lfsr"
    COUNTER = "counter"

# @intent:responsibility PCの次の値を計算する、状態を持たないユニット。
class PcUnit:
    """
    nビットのプログラムカウンタを進めるユニット。

    LFSRモードでは、pcのbit0をフィードバックビットとして右に1ビットシフトし、
    フィードバックビットが1であれば多項式マスクとXORを取ります。
    全ビット0の状態はこの漸化式の不動点であるため、プログラムの先頭命令は
    アドレス0から離れるジャンプである必要があります。
    """
    # @intent:pre-condition widthは正の整数。LFSRモードの場合、polynomialはnビットに収まり、
    #                      最上位ビット(bit n-1)が立っている必要があります。
    # @intent:rationale 最上位ビットが立っていない多項式では漸化式が非0状態上の全単射にならず、
    #                  状態が縮退します。実行時ではなく構築時に検出します。
    def __init__(self, width: int = DEFAULT_PC_WIDTH, polynomial: int = DEFAULT_POLYNOMIAL,
                 mode: PcMode = PcMode.LFSR):
        if not isinstance(width, int) or width <= 0:
            raise ValueError("PC width must be a positive integer.")
        if not isinstance(mode, PcMode):
            raise ValueError(f"Unsupported PC mode: {mode}")
        self._width = width
        self._mask = bit_mask(width)
        self._polynomial = polynomial
        self._mode = mode
        if mode == PcMode.LFSR:
            if not 0 <= polynomial <= self._mask:
                raise ValueError(f"Polynomial {polynomial:#x} does not fit in {width} bits.")
            if not polynomial & (1 << (width - 1)):
                raise ValueError(
                    f"Polynomial {polynomial:#x} is degenerate for a {width}-bit LFSR "
                    f"(bit {width - 1} must be set)."
                )

    @property
    def width(self) -> int:
        return self._width

    @property
    def mask(self) -> int:
        return self._mask

    @property
    def polynomial(self) -> int:
        return self._polynomial

    @property
    def mode(self) -> PcMode:
        return self._mode

    # @intent:responsibility 与えられたPCの次の値を返します。副作用はありません。
    def advance(self, pc: int) -> int:
        pc &= self._mask
        if self._mode == PcMode.COUNTER:
            return (pc + 1) & self._mask
        feedback = pc & 1
        pc >>= 1
        return (pc ^ self._polynomial) & self._mask if feedback else pc

    # @intent:responsibility startから順にadvanceしたアドレス列を返します。
    def sequence(self, start: int, count: int) -> List[int]:
        """
        startを先頭として、count個のアドレスを実行順に返します。
        アセンブラの配置と逆アセンブラの走査に使用します。
        """
        result = []
        pc = start & self._mask
        for _ in range(count):
            result.append(pc)
            pc = self.advance(pc)
        return result

    # @intent:responsibility seedが再び現れるまでのadvance回数（周期）を返します。
    # @intent:post-condition seedが不動点なら1を返します。
    def period(self, seed: int = 1) -> int:
        seed &= self._mask
        pc = self.advance(seed)
        count = 1
        while pc != seed:
            pc = self.advance(pc)
            count += 1
            if count > self._mask + 1:
                raise ValueError(f"Seed {seed:#x} is not on a cycle of the recurrence.")
        return count
