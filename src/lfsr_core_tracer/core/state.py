# lfsr_core_tracer/core/state.py
"""
Core Layer (CPU状態)

このモジュールは、エンジンの状態（ACC、PC、制御ステート、命令ラッチ）を保持する
不変データ構造を定義します。エンジンはステップ毎にこのオブジェクトを丸ごと置き換えます。
"""
from dataclasses import dataclass, replace
from enum import Enum

# @intent:responsibility エンジンの制御ステート（ハードウェアFSMの状態に対応）を定義します。
class ControlState(Enum):
    FETCH = "FETCH"
    INDIRECT = "INDIRECT"
    IN = "IN"
    OUT = "OUT"
    NEXT = "NEXT"

# @intent:responsibility CPUのレジスタ状態と実行中命令のラッチを保持します。
@dataclass(frozen=True)
class CpuState:
    """
    pc, acc: アーキテクチャ上のレジスタ
    control: 次のステップで処理する制御ステート
    instruction / instruction_pc / entry_acc: 実行中の命令語、そのアドレス、フェッチ時のACC
    next_pc: 命令完了時にコミットされるPC
    address: IN/OUTステートで使用する実効アドレス
    halted: 自己ジャンプ検出による停止ラッチ
    """
    pc: int = 0x00
    acc: int = 0x0000
    control: ControlState = ControlState.FETCH
    instruction: int = 0x0000
    instruction_pc: int = 0x00
    entry_acc: int = 0x0000
    next_pc: int = 0x00
    address: int = 0x0000
    halted: bool = False
    # @intent:rationale 初期値はPC=0, ACC=0, FETCH。PC=0はLFSRの不動点のため、
    #                  プログラムは先頭でアドレス0から離れるジャンプを行う前提です。

    # @intent:responsibility dataclasses.replaceのラッパー。
    def replace(self, **changes) -> 'CpuState':
        return replace(self, **changes)
