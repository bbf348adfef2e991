"""
共通の型定義を提供するモジュール。
プロジェクト全体で使用される汎用的な型エイリアスとビット幅ヘルパーを定義します。
"""
from typing import Dict

# @intent:data_structure シンボル名とアドレスをマッピングする辞書の型エイリアス。
# Assembler, CPU, Disassemblerなど複数のレイヤーで共通して使用されます。
SymbolMap = Dict[str, int]

# @intent:utility_function 指定ビット幅の全ビットが1のマスクを返します。
def bit_mask(width: int) -> int:
    return (1 << width) - 1
