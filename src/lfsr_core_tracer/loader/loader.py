# lfsr_core_tracer/loader/loader.py
"""
プログラムイメージローダーモジュール。

1レコード1値の16進数テキスト（各値の後のカンマは任意）を解析し、
アドレス0から順にメモリへロードします。
"""
import re
from typing import List, Sequence

from lfsr_core_tracer.transport.bus import Bus

# 空白を読み飛ばし、16進数1つと任意のカンマを読む
_RECORD = re.compile(r"\s*(?:0[xX])?([0-9a-fA-F]+)\s*,?", re.ASCII)

class HexImageLoader:
    """
    16進数テキスト形式のプログラムイメージを解析し、データをバスにロードするローダー。

    解析できないレコードに出会った時点でロードを打ち切ります。これはエラーではなく、
    残りのメモリは0のまま実行を続けるという意図的な縮退動作です。
    """
    # @intent:responsibility テキストを解析してワード列を返します。
    # @intent:post-condition 戻り値の長さはlimit以下。各値はword_maskで切り詰められています。
    def parse_image(self, text: str, limit: int, word_mask: int = 0xFFFF) -> List[int]:
        words = []
        pos = 0
        while len(words) < limit:
            match = _RECORD.match(text, pos)
            if not match:
                break
            words.append(int(match.group(1), 16) & word_mask)
            pos = match.end()
        return words

    # @intent:responsibility ファイルからプログラムイメージを読み込み、バスにロードします。
    # @intent:pre-condition ファイルが読み込めない場合はOSErrorを送出し、メモリは変更しません。
    def load_image(self, file_path: str, bus: Bus, word_mask: int = 0xFFFF) -> int:
        """
        ロードしたワード数を返します。メモリが満杯になった時点でロードを終了します。
        """
        # 16進数以外のバイトは解析を打ち切るだけなので、どのバイト列もそのまま文字に写す
        with open(file_path, 'r', encoding='latin-1') as f:
            text = f.read()
        return self.load_text(text, bus, word_mask)

    # @intent:responsibility 文字列からプログラムイメージをバスにロードします。
    def load_text(self, text: str, bus: Bus, word_mask: int = 0xFFFF) -> int:
        words = self.parse_image(text, bus.memory.get_size(), word_mask)
        for address, word in enumerate(words):
            bus.load(address, word)
        return len(words)

# @intent:responsibility ワード列をローダーが読み込める形式で書き出します。
# @intent:rationale 末尾の0セルはロード時の初期値と同じなので出力しません。
def save_image(words: Sequence[int], file_path: str) -> None:
    end = len(words)
    while end > 0 and words[end - 1] == 0:
        end -= 1
    with open(file_path, 'w') as f:
        for word in words[:end]:
            f.write(f"{word:04x},\n")
