"""词级对齐：从字符流恢复词（向前扫描，永不回退）"""
from typing import List

from dialogcast.schema.types import CharacterTimestamps, WordTiming
from dialogcast.utils.text import split_words


def word_spans(timestamps: CharacterTimestamps) -> List[WordTiming]:
    """
    按空白切词，并在字符流中定位每个词。

    每个词从上一个词的结束位置向后查找，因此重复出现的子串也能得到单调、不重叠的区间。
    词的开始时间取首字符 start，结束时间取末字符 end。
    """
    text = timestamps.text
    spans: List[WordTiming] = []
    cursor = 0
    for word in split_words(text):
        idx = text.find(word, cursor)
        if idx < 0:
            raise ValueError(f"word {word!r} not found after offset {cursor}")
        end = idx + len(word)
        spans.append(
            WordTiming(
                word=word,
                start=timestamps.start_times[idx],
                end=timestamps.end_times[end - 1],
                start_index=idx,
                end_index=end,
            )
        )
        cursor = end
    return spans
