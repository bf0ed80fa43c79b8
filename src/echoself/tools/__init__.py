"""Built-in tools and plugins."""

from echoself.tools.analysis import data_analysis, text_processing
from echoself.tools.text import echo, keyword_extract, summarize, word_count

__all__ = [
    "data_analysis",
    "echo",
    "keyword_extract",
    "summarize",
    "text_processing",
    "word_count",
]
