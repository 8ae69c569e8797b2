"""
Timing Processor 模块（唯一公共入口）

公共 API：
- analyze_turn(): 单 turn 启发式
- ConversationFlow: 整段对话的 timing 折叠
- OpenAIDialogueAnalyzer / AnalysisCache: 对话分析服务与缓存

内部模块：
- flow.py: 启发式规则
- analysis.py: 分析结果记录与 provider
"""
from .analysis import (
    DEFAULT_ANALYSIS,
    AnalysisCache,
    AnalysisProvider,
    AnalysisRequest,
    ConversationAnalysis,
    OpenAIDialogueAnalyzer,
)
from .flow import ConversationFlow, analyze_turn, infer_intent, is_speaker_change

__all__ = [
    "DEFAULT_ANALYSIS",
    "AnalysisCache",
    "AnalysisProvider",
    "AnalysisRequest",
    "ConversationAnalysis",
    "ConversationFlow",
    "OpenAIDialogueAnalyzer",
    "analyze_turn",
    "infer_intent",
    "is_speaker_change",
]
