"""MindCare Core 顶层包。

该包提供学生心理支持对话的 AI 回复编排引擎，
包括配置加载、领域模型、Provider 适配、模型选择与重试、
危机识别、回复校验以及语音前的文本规范化等能力。
"""

from mindcare_core.agents.orchestrator import ConversationOrchestrator, OrchestratorReply

__all__ = ["ConversationOrchestrator", "OrchestratorReply"]
