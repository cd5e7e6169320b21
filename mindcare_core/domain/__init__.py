"""领域层模型与异常。

包含：
- models: ConversationTurn / ChatRequest / ChatResult 以及校验、危机评估结果模型。
- exceptions: 业务异常类型与上游错误分类映射。
"""
