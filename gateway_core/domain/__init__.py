"""领域层模型与协议。

包含：
- models: OperationRequest / OperationResult / StrategyFailure 等统一模型。
- conversation: ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""
