from cea_agent.llm.interfaces import ModelRunner, ModelSettings, ToolInvocation, TurnResult

__all__ = ["ModelRunner", "ModelSettings", "ToolInvocation", "TurnResult"]
