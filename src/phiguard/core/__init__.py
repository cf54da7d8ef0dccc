from .gate import MessageBatchResult, PolicyGate, scan

__all__ = ["PolicyGate", "MessageBatchResult", "scan"]
