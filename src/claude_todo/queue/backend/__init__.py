"""Task executor implementations."""

from claude_todo.queue.backend.base import ExecutionOptions, ExecutionResult, TaskExecutor
from claude_todo.queue.backend.claude_cli import ClaudeCliExecutor

__all__ = [
    "ClaudeCliExecutor",
    "ExecutionOptions",
    "ExecutionResult",
    "TaskExecutor",
]
