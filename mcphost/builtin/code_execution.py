"""
Code Execution Tools
====================

execute_code and execute_shell builtins. Both delegate to an injected
CodeExecutor (a sandboxing service living outside this package) and
render its result as markdown.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..connection.types import ToolResult
from .types import BuiltinToolDefinition, ParameterType, ToolCategory, ToolParameter

logger = logging.getLogger(__name__)

LANGUAGES = ["python", "javascript", "swift", "html", "css", "react"]
SHELLS = ["bash", "zsh", "pwsh"]
CAPABILITIES = [
    "filesystem.read",
    "filesystem.write",
    "network",
    "clipboard.read",
    "clipboard.write",
    "process.spawn",
]


@dataclass
class ExecutionRequest:
    """
    Code to run in the sandbox.

    Attributes:
        language: Language or shell name
        code: Source code or shell script
        timeout: Seconds before the sandbox kills the run
        capabilities: Execution capabilities requested (network, ...)
        working_directory: Directory for shell commands
    """
    language: str
    code: str
    timeout: float = 30.0
    capabilities: List[str] = field(default_factory=list)
    working_directory: Optional[str] = None


@dataclass
class ExecutionResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    memory_bytes: Optional[int] = None
    secrets_redacted: bool = False


class CodeExecutor(ABC):
    """Sandboxed code execution service."""

    @abstractmethod
    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Run code.

        Raises:
            Exception: If the run could not be performed at all
                (permission denied, sandbox unavailable, ...)
        """
        pass


def format_execution(result: ExecutionResult) -> str:
    output = "## Code Execution Result\n\n"
    output += f"**Exit Code:** {result.exit_code}\n"
    output += f"**Duration:** {result.duration:.2f}s\n"
    if result.memory_bytes is not None:
        output += f"**Memory:** {result.memory_bytes / (1024 * 1024):.1f} MB\n"
    output += "\n"
    if result.stdout:
        output += f"### Output\n```\n{result.stdout}\n```\n\n"
    if result.stderr:
        output += f"### Errors\n```\n{result.stderr}\n```\n\n"
    if result.secrets_redacted:
        output += "**Note:** Secrets detected and redacted in output\n"
    return output


def _timeout(arguments: Dict[str, Any], upper: float) -> float:
    value = arguments.get("timeout", 30)
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return 30.0
    return float(max(1, min(value, upper)))


async def _run(executor: Optional[CodeExecutor], request: ExecutionRequest) -> ToolResult:
    if executor is None:
        return ToolResult.failure("Error: Code execution service is not available")
    try:
        result = await executor.execute(request)
    except Exception as e:
        logger.error(f"Code execution failed: {e}")
        return ToolResult.failure(f"Error executing code: {e}", e)
    return ToolResult(
        content=ToolResult.success(format_execution(result)).content,
        is_error=result.exit_code != 0,
    )


async def run_execute_code(arguments: Dict[str, Any], executor: Optional[CodeExecutor]) -> ToolResult:
    """
    execute_code handler.

    Args:
        arguments: {"language": str, "code": str, "timeout": number,
            "capabilities": [str]}
        executor: Sandbox to run in
    """
    language = arguments.get("language")
    code = arguments.get("code")
    if language not in LANGUAGES or not isinstance(code, str):
        return ToolResult.failure(
            "Error: 'language' and 'code' parameters are required for code execution"
        )

    capabilities = [c for c in arguments.get("capabilities") or [] if c in CAPABILITIES]
    logger.info(f"Executing {language} code ({len(code)} chars)")
    return await _run(executor, ExecutionRequest(
        language=language,
        code=code,
        timeout=_timeout(arguments, 120),
        capabilities=capabilities,
    ))


async def run_execute_shell(arguments: Dict[str, Any], executor: Optional[CodeExecutor]) -> ToolResult:
    """execute_shell handler; runs the script with the requested shell."""
    shell = arguments.get("shell_type")
    code = arguments.get("code")
    if shell not in SHELLS or not isinstance(code, str):
        return ToolResult.failure(
            "Error: 'shell_type' and 'code' parameters are required for shell execution"
        )

    working_directory = arguments.get("working_directory")
    logger.info(f"Executing {shell} script ({len(code)} chars)")
    return await _run(executor, ExecutionRequest(
        language=shell,
        code=code,
        timeout=_timeout(arguments, 60),
        capabilities=["filesystem.read"] if working_directory else [],
        working_directory=working_directory if isinstance(working_directory, str) else None,
    ))


EXECUTE_CODE_TOOL = BuiltinToolDefinition(
    name="execute_code",
    display_name="Code Execution",
    description=(
        "Execute code in a secure, sandboxed environment. Use for calculations, data "
        "processing, algorithm implementation and testing code snippets."
    ),
    category=ToolCategory.CODE,
    parameters=[
        ToolParameter(
            name="language",
            type=ParameterType.STRING,
            description="Programming language",
            enum=LANGUAGES,
        ),
        ToolParameter(
            name="code",
            type=ParameterType.STRING,
            description="Complete, executable code including imports and print statements",
        ),
        ToolParameter(
            name="timeout",
            type=ParameterType.NUMBER,
            description="Timeout in seconds (1-120). Default: 30",
            required=False,
            default=30,
            minimum=1,
            maximum=120,
        ),
        ToolParameter(
            name="capabilities",
            type=ParameterType.ARRAY,
            description="Required capabilities (prompts user for permission)",
            required=False,
            items={"type": "string", "enum": CAPABILITIES},
        ),
    ],
)

EXECUTE_SHELL_TOOL = BuiltinToolDefinition(
    name="execute_shell",
    display_name="Shell Execution",
    description=(
        "Execute shell commands in a sandboxed environment. Only use when specifically "
        "requested. Supports Bash, Zsh and PowerShell."
    ),
    category=ToolCategory.CODE,
    enabled_by_default=False,
    parameters=[
        ToolParameter(
            name="shell_type",
            type=ParameterType.STRING,
            description="Shell to use",
            enum=SHELLS,
        ),
        ToolParameter(
            name="code",
            type=ParameterType.STRING,
            description="Shell commands to execute",
        ),
        ToolParameter(
            name="working_directory",
            type=ParameterType.STRING,
            description="Working directory for command execution",
            required=False,
        ),
        ToolParameter(
            name="timeout",
            type=ParameterType.NUMBER,
            description="Timeout in seconds (1-60). Default: 30",
            required=False,
            default=30,
            minimum=1,
            maximum=60,
        ),
    ],
)
