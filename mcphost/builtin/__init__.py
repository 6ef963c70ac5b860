"""
Builtin tools served locally instead of by a server process.
"""

from .artifact import sanitize_artifact_content
from .bridge import BUILTIN_TOOLS, BuiltinToolBridge
from .browser import BrowserController, PageContent, PageElement
from .code_execution import CodeExecutor, ExecutionRequest, ExecutionResult
from .types import BuiltinToolDefinition, ParameterType, ToolCategory, ToolParameter
from .web_search import SearchConfig, WebSearchError, WebSearchResult, WebSearchService

__all__ = [
    'BuiltinToolBridge',
    'BUILTIN_TOOLS',
    'BuiltinToolDefinition',
    'ToolParameter',
    'ParameterType',
    'ToolCategory',
    'WebSearchService',
    'WebSearchResult',
    'WebSearchError',
    'SearchConfig',
    'CodeExecutor',
    'ExecutionRequest',
    'ExecutionResult',
    'BrowserController',
    'PageContent',
    'PageElement',
    'sanitize_artifact_content',
]
