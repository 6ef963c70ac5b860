"""
Artifact Tool
=============

create_artifact builtin: cleans model-written UI code and hands it back
as an artifact content block for the presentation layer to render.
"""

import json
import logging
import re
from typing import Any, Dict

from ..connection.types import ContentItem, ToolResult
from .types import BuiltinToolDefinition, ParameterType, ToolCategory, ToolParameter

logger = logging.getLogger(__name__)

ARTIFACT_TYPES = ["react", "html", "svg", "mermaid"]

FENCE_RE = re.compile(r"```(?:jsx?|tsx?|javascript|typescript|react|html|svg|mermaid)?\s*([\s\S]*?)```")

IMPORT_RES = [
    re.compile(r"import\s+.*?from\s+['\"][^'\"]+['\"];?\s*"),
    re.compile(r"import\s+['\"][^'\"]+['\"];?\s*"),
]

EXPORT_RES = [
    re.compile(r"export\s+default\s+"),
    re.compile(r"export\s+\{[^}]*\};?\s*"),
]

INSTRUCTION_RES = [
    re.compile(r"^#+ .*$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^\d+\.\s+(?:Create|Install|Run|Open|Add|Copy|First|Then|Next).*$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^(?:npm|npx|yarn|pnpm)\s+.*$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^(?:cd|mkdir|touch)\s+.*$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^// ?(?:In|Create|Add|File:).*$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^/\*\*?[\s\S]*?File:.*?\*/", re.MULTILINE | re.IGNORECASE),
]


def sanitize_artifact_content(content: str, artifact_type: str) -> str:
    """
    Strip what models wrap around component code.

    Removes markdown fences, import/export statements and setup
    instructions (headers, numbered steps, package manager and shell
    commands), then collapses blank lines.
    """
    result = content

    match = FENCE_RE.search(result)
    if match:
        result = match.group(1)

    for pattern in IMPORT_RES + EXPORT_RES + INSTRUCTION_RES:
        result = pattern.sub("", result)

    result = re.sub(r"\n{3,}", "\n\n", result).strip()

    if artifact_type == "react" and "function " not in result and "const " not in result:
        logger.warning("React artifact may not contain a valid component")

    return result


async def run_create_artifact(arguments: Dict[str, Any]) -> ToolResult:
    """
    create_artifact handler.

    Args:
        arguments: {"type": str, "title": str, "content": str}
    """
    artifact_type = arguments.get("type")
    title = arguments.get("title")
    raw_content = arguments.get("content")
    if not all(isinstance(v, str) for v in (artifact_type, title, raw_content)):
        return ToolResult.failure(
            "Error: 'type', 'title', and 'content' parameters are required for create_artifact"
        )
    if artifact_type not in ARTIFACT_TYPES:
        return ToolResult.failure(
            f"Error: Invalid artifact type '{artifact_type}'. Must be one of: {', '.join(ARTIFACT_TYPES)}"
        )

    content = sanitize_artifact_content(raw_content, artifact_type)
    if not content:
        return ToolResult.failure(
            "Error: Artifact content is empty after sanitization. "
            "Please provide valid component code, not setup instructions."
        )

    logger.info(
        f"Creating artifact: type={artifact_type}, title={title}, "
        f"content length: {len(content)} (sanitized from {len(raw_content)})"
    )
    payload = json.dumps({
        "artifact_type": artifact_type,
        "artifact_title": title,
        "artifact_content": content,
    })
    return ToolResult(content=[ContentItem(type="artifact", text=payload)])


CREATE_ARTIFACT_TOOL = BuiltinToolDefinition(
    name="create_artifact",
    display_name="Create Artifact",
    description=(
        "Create and display interactive visual content: React components, HTML pages, "
        "SVG graphics and Mermaid diagrams."
    ),
    category=ToolCategory.ARTIFACTS,
    parameters=[
        ToolParameter(
            name="type",
            type=ParameterType.STRING,
            description="Content type",
            enum=ARTIFACT_TYPES,
        ),
        ToolParameter(
            name="title",
            type=ParameterType.STRING,
            description="Brief, descriptive title shown in the artifact panel header",
        ),
        ToolParameter(
            name="content",
            type=ParameterType.STRING,
            description="Complete, self-contained code",
        ),
    ],
)
