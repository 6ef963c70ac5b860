"""
Browser Tool
============

browser_action builtin. Page automation is performed by an injected
BrowserController; this module validates arguments and renders results.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..connection.types import ToolResult
from .types import BuiltinToolDefinition, ParameterType, ToolCategory, ToolParameter

logger = logging.getLogger(__name__)

ACTIONS = ["navigate", "click", "type", "extract", "screenshot", "find", "scroll"]
SCROLL_POSITIONS = ["top", "bottom", "element"]

MAX_TEXT_CHARS = 5000
MAX_LISTED = 20


@dataclass
class PageElement:
    selector: str
    tag_name: str
    text: Optional[str] = None
    clickable: bool = False
    visible: bool = True


@dataclass
class PageContent:
    url: str
    title: str
    text: str
    description: Optional[str] = None
    links: List[Dict[str, str]] = field(default_factory=list)  # {"text", "href"}


class BrowserController(ABC):
    """Integrated browser driven by browser_action."""

    @abstractmethod
    async def navigate(self, url: str) -> str:
        """Load a page. Returns the final URL. Raises on navigation errors."""
        pass

    @abstractmethod
    async def extract(self) -> Optional[PageContent]:
        pass

    @abstractmethod
    async def screenshot(self) -> Optional[bytes]:
        pass

    @abstractmethod
    async def find(self, selector: str) -> List[PageElement]:
        pass

    @abstractmethod
    async def click(self, element: PageElement) -> bool:
        pass

    @abstractmethod
    async def type_text(self, element: PageElement, text: str) -> bool:
        pass

    @abstractmethod
    async def scroll(self, position: str, selector: Optional[str] = None) -> None:
        pass


def _format_extract(content: PageContent) -> str:
    text = "## Page Content Extraction\n\n"
    text += f"**Title:** {content.title}\n"
    text += f"**URL:** {content.url}\n"
    if content.description:
        text += f"**Description:** {content.description}\n"

    text += "\n### Main Text Content\n"
    text += content.text[:MAX_TEXT_CHARS]
    if len(content.text) > MAX_TEXT_CHARS:
        text += f"\n...[truncated, {len(content.text) - MAX_TEXT_CHARS} more characters]"

    text += f"\n\n### Links ({len(content.links)} total)\n"
    for link in content.links[:MAX_LISTED]:
        text += f"- [{link.get('text', '')[:50]}]({link.get('href', '')})\n"
    if len(content.links) > MAX_LISTED:
        text += f"\n...and {len(content.links) - MAX_LISTED} more links"
    return text


def _format_find(elements: List[PageElement]) -> str:
    text = f"## Found {len(elements)} Elements\n\n"
    for index, element in enumerate(elements[:MAX_LISTED], start=1):
        text += f"### {index}. {element.tag_name}\n"
        text += f"- **Selector:** `{element.selector}`\n"
        if element.text:
            text += f"- **Text:** {element.text[:100]}\n"
        text += f"- **Clickable:** {'Yes' if element.clickable else 'No'}\n"
        text += f"- **Visible:** {'Yes' if element.visible else 'No'}\n\n"
    if len(elements) > MAX_LISTED:
        text += f"...and {len(elements) - MAX_LISTED} more elements"
    return text


async def _first_match(browser: BrowserController, selector: str) -> Optional[PageElement]:
    elements = await browser.find(selector)
    return elements[0] if elements else None


async def run_browser_action(arguments: Dict[str, Any], browser: Optional[BrowserController]) -> ToolResult:
    """
    browser_action handler.

    Args:
        arguments: {"action": str, "url": str, "selector": str, "text": str,
            "scroll_position": str}
        browser: Browser to drive
    """
    action = arguments.get("action")
    if not isinstance(action, str):
        return ToolResult.failure("Error: 'action' parameter is required for browser_action")
    action = action.lower()
    if action not in ACTIONS:
        return ToolResult.failure(
            f"Error: Unknown action '{action}'. Valid actions: {', '.join(ACTIONS)}"
        )
    if browser is None:
        return ToolResult.failure("Error: Browser is not available")

    selector = arguments.get("selector")
    try:
        if action == "navigate":
            url = arguments.get("url")
            if not isinstance(url, str) or not url:
                return ToolResult.failure("Error: 'url' parameter is required for navigate action")
            final_url = await browser.navigate(url)
            return ToolResult.success(
                f"Navigated to: {final_url or url}\n\nUse 'extract' action to get page content for analysis."
            )

        if action == "extract":
            content = await browser.extract()
            if content is None:
                return ToolResult.failure("Error: Could not extract page content. Make sure a page is loaded.")
            return ToolResult.success(_format_extract(content))

        if action == "screenshot":
            if await browser.screenshot() is None:
                return ToolResult.failure("Error: Could not take screenshot. Make sure a page is loaded.")
            return ToolResult.success("Screenshot captured successfully.")

        if action == "scroll":
            position = arguments.get("scroll_position") or "bottom"
            if position not in SCROLL_POSITIONS:
                position = "bottom"
            if position == "element" and not isinstance(selector, str):
                return ToolResult.failure(
                    "Error: 'selector' parameter required when scroll_position is 'element'"
                )
            await browser.scroll(position, selector if position == "element" else None)
            return ToolResult.success(f"Scrolled to: {position}")

        # click, type and find all need a selector
        if not isinstance(selector, str) or not selector:
            return ToolResult.failure(f"Error: 'selector' parameter is required for {action} action")

        if action == "find":
            elements = await browser.find(selector)
            if not elements:
                return ToolResult.success(f"No elements found matching: {selector}")
            return ToolResult.success(_format_find(elements))

        element = await _first_match(browser, selector)
        if element is None:
            return ToolResult.failure(f"Error: No element found matching: {selector}")

        if action == "click":
            ok = await browser.click(element)
            message = f"Clicked element: {element.selector}" if ok else "Click action was denied or failed"
        else:
            text = arguments.get("text")
            if not isinstance(text, str):
                return ToolResult.failure("Error: 'selector' and 'text' parameters are required for type action")
            ok = await browser.type_text(element, text)
            message = f"Typed text into element: {element.selector}" if ok else "Type action was denied or failed"
        return ToolResult(content=ToolResult.success(message).content, is_error=not ok)

    except Exception as e:
        logger.error(f"Browser action '{action}' failed: {e}")
        return ToolResult.failure(f"Browser error: {e}", e)


BROWSER_ACTION_TOOL = BuiltinToolDefinition(
    name="browser_action",
    display_name="Browser Control",
    description=(
        "Control the integrated browser: navigate to URLs, click elements, type text, "
        "extract page content, and take screenshots."
    ),
    category=ToolCategory.WEB,
    parameters=[
        ToolParameter(
            name="action",
            type=ParameterType.STRING,
            description="Action to perform",
            enum=ACTIONS,
        ),
        ToolParameter(
            name="url",
            type=ParameterType.STRING,
            description="URL to navigate to (required for 'navigate')",
            required=False,
        ),
        ToolParameter(
            name="selector",
            type=ParameterType.STRING,
            description="CSS selector or text description of the element (click/type/find)",
            required=False,
        ),
        ToolParameter(
            name="text",
            type=ParameterType.STRING,
            description="Text to type into the element (required for 'type')",
            required=False,
        ),
        ToolParameter(
            name="scroll_position",
            type=ParameterType.STRING,
            description="Where to scroll (for 'scroll')",
            required=False,
            enum=SCROLL_POSITIONS,
        ),
    ],
)
