"""
Prompt building for generation requests.

Builds the chat message payloads sent to the backend and extracts the
generated content from a raw response.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

SYSTEM_PROMPT = """You are an expert at creating clean, professional diagrams and illustrations using HTML and Tailwind CSS.

RULES:
1. Output only HTML/Tailwind code in a single ```html code block.
2. Include the html, head and body tags.
3. Include <script src="https://cdn.tailwindcss.com"></script> in the head.
4. Use Tailwind utility classes; no separate <style> tags or stylesheets.
5. Make the layout fully responsive.
6. Use semantic HTML, alt text for images and ARIA labels where needed.
7. Output the code block only, with no explanation before or after."""

DEFAULT_FEEDBACK = "Please improve the output"

_HTML_BLOCK = re.compile(r"```html\n([\s\S]*?)\n```")
_GENERIC_BLOCK = re.compile(r"```\n([\s\S]*?)\n```")


@dataclass(frozen=True)
class GenerationRequest:
    """One free-text generation request and its optional context."""
    user_request: str
    file_contents: Tuple[str, ...] = ()
    conversation_history: Tuple[Dict[str, str], ...] = ()
    previous_content: Optional[str] = None

    def __post_init__(self):
        """Validate the request text."""
        if not self.user_request or not self.user_request.strip():
            raise ValueError("user_request is required and cannot be empty")


@dataclass(frozen=True)
class ValidationOutcome:
    """Verdict returned by an external validator."""
    is_valid: bool
    feedback: Optional[str] = None


def build_generation_messages(request: GenerationRequest) -> List[Dict[str, str]]:
    """Build the message list for an initial generation.

    Args:
        request: Generation request

    Returns:
        System prompt, any conversation history, then the user message
        with file context and the previous version appended
    """
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    messages.extend(dict(turn) for turn in request.conversation_history)

    user_message = request.user_request
    if request.file_contents:
        context = "\n\n---\n\n".join(request.file_contents)
        user_message = f"{user_message}\n\n**Context from uploaded files:**\n{context}"
    if request.previous_content:
        user_message = (
            f"{user_message}\n\n**This is an iteration. Previous version:**\n"
            f"{request.previous_content}"
        )

    messages.append({"role": "user", "content": user_message})
    return messages


def build_feedback_messages(
    original_request: str,
    current_content: str,
    feedback: Optional[str],
) -> List[Dict[str, str]]:
    """Build the message list for an improvement attempt.

    Args:
        original_request: The user's original request
        current_content: Content produced by the previous attempt
        feedback: Validator feedback on that content

    Returns:
        Message list embedding the prior content and the feedback
    """
    feedback = feedback or DEFAULT_FEEDBACK
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": original_request},
        {"role": "assistant", "content": f"```html\n{current_content}\n```"},
        {
            "role": "user",
            "content": (
                "The output has the following issues that need to be fixed:\n\n"
                f"{feedback}\n\n"
                "Please generate an improved version that addresses all these issues "
                "while maintaining the original intent."
            ),
        },
    ]


def extract_content(response: str) -> str:
    """Extract generated code from a raw response.

    Handles an ```html block, a generic ``` block, or bare content.
    """
    match = _HTML_BLOCK.search(response) or _GENERIC_BLOCK.search(response)
    if match:
        return match.group(1).strip()
    return response.strip()
