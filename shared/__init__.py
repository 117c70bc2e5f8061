"""Shared utilities for the Snarkifier."""

from .html_utils import (
    MAX_PAGE_TEXT_LENGTH,
    MAX_SCANNED_HREFS,
    strip_html,
    extract_anchor_hrefs,
    extract_link_metadata,
)

from .prompt_utils import (
    DEFAULT_SYSTEM_PROMPT,
    ROAST_INSTRUCTION,
    PROMPT_SLOT_ORDER,
    PromptParts,
    build_user_content,
    build_messages,
    load_system_prompt,
)

__all__ = [
    # HTML utilities
    'MAX_PAGE_TEXT_LENGTH',
    'MAX_SCANNED_HREFS',
    'strip_html',
    'extract_anchor_hrefs',
    'extract_link_metadata',
    # Prompt utilities
    'DEFAULT_SYSTEM_PROMPT',
    'ROAST_INSTRUCTION',
    'PROMPT_SLOT_ORDER',
    'PromptParts',
    'build_user_content',
    'build_messages',
    'load_system_prompt',
]
