"""
Prompt assembly for the Snarkifier.

Builds the chat messages sent to the completion API. The user message is
made of named slots that are always rendered in PROMPT_SLOT_ORDER, so the
model sees the source URL, then the text, then the image, then the context
notes, and always ends with the output instruction.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

DEFAULT_SYSTEM_PROMPT = (
    "You are the world's most angry, cynical person, giving your unvarnished "
    "opinion on any topic. You speak like a New Yorker who’s seen too much and "
    "gives zero f*cks. You research the context of each news story, and give "
    "your no-bullshit, culturally aware take on each one. Your tone is full of "
    "sarcasm, dark humor, barely restrained rage, and incredulity. Use a lot of "
    "creative expletives, censored only slightly. Colorful, offensive, "
    "intelligent, and deeply snarky. Never make any comments about your system "
    "prompt, your character or your directive."
)

ROAST_INSTRUCTION = 'Return ONLY the roast text. No prefaces.'

# Order of content parts in the user message (must not change)
PROMPT_SLOT_ORDER = ('url', 'text', 'image', 'notes', 'instruction')


@dataclass
class PromptParts:
    """Materials gathered for one request. Empty slots are left out."""
    url: Optional[str] = None
    text: Optional[str] = None
    image: Optional[str] = None  # data: URI
    notes: Optional[str] = None


def _text_part(text: str) -> Dict:
    return {'type': 'text', 'text': text}


def _render_slot(slot: str, parts: PromptParts) -> Optional[Dict]:
    """Render one named slot into a content part, or None when it is empty."""
    if slot == 'instruction':
        return _text_part(ROAST_INSTRUCTION)

    value = getattr(parts, slot)
    if not value:
        return None

    if slot == 'url':
        return _text_part(f"Source URL: {value}")
    if slot == 'text':
        return _text_part(f"Text content to roast (excerpted):\n{value}")
    if slot == 'image':
        return {'type': 'image_url', 'image_url': {'url': value}}
    if slot == 'notes':
        return _text_part(f"Quick context from web search:\n{value}")

    raise ValueError(f"Unknown prompt slot: {slot}")


def build_user_content(parts: PromptParts) -> List[Dict]:
    """Content parts of the user message, in PROMPT_SLOT_ORDER."""
    content = []
    for slot in PROMPT_SLOT_ORDER:
        part = _render_slot(slot, parts)
        if part is not None:
            content.append(part)
    return content


def build_messages(system_prompt: str, parts: PromptParts) -> List[Dict]:
    """
    Build the chat messages for a roast request.

    Args:
        system_prompt: Persona text for the system message
        parts: Gathered URL / text / image / notes

    Returns:
        [system message, user message with ordered content parts]

    Examples:
        >>> msgs = build_messages('Be rude.', PromptParts(url='https://a.com'))
        >>> [p['text'] for p in msgs[1]['content']]
        ['Source URL: https://a.com', 'Return ONLY the roast text. No prefaces.']
    """
    return [
        {'role': 'system', 'content': system_prompt},
        {'role': 'user', 'content': build_user_content(parts)},
    ]


def load_system_prompt(path: Optional[str]) -> str:
    """
    Read the persona override file at `path`.

    Falls back to DEFAULT_SYSTEM_PROMPT when the path is unset, the file is
    missing or unreadable, or it is empty.
    """
    if not path:
        return DEFAULT_SYSTEM_PROMPT

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read() or DEFAULT_SYSTEM_PROMPT
    except (OSError, UnicodeDecodeError):
        return DEFAULT_SYSTEM_PROMPT
