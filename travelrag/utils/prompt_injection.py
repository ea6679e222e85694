"""Prompt injection screening for free text that is placed into prompts"""
from typing import List, Optional, Tuple


class PromptInjectionDetector:
    """Detect instruction-override attempts in customer-supplied text"""

    # Phrases that only make sense as an attempt to steer the model
    INJECTION_PATTERNS = [
        # Direct instruction override
        'ignore previous instructions',
        'ignore all previous',
        'ignore the above',
        'disregard the above',
        'disregard all previous',
        'new instructions:',

        # Role markers at the start of a line
        '\nsystem:',
        '\nassistant:',

        # Special tokens (ChatML, Llama, etc.)
        '<|im_start|>',
        '<|im_end|>',
        '<|endoftext|>',
        '[INST]',
        '[/INST]',

        # Fenced instruction blocks
        '```system',
        '```instruction',

        # Direct role assertions
        'you are now',
        'pretend to be',
    ]

    @classmethod
    def detect_injection(cls, text: Optional[str]) -> Tuple[bool, List[str]]:
        """
        Detect potential prompt injection in text

        Args:
            text: Text to check

        Returns:
            Tuple of (is_safe, detected_patterns)
        """
        if not text:
            return True, []

        text_lower = "\n" + text.lower()
        detected = [
            pattern.strip() for pattern in cls.INJECTION_PATTERNS
            if pattern.lower() in text_lower
        ]
        return len(detected) == 0, detected

    @classmethod
    def sanitize_text(cls, text: Optional[str], max_length: int = 2000) -> str:
        """
        Trim, drop control characters and collapse runs of spaces.

        Newlines are kept; customer notes are often multi-line.
        """
        if not text:
            return ""

        text = text[:max_length]
        text = ''.join(c for c in text if c.isprintable() or c in "\n\t")
        lines = [' '.join(line.split()) for line in text.split("\n")]
        return "\n".join(lines).strip()


def screen_prompt_text(value: Optional[str], field_name: str, max_length: int = 2000) -> Optional[str]:
    """
    Pydantic validator helper: sanitize text or reject it.

    Raises:
        ValueError: If an injection pattern is detected
    """
    if value is None:
        return value
    is_safe, detected = PromptInjectionDetector.detect_injection(value)
    if not is_safe:
        raise ValueError(f"Invalid {field_name} - suspicious content detected ({', '.join(detected)})")
    return PromptInjectionDetector.sanitize_text(value, max_length)
