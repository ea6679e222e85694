"""Content safety configuration and checks for completion responses"""
from typing import Any, Dict

from langchain_google_genai import HarmBlockThreshold, HarmCategory

from .errors import ProviderError


class ContentSafetyError(ProviderError):
    """Raised when a completion is blocked or flagged by the provider's safety filters"""
    def __init__(self, message: str, safety_ratings: Dict = None):
        super().__init__(message, {"safety_ratings": safety_ratings or {}})
        self.safety_ratings = safety_ratings or {}


def configure_safety_settings():
    """
    Configure Gemini safety settings

    Uses BLOCK_ONLY_HIGH so ordinary travel correspondence (nightlife,
    alcohol tours, war memorials) is not blocked.

    Returns:
        Safety settings dictionary for Gemini
    """
    return {
        HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
        HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_ONLY_HIGH,
        HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
        HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    }


def check_content_safety(response: Any) -> bool:
    """
    Check if a LangChain chat response passed the provider's safety filters

    Args:
        response: AIMessage returned by ChatGoogleGenerativeAI

    Returns:
        bool: True if safe

    Raises:
        ContentSafetyError: If the response was blocked or rated HIGH
    """
    metadata = getattr(response, "response_metadata", None) or {}

    if metadata.get("finish_reason") == "SAFETY":
        raise ContentSafetyError("Completion blocked by safety filters")

    for rating in metadata.get("safety_ratings") or []:
        if rating.get("blocked") or rating.get("probability") == "HIGH":
            raise ContentSafetyError(
                f"Content flagged for {rating.get('category', 'UNKNOWN')} "
                f"with probability {rating.get('probability', 'UNKNOWN')}",
                safety_ratings=metadata.get("safety_ratings")
            )

    return True
