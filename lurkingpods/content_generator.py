"""
Podcast script generation with Google Gemini.

Calls the Gemini ``generateContent`` REST endpoint and parses the JSON
script the model returns.
"""

import json
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .errors import ProviderError
from .utils.logger import setup_logger

logger = setup_logger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

LANGUAGE_NAMES = {"en": "English", "tr": "Turkish"}

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

PROMPT_TEMPLATE = """
Generate a 60-second dialogue podcast script about {category_name} in {language_name}.

Requirements:
- Two distinct speakers with different personalities
- Engaging conversation about current {category_name} topics
- Natural dialogue flow
- Approximately 60 seconds of speaking time
- Include speaker indicators (Speaker 1:, Speaker 2:)
- Make it informative and entertaining

Format the response as JSON with these fields:
{{
  "title": "Podcast title",
  "description": "Brief description",
  "content": "Full script with speaker indicators",
  "duration": 60,
  "quality_score": 0.8
}}

Generate the script now:
""".strip()


@dataclass
class Script:
    """A generated two-speaker podcast script."""
    title: str
    description: str
    content: str
    duration: int
    speaker_1_voice_id: str
    speaker_2_voice_id: str
    quality_score: float


def voices_from_env() -> Dict[str, Dict[int, str]]:
    """Per-language ElevenLabs voice ids for speakers 1 and 2."""
    return {
        language: {
            speaker: os.getenv(f"ELEVENLABS_VOICE_{language.upper()}_{speaker}", f"voice_{speaker}_{language}")
            for speaker in (1, 2)
        }
        for language in LANGUAGE_NAMES
    }


def build_prompt(category_name: str, language: str) -> str:
    return PROMPT_TEMPLATE.format(
        category_name=category_name,
        language_name=LANGUAGE_NAMES.get(language, "English"),
    )


def parse_script(text: str, voices: Dict[int, str]) -> Script:
    """
    Extract the script JSON from model output.

    Args:
        text: Raw model text, possibly wrapped in prose or code fences
        voices: Voice ids for speakers 1 and 2

    Returns:
        Parsed script with defaults applied

    Raises:
        ProviderError: if no valid JSON is found or title/content is missing
    """
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        raise ProviderError("script", "No JSON found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ProviderError("script", f"Malformed script JSON: {e}") from e

    if not isinstance(data, dict) or not data.get("title") or not data.get("content"):
        raise ProviderError("script", "Invalid script format")

    duration = data.get("duration")
    quality_score = data.get("quality_score")
    try:
        duration = int(60 if duration is None else duration)
        quality_score = float(0.8 if quality_score is None else quality_score)
    except (TypeError, ValueError) as e:
        raise ProviderError("script", f"Invalid script format: {e}") from e

    return Script(
        title=str(data["title"]),
        description=str(data.get("description") or ""),
        content=str(data["content"]),
        duration=duration,
        speaker_1_voice_id=voices[1],
        speaker_2_voice_id=voices[2],
        quality_score=quality_score,
    )


class GeminiScriptGenerator:
    """Generate podcast scripts with the Gemini API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None,
                 voices: Optional[Dict[str, Dict[int, str]]] = None,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY", "")
        self.model = model or os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
        self.timeout = timeout or float(os.getenv("GEMINI_TIMEOUT", "60"))
        self.voices = voices or voices_from_env()
        self.session = session or requests.Session()

    def generate(self, category_name: str, language: str) -> Script:
        """
        Generate a script about a category in the given language.

        Args:
            category_name: Topic the speakers discuss
            language: ``en`` or ``tr``

        Returns:
            Parsed script

        Raises:
            ProviderError: on missing credentials, HTTP failure, timeout or bad output
        """
        if not self.api_key:
            raise ProviderError("script", "GEMINI_API_KEY is not configured")

        payload = {"contents": [{"parts": [{"text": build_prompt(category_name, language)}]}]}
        logger.info(f"Requesting {language} script about {category_name} from {self.model}")
        try:
            response = self.session.post(
                GEMINI_API_URL.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ProviderError("script", f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderError("script", f"Request failed: {str(e)}") from e

        if response.status_code >= 400:
            logger.error(f"Gemini API error: {response.status_code} - {response.text}")
            raise ProviderError("script", f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError("script", "Response is not JSON") from e
        return parse_script(self._response_text(body), self.voices[language])

    @staticmethod
    def _response_text(body: Dict[str, Any]) -> str:
        try:
            parts = body["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("script", "Empty response from model") from e
        return "".join(part.get("text", "") for part in parts)
