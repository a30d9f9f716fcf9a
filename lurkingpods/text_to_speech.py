"""
Text-to-speech for podcast scripts.

Each ``Speaker N:`` turn of a script is voiced separately with ElevenLabs and
the clips are joined in script order with pydub.
"""

import io
import os
import re
from typing import Dict, List, Optional, Tuple

import requests
from pydub import AudioSegment

from .errors import ProviderError
from .utils.logger import setup_logger

logger = setup_logger(__name__)

ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
DEFAULT_ELEVENLABS_MODEL = "eleven_v3"
DEFAULT_VOICE_SETTINGS = {"stability": 0.5, "similarity_boost": 0.5}
PAUSE_BETWEEN_TURNS_MS = 300

SPEAKER_LINE_PATTERN = re.compile(r"^\s*Speaker\s*([12])\s*:\s*(.*)$", re.IGNORECASE)


def split_segments(content: str) -> List[Tuple[int, str]]:
    """
    Split a script into ``(speaker, text)`` turns.

    Unlabelled lines continue the previous turn; text before the first label
    is dropped.

    Args:
        content: Script with ``Speaker 1:`` / ``Speaker 2:`` indicators

    Returns:
        Turns in script order
    """
    segments: List[Tuple[int, str]] = []
    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue
        match = SPEAKER_LINE_PATTERN.match(line)
        if match:
            segments.append((int(match.group(1)), match.group(2).strip()))
        elif segments:
            speaker, text = segments[-1]
            segments[-1] = (speaker, f"{text} {line}".strip())
    return [(speaker, text) for speaker, text in segments if text]


class ElevenLabsClient:
    """Minimal ElevenLabs REST client."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key or os.getenv("ELEVENLABS_API_KEY", "")
        self.model = model or os.getenv("ELEVENLABS_MODEL", DEFAULT_ELEVENLABS_MODEL)
        self.timeout = timeout or float(os.getenv("ELEVENLABS_TIMEOUT", "60"))
        self.session = session or requests.Session()

    def synthesize(self, text: str, voice_id: str) -> bytes:
        """
        Voice one text segment.

        Args:
            text: Text to speak
            voice_id: ElevenLabs voice id

        Returns:
            MP3 bytes

        Raises:
            ProviderError: on missing credentials, HTTP failure or timeout
        """
        if not self.api_key:
            raise ProviderError("audio", "ELEVENLABS_API_KEY is not configured")

        headers = {
            "Accept": "audio/mpeg",
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        data = {
            "text": text,
            "model_id": self.model,
            "voice_settings": DEFAULT_VOICE_SETTINGS,
        }
        try:
            response = self.session.post(
                ELEVENLABS_API_URL.format(voice_id=voice_id),
                json=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ProviderError("audio", f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderError("audio", f"Request failed: {str(e)}") from e

        if response.status_code != 200:
            logger.error(f"ElevenLabs API error: {response.status_code} - {response.text}")
            raise ProviderError("audio", f"HTTP {response.status_code}")
        return response.content


class AudioSynthesizer:
    """Turn a two-speaker script into a single MP3."""

    def __init__(self, client: Optional[ElevenLabsClient] = None,
                 pause_ms: int = PAUSE_BETWEEN_TURNS_MS):
        self.client = client or ElevenLabsClient()
        self.pause_ms = pause_ms

    def synthesize(self, content: str, language: str,
                   speaker_1_voice_id: str, speaker_2_voice_id: str) -> bytes:
        """
        Voice every turn and concatenate the clips.

        Args:
            content: Script text with speaker indicators
            language: Script language, for logging
            speaker_1_voice_id: Voice for ``Speaker 1``
            speaker_2_voice_id: Voice for ``Speaker 2``

        Returns:
            MP3 bytes of the whole episode

        Raises:
            ProviderError: if the script has no turns or any segment fails
        """
        segments = split_segments(content)
        if not segments:
            raise ProviderError("audio", "Script contains no speaker segments")

        voices: Dict[int, str] = {1: speaker_1_voice_id, 2: speaker_2_voice_id}
        logger.info(f"Synthesizing {len(segments)} {language} segments")
        clips = [self.client.synthesize(text, voices[speaker]) for speaker, text in segments]
        return self.concatenate(clips)

    def concatenate(self, clips: List[bytes]) -> bytes:
        """Join MP3 clips in order with a short pause between turns."""
        try:
            combined = AudioSegment.empty()
            pause = AudioSegment.silent(duration=self.pause_ms)
            for index, clip in enumerate(clips):
                if index:
                    combined += pause
                combined += AudioSegment.from_file(io.BytesIO(clip), format="mp3")

            buffer = io.BytesIO()
            combined.export(buffer, format="mp3")
        except Exception as e:
            # pydub surfaces decoder failures as several exception types
            logger.error(f"Failed to combine audio segments: {str(e)}")
            raise ProviderError("audio", f"Failed to combine audio segments: {str(e)}") from e
        return buffer.getvalue()
