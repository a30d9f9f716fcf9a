"""
Tests for script segmentation and audio synthesis.
"""

from unittest import mock

import pytest
import requests

from lurkingpods.errors import ProviderError
from lurkingpods.text_to_speech import AudioSynthesizer, ElevenLabsClient, split_segments


def test_split_segments_alternating_speakers():
    content = "Speaker 1: Hi there\nSpeaker 2: Hello!\nspeaker 1 : How are you?"
    assert split_segments(content) == [(1, "Hi there"), (2, "Hello!"), (1, "How are you?")]


def test_split_segments_joins_continuation_lines():
    content = "Intro music\nSpeaker 1: First line\nand more\n\nSpeaker 2: Reply\nSpeaker 1:"
    assert split_segments(content) == [(1, "First line and more"), (2, "Reply")]


def test_split_segments_without_labels():
    assert split_segments("Just a paragraph of text.") == []


class RecordingClient:
    def __init__(self):
        self.calls = []

    def synthesize(self, text, voice_id):
        self.calls.append((text, voice_id))
        return f"{voice_id}:{text}".encode("utf-8")


def test_synthesizer_voices_every_segment_in_order():
    client = RecordingClient()
    synthesizer = AudioSynthesizer(client=client)
    with mock.patch.object(AudioSynthesizer, "concatenate", return_value=b"episode") as concatenate:
        audio = synthesizer.synthesize("Speaker 1: Hi\nSpeaker 2: Hello\nSpeaker 1: Bye", "en", "v1", "v2")

    assert audio == b"episode"
    assert client.calls == [("Hi", "v1"), ("Hello", "v2"), ("Bye", "v1")]
    concatenate.assert_called_once_with([b"v1:Hi", b"v2:Hello", b"v1:Bye"])


def test_synthesizer_rejects_script_without_segments():
    synthesizer = AudioSynthesizer(client=RecordingClient())
    with pytest.raises(ProviderError) as exc_info:
        synthesizer.synthesize("no speakers here", "en", "v1", "v2")
    assert exc_info.value.stage == "audio"


def test_concatenate_joins_clips_with_pauses():
    with mock.patch("lurkingpods.text_to_speech.AudioSegment") as audio_segment:
        combined = mock.MagicMock()
        audio_segment.empty.return_value = combined
        combined.__iadd__.return_value = combined
        combined.export.side_effect = lambda buffer, format: buffer.write(b"mp3-bytes")

        audio = AudioSynthesizer(client=RecordingClient(), pause_ms=250).concatenate([b"a", b"b", b"c"])

    assert audio == b"mp3-bytes"
    audio_segment.silent.assert_called_once_with(duration=250)
    assert audio_segment.from_file.call_count == 3
    # Three clips and two pauses
    assert combined.__iadd__.call_count == 5


def test_concatenate_wraps_decoder_errors():
    with mock.patch("lurkingpods.text_to_speech.AudioSegment") as audio_segment:
        audio_segment.from_file.side_effect = IndexError("bad frame")
        with pytest.raises(ProviderError) as exc_info:
            AudioSynthesizer(client=RecordingClient()).concatenate([b"not mp3"])
    assert exc_info.value.stage == "audio"


def test_elevenlabs_client_posts_text_with_api_key():
    session = mock.Mock()
    session.post.return_value = mock.Mock(status_code=200, content=b"mp3")
    client = ElevenLabsClient(api_key="key", model="eleven_v3", timeout=5, session=session)

    assert client.synthesize("Hello", "voice-1") == b"mp3"
    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url == "https://api.elevenlabs.io/v1/text-to-speech/voice-1"
    assert kwargs["headers"]["xi-api-key"] == "key"
    assert kwargs["json"]["model_id"] == "eleven_v3"
    assert kwargs["timeout"] == 5


def test_elevenlabs_client_errors_are_provider_errors():
    session = mock.Mock()
    session.post.return_value = mock.Mock(status_code=401, text="unauthorized")
    client = ElevenLabsClient(api_key="key", session=session)
    with pytest.raises(ProviderError) as exc_info:
        client.synthesize("Hello", "voice-1")
    assert "401" in exc_info.value.message

    session.post.side_effect = requests.Timeout()
    with pytest.raises(ProviderError):
        client.synthesize("Hello", "voice-1")


def test_elevenlabs_client_requires_api_key(monkeypatch):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    session = mock.Mock()
    with pytest.raises(ProviderError):
        ElevenLabsClient(session=session).synthesize("Hello", "voice-1")
    session.post.assert_not_called()
