"""Tests for the text-to-speech adapter (engine/speech.py)."""

import os
from types import SimpleNamespace

import pytest

from engine.speech import SpeechSynthesizer, estimate_audio_duration, language_code_for


class _FakeTTSClient:
    def __init__(self, audio=b"ID3fake-mp3", error=None):
        self.audio = audio
        self.error = error
        self.requests = []

    def synthesize_speech(self, input, voice, audio_config):
        self.requests.append((input, voice, audio_config))
        if self.error:
            raise self.error
        return SimpleNamespace(audio_content=self.audio)


class TestDurationEstimate:
    def test_words_at_150_per_minute(self):
        assert estimate_audio_duration("one two three") == 1.2
        assert estimate_audio_duration(" ".join(["word"] * 150)) == 60.0

    def test_one_decimal(self):
        assert estimate_audio_duration("a b c d e f g") == 2.8

    def test_empty_text(self):
        assert estimate_audio_duration("") == 0.0
        assert estimate_audio_duration(None) == 0.0


class TestLanguageCode:
    @pytest.mark.parametrize("voice,expected", [
        ("en-GB-Neural2-B", "en-GB"),
        ("pt-BR-Neural2-B", "pt-BR"),
        ("weird", "en-US"),
        (None, "en-US"),
    ])
    def test_from_voice_name(self, voice, expected):
        assert language_code_for(voice) == expected


class TestSynthesize:
    def test_writes_mp3_and_returns_url(self, tmp_path):
        client = _FakeTTSClient()
        synth = SpeechSynthesizer(str(tmp_path / "audio"), url_prefix="/audio/", client=client)
        result = synth.synthesize("Huge six over long on")

        assert result is not None
        assert result.audio_url.startswith("/audio/commentary_")
        assert result.audio_url.endswith(".mp3")
        assert result.duration == 2.0
        with open(result.path, "rb") as f:
            assert f.read() == b"ID3fake-mp3"

        _, voice, _ = client.requests[0]
        assert voice.name == "en-US-Neural2-J"
        assert voice.language_code == "en-US"

    def test_voice_override(self, tmp_path):
        client = _FakeTTSClient()
        synth = SpeechSynthesizer(str(tmp_path), client=client)
        synth.synthesize("Lovely cover drive", voice="en-AU-Neural2-B")
        _, voice, _ = client.requests[0]
        assert voice.name == "en-AU-Neural2-B"
        assert voice.language_code == "en-AU"

    def test_service_failure_means_no_audio(self, tmp_path):
        synth = SpeechSynthesizer(str(tmp_path), client=_FakeTTSClient(error=RuntimeError("quota")))
        assert synth.synthesize("Bowled him!") is None
        assert os.listdir(tmp_path) == []

    def test_empty_audio_means_no_audio(self, tmp_path):
        synth = SpeechSynthesizer(str(tmp_path), client=_FakeTTSClient(audio=b""))
        assert synth.synthesize("Bowled him!") is None

    def test_disabled_never_calls_the_service(self, tmp_path):
        client = _FakeTTSClient()
        synth = SpeechSynthesizer(str(tmp_path), enabled=False, client=client)
        assert synth.synthesize("Bowled him!") is None
        assert client.requests == []

    def test_unwritable_audio_dir_means_no_audio(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        synth = SpeechSynthesizer(str(blocker / "audio"), client=_FakeTTSClient())
        assert synth.synthesize("Bowled him!") is None
