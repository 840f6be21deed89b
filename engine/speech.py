"""
Text-to-speech for commentary lines.

Audio is optional: every failure is logged and reported as "no audio", never
raised to the commentary pipeline.
"""

import logging
import os
import uuid

from google.cloud import texttospeech

from engine.errors import ExternalServiceDegraded

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "en-US-Neural2-J"
DEFAULT_LANGUAGE_CODE = "en-US"
WORDS_PER_MINUTE = 150


def estimate_audio_duration(text):
    """Seconds of speech at 150 words per minute, one decimal."""
    words = len((text or "").split())
    return round(words / WORDS_PER_MINUTE * 60, 1)


def language_code_for(voice_name, default=DEFAULT_LANGUAGE_CODE):
    # Voice names look like "en-GB-Neural2-B"; the first two parts are the locale.
    parts = (voice_name or "").split("-")
    if len(parts) >= 3:
        return f"{parts[0]}-{parts[1]}"
    return default


class SpeechResult:
    def __init__(self, audio_url, duration, path):
        self.audio_url = audio_url
        self.duration = duration
        self.path = path

    def to_dict(self):
        return {"audioUrl": self.audio_url, "audioDuration": self.duration}


class SpeechSynthesizer:
    service_name = "texttospeech"

    def __init__(self, audio_dir, url_prefix="/audio", voice=DEFAULT_VOICE,
                 language_code=DEFAULT_LANGUAGE_CODE, enabled=True, client=None):
        self.audio_dir = audio_dir
        self.url_prefix = url_prefix.rstrip("/")
        self.voice = voice
        self.language_code = language_code
        self.enabled = enabled
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()
        return self._client

    def _request_audio(self, text, voice_name):
        try:
            response = self.client.synthesize_speech(
                input=texttospeech.SynthesisInput(text=text),
                voice=texttospeech.VoiceSelectionParams(
                    language_code=language_code_for(voice_name, self.language_code),
                    name=voice_name,
                ),
                audio_config=texttospeech.AudioConfig(
                    audio_encoding=texttospeech.AudioEncoding.MP3
                ),
            )
        except Exception as e:
            raise ExternalServiceDegraded(self.service_name, str(e)) from e

        if not response.audio_content:
            raise ExternalServiceDegraded(self.service_name, "empty audio content")
        return response.audio_content

    def synthesize(self, text, voice=None):
        """Write an MP3 for ``text`` and return a SpeechResult, or None on any failure."""
        if not self.enabled or not text:
            return None

        voice_name = voice or self.voice
        try:
            audio = self._request_audio(text, voice_name)
            os.makedirs(self.audio_dir, exist_ok=True)
            file_name = f"commentary_{uuid.uuid4().hex}.mp3"
            path = os.path.join(self.audio_dir, file_name)
            with open(path, "wb") as out:
                out.write(audio)
        except ExternalServiceDegraded as e:
            logger.warning(f"Speech synthesis skipped: {e}")
            return None
        except OSError as e:
            logger.warning(f"Could not store synthesized audio in {self.audio_dir}: {e}")
            return None

        duration = estimate_audio_duration(text)
        logger.info(f"Audio synthesized: {file_name} ({duration}s)")
        return SpeechResult(f"{self.url_prefix}/{file_name}", duration, path)
