"""
Detached commentary work: classify context -> generate text -> optional audio
-> persist -> broadcast.

Scoring requests only ever call ``submit``; they never wait for the result
and nothing raised in here reaches them. Failures end at the task boundary as
a logged error plus a best-effort ``error`` frame to live subscribers.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait

from database import db
from database.models import Commentary
from engine.events import EventType, build_context, determine_priority

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 1000


class CommentaryJob:
    def __init__(self, match_id, event_type, state, team_names, event_data=None,
                 with_audio=False, innings=None, voice=None):
        self.match_id = match_id
        self.event_type = EventType(event_type)
        self.state = state  # detached MatchState snapshot
        self.team_names = team_names or {}
        self.event_data = dict(event_data or {})
        self.with_audio = with_audio
        self.innings = innings
        self.voice = voice

    def __repr__(self):
        return f"<CommentaryJob {self.event_type.value} match={self.match_id}>"


def error_frame(message, error_code, severity):
    return {"type": "error", "message": message, "errorCode": error_code, "severity": severity}


def commentary_frame(record, event_data):
    return {
        "type": "commentary",
        "matchId": record.match_id,
        "commentary": {
            "id": record.id,
            "text": record.text,
            "audioUrl": record.audio_url,
            "audioDuration": record.audio_duration,
            "eventType": record.event_type,
            "isAIGenerated": record.is_ai_generated,
            "hasAudio": bool(record.audio_url),
            "priority": record.priority,
            "createdAt": record.created_at.isoformat() if record.created_at else None,
        },
        "eventData": event_data,
    }


class CommentaryPipeline:
    def __init__(self, app, engine, hub, synthesizer=None, max_workers=4,
                 enabled=True, auto_audio=False, synchronous=False):
        self.app = app
        self.engine = engine
        self.hub = hub
        self.synthesizer = synthesizer
        self.enabled = enabled
        self.auto_audio = auto_audio
        self.synchronous = synchronous
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="commentary")
        self._pending = set()
        self._pending_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    #  Scheduling
    # ------------------------------------------------------------------ #

    def submit(self, job):
        """Schedule ``job`` in the background. Returns the Future, or None if skipped."""
        if not self.enabled:
            return None
        job.with_audio = job.with_audio or self.auto_audio

        if self.synchronous:
            self.run(job)
            return None

        future = self._executor.submit(self.run, job)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future):
        with self._pending_lock:
            self._pending.discard(future)

    def drain(self, timeout=10):
        """Wait for every scheduled job. Returns True if none are left running."""
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_jobs=True):
        self._executor.shutdown(wait=wait_for_jobs)

    # ------------------------------------------------------------------ #
    #  Task boundary
    # ------------------------------------------------------------------ #

    def run(self, job):
        """Background entry point. Never raises."""
        with self.app.app_context():
            try:
                return self.produce(job)
            except Exception as e:
                logger.error(f"[Commentary] Pipeline failed for {job}: {e}", exc_info=True)
                db.session.rollback()
                self._publish_quietly(job.match_id, error_frame(
                    "Failed to generate commentary", "COMMENTARY_GENERATION_FAILED", "error"))
                return None

    def _publish_quietly(self, match_id, payload):
        try:
            self.hub.publish(match_id, payload)
        except Exception as e:
            logger.error(f"[Commentary] Could not publish error frame for match {match_id}: {e}")

    # ------------------------------------------------------------------ #
    #  Work
    # ------------------------------------------------------------------ #

    def produce(self, job):
        """Generate, persist and broadcast one commentary record.

        Needs an app context. Used directly by the on-demand generate route.
        """
        logger.info(f"[Commentary] Generating commentary for {job.event_type.value} (match {job.match_id})")
        context = build_context(job.state, job.event_data, job.team_names, innings=job.innings)
        generated = self.engine.generate(job.event_type, context, job.event_data)

        if generated.degraded is not None:
            self.hub.publish(job.match_id, error_frame(
                "AI commentary unavailable, using fallback commentary", "GEMINI_ERROR", "warning"))

        audio = None
        if job.with_audio and self.synthesizer is not None:
            audio = self.synthesizer.synthesize(generated.text, voice=job.voice)

        record = Commentary(
            match_id=job.match_id,
            event_type=job.event_type.value,
            text=generated.text[:MAX_TEXT_LENGTH],
            audio_url=audio.audio_url if audio else None,
            audio_duration=audio.duration if audio else None,
            is_ai_generated=generated.is_ai_generated,
            priority=determine_priority(job.event_type),
            event_data=job.event_data,
            context=context.to_dict(),
        )
        db.session.add(record)
        db.session.commit()

        source = "AI" if generated.is_ai_generated else "Fallback"
        logger.info(f"[Commentary] Commentary generated ({source}): {record.text!r}")

        self.hub.publish(job.match_id, commentary_frame(record, job.event_data))
        return record

    def attach_audio(self, record, voice=None):
        """Synthesize audio for an existing record. Returns the SpeechResult or None."""
        if self.synthesizer is None:
            return None
        audio = self.synthesizer.synthesize(record.text, voice=voice)
        if audio is None:
            return None
        record.audio_url = audio.audio_url
        record.audio_duration = audio.duration
        db.session.commit()
        return audio
