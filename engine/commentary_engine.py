import json
import random
import logging
import os

from engine.errors import ExternalServiceDegraded
from engine.events import HIGH_IMPACT_EVENTS, EventType
from engine.prompts import build_commentary_prompt

logger = logging.getLogger(__name__)

# No chase suffix once the innings or match is already decided.
_NO_CHASE_SUFFIX = frozenset({EventType.INNINGS_END, EventType.MATCH_END, EventType.MATCH_START})


class _Placeholders(dict):
    """Leaves unknown {names} in place instead of raising KeyError."""

    def __missing__(self, key):
        return "{" + key + "}"


class GeneratedCommentary:
    def __init__(self, text, is_ai_generated, degraded=None):
        self.text = text
        self.is_ai_generated = is_ai_generated
        self.degraded = degraded  # ExternalServiceDegraded when the LLM path failed

    def __repr__(self):
        source = "ai" if self.is_ai_generated else "template"
        return f"<GeneratedCommentary {source} {self.text!r}>"


class CommentaryEngine:
    """LLM commentary with a templated fallback that never fails."""

    def __init__(self, llm_client=None, data_path=None, rng=None):
        if data_path is None:
            # Default to data/commentary_pack.json relative to project root
            base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
            data_path = os.path.join(base_dir, "data", "commentary_pack.json")

        self.llm_client = llm_client
        self.data_path = data_path
        self.rng = rng or random.Random()
        self.data = self._load_data()
        self.events = self.data.get("events", {})

    def _load_data(self):
        try:
            with open(self.data_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load commentary pack from {self.data_path}: {e}")
            return {"events": {}}

    # ------------------------------------------------------------------ #
    #  Primary path
    # ------------------------------------------------------------------ #

    def generate(self, event_type, context, event_data=None):
        """Return a GeneratedCommentary for one event.

        Tries the LLM first when a client is configured. Any error on that path
        drops through to the templates and is kept on the result so the caller
        can tell live subscribers about it.
        """
        event_data = event_data or {}
        degraded = None

        if self.llm_client is not None:
            try:
                prompt = build_commentary_prompt(event_type, context, event_data)
                text = self.llm_client.generate(prompt)
                return GeneratedCommentary(text.strip(), is_ai_generated=True)
            except ExternalServiceDegraded as e:
                logger.warning(f"Commentary LLM unavailable for {event_type}: {e}")
                degraded = e
            except Exception as e:
                logger.warning(f"Commentary LLM path failed for {event_type}: {e}", exc_info=True)
                degraded = ExternalServiceDegraded(getattr(self.llm_client, "service_name", "llm"), str(e))

        text = self.fallback(event_type, context, event_data)
        return GeneratedCommentary(text, is_ai_generated=False, degraded=degraded)

    # ------------------------------------------------------------------ #
    #  Templated fallback
    # ------------------------------------------------------------------ #

    def _templates_for(self, key):
        templates = self.events.get(key) or self.events.get("DEFAULT") or []
        return [t.get("text", "") for t in templates if t.get("text")]

    def fallback(self, event_type, context, event_data=None):
        """Pick a template for the event, fill it in and add score/chase suffixes."""
        event_data = event_data or {}
        key = getattr(event_type, "value", event_type)
        ctx = context.to_dict() if context is not None else {}

        templates = self._templates_for(key)
        template = self.rng.choice(templates) if templates else "Play continues."

        values = _Placeholders(
            batter=event_data.get("batterName") or ctx.get("batter_name") or "The batsman",
            bowler=event_data.get("bowlerName") or ctx.get("bowler_name") or "The bowler",
            team=ctx.get("batting_team") or "The team",
            fielding_team=ctx.get("bowling_team") or "the fielding side",
            score=ctx.get("current_score", ""),
            runs=event_data.get("runs", 1),
            dismissal_type=event_data.get("dismissalType") or "",
            result=event_data.get("result") or "",
        )
        try:
            text = template.format_map(values)
        except (IndexError, ValueError, AttributeError):
            text = template

        if context is not None and event_type in HIGH_IMPACT_EVENTS:
            text += f" Score: {context.current_score} after {context.overs} overs."

        if (context is not None and context.is_chasing and event_type not in _NO_CHASE_SUFFIX
                and context.runs_needed > 0):
            text += f" {context.runs_needed} needed from {context.balls_remaining} balls."

        return text
