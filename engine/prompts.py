# -----------------------------------------------------------------------------
# prompts.py
# Templates for AI-driven live cricket commentary
# -----------------------------------------------------------------------------

from engine.events import EventType

COMMENTARY_SYSTEM_INSTRUCTION = """
You are a passionate cricket commentator with deep knowledge of the game. Generate exciting, contextual commentary that:
- Varies based on match situation (score, run rate, pressure, wickets remaining)
- References the specific phase of the match (powerplay, middle overs, death overs)
- Mentions player names naturally
- Uses cricket terminology appropriately
- Keeps commentary under {max_words} words but makes every word count
- Changes tone based on context (desperate chase, comfortable position, nail-biter)
- Adds strategic insights when relevant
- Never repeats the same phrases - be creative and varied
"""

BASE_CONTEXT = """Match Context:
- Batting Team: {batting_team}
- Score: {current_score} in {overs} overs
- Current Run Rate: {run_rate}
- Match Phase: {match_phase}
- Situation: {situation}"""

CHASING_CONTEXT = """
- Target: {target}
- Runs Needed: {runs_needed}
- Required Run Rate: {required_run_rate}
- Wickets Left: {wickets_left}"""

SIX_PROMPT = """{batter} just launched a MASSIVE SIX!

Consider:
- If chasing, how does this impact the required run rate?
- Is this a pressure release or momentum shift?
- Is the bowler under pressure now?

Generate thrilling, situational commentary that captures the moment's significance."""

FOUR_PROMPT = """{batter} finds the boundary with a beautiful FOUR!

Consider:
- Quality of the shot (timing, placement, power)
- Impact on the match situation
- How does this affect the bowler's confidence?

Generate elegant commentary highlighting the stroke's significance."""

WICKET_PROMPT = """WICKET! {batter} is OUT - {dismissal_type}!
{bowler} gets the breakthrough!{fielder_line}

Consider:
- Is this a crucial wicket or a tail-ender?
- Impact on team's chances
- How many wickets remain?
- If chasing, does this make the target harder?

Generate dramatic, impactful commentary about this key moment."""

RUNS_SCORED_PROMPT = """{batter} works it for {runs} run(s). {bowler} bowling.

Consider:
- Is this good strike rotation or desperate singles?
- Match pressure - building or releasing?
- Run rate implications

Generate concise, smart commentary about the game's flow."""

DOT_BALL_PROMPT = """Dot ball! {bowler} to {batter}.

Consider:
- Pressure building on the batter?
- Good bowling or defensive play?
- Run rate pressure increasing?

Generate sharp commentary about the building tension."""

WIDE_PROMPT = """WIDE BALL! {bowler} strays. Extra run!

Consider:
- Pressure on the bowler?
- Impact on required run rate if chasing
- Loss of line and length?

Generate commentary about this mistake and its consequences."""

NO_BALL_PROMPT = """NO BALL! {bowler} oversteps! FREE HIT next!

Consider:
- Costly mistake at this stage?
- Pressure on the fielding side
- How critical is this free hit?

Generate exciting commentary about this massive opportunity."""

INNINGS_END_PROMPT = """INNINGS OVER! {batting_team} finish at {current_score} in {overs} overs.
Run Rate: {run_rate}

Evaluate:
- Was this a good score?
- Defendable or chaseable total?
- What's required in the chase?

Generate a short innings summary with insights."""

MATCH_START_PROMPT = """The match is about to begin. {batting_team} will bat first against {bowling_team}
in a {total_overs}-over contest.

Generate an energetic opening line to welcome the viewers."""

MATCH_END_PROMPT = """MATCH OVER! {result}
Final innings score: {batting_team} {current_score} in {overs} overs.

Generate a closing line that captures how the match was decided."""


def _base(ctx):
    return BASE_CONTEXT.format(**ctx)


def _chasing(ctx):
    if ctx.get("target") is None:
        return ""
    return CHASING_CONTEXT.format(**ctx)


def _event_fields(ctx, event_data):
    fielder = event_data.get("fielderName")
    return {
        **ctx,
        "batter": ctx.get("batter_name") or event_data.get("batterName") or "The batter",
        "bowler": ctx.get("bowler_name") or event_data.get("bowlerName") or "The bowler",
        "runs": event_data.get("runs", 1),
        "dismissal_type": event_data.get("dismissalType") or "dismissed",
        "fielder_line": f"\nFielder involved: {fielder}" if fielder else "",
        "result": event_data.get("result") or "",
    }


def _with_chase(template):
    def build(ctx, event_data):
        body = template.format(**_event_fields(ctx, event_data))
        return f"{_base(ctx)}{_chasing(ctx)}\n\n{body}"
    return build


def _without_chase(template):
    def build(ctx, event_data):
        body = template.format(**_event_fields(ctx, event_data))
        return f"{_base(ctx)}\n\n{body}"
    return build


PROMPT_BUILDERS = {
    EventType.SIX: _with_chase(SIX_PROMPT),
    EventType.FOUR: _with_chase(FOUR_PROMPT),
    EventType.WICKET: _with_chase(WICKET_PROMPT),
    EventType.RUNS_SCORED: _with_chase(RUNS_SCORED_PROMPT),
    EventType.DOT_BALL: _with_chase(DOT_BALL_PROMPT),
    EventType.WIDE: _with_chase(WIDE_PROMPT),
    EventType.NO_BALL: _with_chase(NO_BALL_PROMPT),
    EventType.INNINGS_END: _without_chase(INNINGS_END_PROMPT),
    EventType.MATCH_START: _without_chase(MATCH_START_PROMPT),
    EventType.MATCH_END: _without_chase(MATCH_END_PROMPT),
}


def build_commentary_prompt(event_type, context, event_data):
    """Prompt text for one event. ``context`` is a CommentaryContext."""
    return PROMPT_BUILDERS[event_type](context.to_dict(), event_data or {})


def build_system_instruction(max_words=50):
    return COMMENTARY_SYSTEM_INSTRUCTION.format(max_words=max_words).strip()
