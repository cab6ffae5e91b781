"""Instruction templates for the text-understanding collaborator.

Every template asks for ``KEY: value`` lines so the output can go through
:mod:`cuesync.extraction.parser`. Templates are rendered with
``str.format`` using ``user``, ``assistant`` and ``history`` (plus
``summary``/``topic`` for the semantic templates).
"""

from __future__ import annotations

_PREAMBLE = (
    "Analyze the conversation below. Answer ONLY with lines of the form KEY: value.\n"
    "Do not add commentary.\n\n"
    "Earlier messages:\n{history}\n\n"
    "User: {user}\n"
    "Assistant: {assistant}\n\n"
)

SUMMARY_TEMPLATE = _PREAMBLE + (
    "SUMMARY: <one or two sentence summary>\n"
    "KEY_POINT: <key point> (repeat this line for each key point, at most 5)\n"
)

INTENT_TEMPLATE = _PREAMBLE + (
    "PRIMARY_INTENT: <information_seeking | problem_solving | instruction | discussion | other>\n"
    "SECONDARY_INTENTS: <intent>; <intent>\n"
)

TOPIC_TEMPLATE = _PREAMBLE + (
    "PRIMARY_TOPIC: <main topic>\n"
    "SUB_TOPICS: <topic>; <topic>\n"
    "DOMAIN: <technology | business | science | education | health | general>\n"
)

ENTITY_TEMPLATE = _PREAMBLE + (
    "ENTITY: <name> | <type> | <confidence 0-1> (repeat per entity)\n"
    "RELATION: <source> | <relation> | <target> (repeat per relationship)\n"
    "ACTION: <action item> (repeat per action item)\n"
)

TECHNICAL_TEMPLATE = _PREAMBLE + (
    "TERM: <technical term> | <category> (repeat per term)\n"
    "REFERENCE: <url or document name> (repeat per reference)\n"
)

TONE_TEMPLATE = _PREAMBLE + (
    "TONE: <neutral | curious | frustrated | excited | urgent | confused>\n"
    "INTENSITY: <number between 0 and 1>\n"
    "URGENCY: <number between 0 and 1>\n"
)

FLOW_TEMPLATE = _PREAMBLE + (
    "PHASE: <initiation | exploration | resolution | conclusion>\n"
    "PROGRESS: <integer 0-100>\n"
    "DEPTH: <integer 1-10>\n"
    "NEXT: <what the user will most likely do next>\n"
)

TOPIC_HIERARCHY_TEMPLATE = (
    "Build a topic hierarchy for this conversation. Answer ONLY with KEY: value lines.\n\n"
    "Summary: {summary}\n"
    "Main topic: {topic}\n"
    "User: {user}\n\n"
    "ROOT_DOMAIN: <broad domain>\n"
    "SUB_DOMAINS: <domain>; <domain>\n"
    "SPECIFIC_TOPICS: <topic>; <topic>\n"
    "CROSS_DOMAIN_LINKS: <related domain>; <related domain>\n"
)

PREDICTIVE_TEMPLATE = (
    "Predict how this conversation continues. Answer ONLY with KEY: value lines.\n\n"
    "Summary: {summary}\n"
    "Main topic: {topic}\n"
    "User: {user}\n\n"
    "FOLLOW_UP: <likely follow-up question> (repeat, at most 3)\n"
    "MISUNDERSTANDING: <potential misunderstanding> (repeat, at most 3)\n"
    "NEXT_STEP: <recommended next step> (repeat, at most 3)\n"
)


def render_history(messages: list[tuple[str, str]]) -> str:
    """Format ``(role, content)`` pairs, or ``(none)`` when empty."""
    if not messages:
        return "(none)"
    return "\n".join(f"{role.capitalize()}: {content}" for role, content in messages)
