"""SMS understanding pipeline package.

Stages:
1. Normalizer (deterministic language detection + Arabic keyword rewrite)
2. CommandMatcher (deterministic ordered grammar rules)
3. ConversationAgent (LLM fallback for free text, JSON reply contract)
4. Reply templates (bilingual rendering)
"""

from .contracts import AssistantReply, NormalizedMessage, ParsedCommand
from .normalizer import detect_language, normalize, normalize_text
from .command_matcher import match_command, normalize_case_code
from .conversation_agent import ConversationAgent, parse_assistant_reply
from .reply_templates import render

__all__ = [
    "AssistantReply",
    "NormalizedMessage",
    "ParsedCommand",
    "detect_language",
    "normalize",
    "normalize_text",
    "match_command",
    "normalize_case_code",
    "ConversationAgent",
    "parse_assistant_reply",
    "render",
]
