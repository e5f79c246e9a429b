"""Prompts used by the summarization service."""

# Label used for assistant turns when a transcript is rendered for the model
ASSISTANT_LABEL = "Sage"
USER_LABEL = "User"

SUMMARIZE_SYSTEM_PROMPT = """Analyze this Socratic dialogue and write a summary that gives context for future conversations with the same person.

Return JSON:
{
  "summary": "2-3 sentences, past tense, on what was discussed and what the person realized. Be specific.",
  "insights": [
    {"content": "A specific insight or realization", "type": "realization|assumption|pattern|question"}
  ],
  "userPatterns": [
    {"content": "An observable pattern about this person", "category": "pattern|preference|goal|behavior", "confidence": 0.0-1.0}
  ]
}

Guidelines:
- The summary should help Sage pick up the thread if this person returns
- Insights are things discovered in THIS conversation
- userPatterns are broader observations that may hold across conversations
- Quote the person's own words where possible
- Be concrete, not abstract
- If no conclusion was reached, say so; do not invent a resolution
- Pattern confidence: 0.3 for a weak signal, 0.5 moderate, 0.8 or more strong
- Respond with JSON only, no surrounding text"""

SUMMARIZE_USER_PROMPT = "Analyze this conversation:\n\n{transcript}"

PROFILE_PROMPT = """Below are observations about a person, gathered from past conversations. Write one cohesive paragraph (3-5 sentences) describing what you know about them: their personality, goals, patterns and what matters to them. Address them in the second person ("You tend to...").

Observations:
{observations}

Keep it warm and personal rather than clinical. Return only the paragraph, no JSON."""

INSIGHTS_PROMPT = """Pull out what actually came out of this conversation. Keep it plain.

Return JSON:
{
  "summary": "What the person worked out or decided, in their own words where possible. At most 2 sentences.",
  "keyPoints": ["Something they said or realized in this conversation, not a generic theme"],
  "reflections": ["A question left open, or a concrete next step that follows from what they said"]
}

Rules:
- Quote or paraphrase the person: "You said X", not "The conversation explored X"
- No corporate phrasing such as "journey", "explore", "delve", "landscape", "unpacked" or "framework"
- No praise such as "great insight" or "powerful realization"
- If no conclusion was reached, say so; do not invent a resolution
- At most 3 keyPoints, only the substantive ones
- Reflections are specific follow-up questions, not prompts like "What does this mean to you?"
- Respond with JSON only, no surrounding text"""
