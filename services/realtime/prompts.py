"""Prompt helpers for live assistant sessions."""

from __future__ import annotations

from typing import Dict, List

from models.session_models import InstructionProfile, SessionConfig, Verbosity

_SHORT_FORMAT = (
	"**RESPONSE FORMAT REQUIREMENTS:**\n"
	"- Keep responses SHORT and CONCISE (1-3 sentences max)\n"
	"- Use **markdown formatting** for better readability\n"
	"- Use **bold** for key points and emphasis\n"
	"- Focus on the most essential information only"
)

_PROFILES: Dict[InstructionProfile, Dict[str, str]] = {
	InstructionProfile.INTERVIEW: {
		"intro": (
			"You are an interview assistant acting as a discreet on-screen teleprompter. "
			"Help the user answer interview questions with concise, ready-to-speak talking points, "
			"using the ongoing dialogue and the user-provided context below."
		),
		"content": "Deliver the essential information only. Suggestions must be direct and immediately usable.",
		"output": (
			"**OUTPUT INSTRUCTIONS:**\n"
			"Provide only the exact words to say in **markdown format**. No coaching and no explanations."
		),
	},
	InstructionProfile.SALES: {
		"intro": "You are a sales call assistant. Provide the exact words the salesperson should say to the prospect.",
		"content": "Focus on value propositions, handling objections and closing.",
		"output": (
			"**OUTPUT INSTRUCTIONS:**\n"
			"Provide only the exact words to say in **markdown format**. Be persuasive but not pushy."
		),
	},
	InstructionProfile.MEETING: {
		"intro": "You are a meeting assistant. Provide the exact words to say during professional meetings and discussions.",
		"content": "Focus on clear communication, action items and professional responses.",
		"output": (
			"**OUTPUT INSTRUCTIONS:**\n"
			"Provide only the exact words to say in **markdown format**. Be clear and action-oriented."
		),
	},
	InstructionProfile.PRESENTATION: {
		"intro": "You are a presentation coach. Provide the exact words the presenter should say to the audience.",
		"content": "Focus on engaging delivery, clear explanations and confident answers to questions.",
		"output": (
			"**OUTPUT INSTRUCTIONS:**\n"
			"Provide only the exact words to say in **markdown format**. Back up claims with specific facts when possible."
		),
	},
	InstructionProfile.NEGOTIATION: {
		"intro": "You are a negotiation assistant. Provide the exact words to say during business negotiations.",
		"content": "Focus on win-win outcomes, underlying concerns and strategic positioning.",
		"output": (
			"**OUTPUT INSTRUCTIONS:**\n"
			"Provide only the exact words to say in **markdown format**. Address the other side's concerns directly."
		),
	},
	InstructionProfile.EXAM: {
		"intro": "You are an exam assistant. Provide direct, accurate answers with just enough justification to confirm them.",
		"content": "Focus on efficiency and accuracy.",
		"output": (
			"**OUTPUT INSTRUCTIONS:**\n"
			"Include the question, the correct answer in **bold**, and a one-line justification."
		),
	},
}


def _verbosity_block(verbosity: Verbosity) -> str:
	if verbosity == Verbosity.VERBOSE:
		return (
			"VERBOSITY PREFERENCE (override):\n"
			"- Provide a more detailed, step-by-step answer when helpful.\n"
			"- Prefer clear structure (short sections, bullets or examples) and avoid fluff."
		)
	return (
		"VERBOSITY PREFERENCE (override):\n"
		"- Keep it concise (1-3 sentences).\n"
		"- Surface only the most essential points."
	)


def system_prompt(config: SessionConfig) -> str:
	"""Return the system prompt for the configured profile."""
	parts = _PROFILES.get(config.profile, _PROFILES[InstructionProfile.INTERVIEW])
	sections: List[str] = [
		parts["intro"],
		_SHORT_FORMAT,
		parts["content"],
		f"User-provided context\n-----\n{config.custom_instructions.strip()}\n-----",
		parts["output"],
		f"Respond in the language of locale {config.locale}.",
		_verbosity_block(config.verbosity),
	]
	return "\n\n".join(sections)


def screenshot_prompt() -> str:
	"""Return the prompt that accompanies a screenshot sent to a chat provider."""
	return "Analyze this screenshot and provide helpful insights or answers based on what you see."


def reconnection_context(questions: List[str]) -> str:
	"""Return the single message that re-grounds a reopened session."""
	joined = "\n".join(questions)
	return f"Till now all these questions were asked in the conversation, answer the last one please:\n\n{joined}"
