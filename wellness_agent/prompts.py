"""Prompt templates and fixed user-facing strings for the wellness agent.

Fixed strings that must never be model-generated (greeting, the
no-information decline, apologies) live here next to the prompts so that
tests can assert on them verbatim.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from wellness_agent.collaborators import RetrievedChunk

# ── Fixed messages ───────────────────────────────────────────────────

GREETING_MESSAGE = (
    "Hello! I'm here to help you with wellness clinic appointments and policy "
    "questions. Please tell me what you'd like help with."
)

SCHEDULING_ACK_MESSAGE = (
    "I understand you'd like to check available appointment times. "
    "Let me look up the available slots for you."
)

POLICY_ACK_MESSAGE = (
    "I understand you're asking about our policies. Let me research that for you."
)

CLASSIFIER_FAILURE_MESSAGE = (
    "Sorry, I had a little trouble understanding that request. "
    "I'll look through our clinic policies to see if they answer it."
)

POLICY_PROGRESS_MESSAGE = "Let me research that policy question for you..."

# Emitted verbatim whenever retrieval finds nothing; no model call is made.
NO_INFORMATION_MESSAGE = (
    "I don't have information about that in our policy documents, please call "
    "our clinic directly at (555) 123-4567 to speak with a representative who "
    "can assist you."
)

POLICY_FAILURE_MESSAGE = (
    "I'm sorry, I ran into a problem while looking up that policy. "
    "Please try again in a moment or call the clinic at (555) 123-4567."
)

CONSERVATIVE_VALIDATION_NOTE = (
    "This answer was generated using a conservative approach due to validation concerns."
)

SLOTS_PRESENTED_MESSAGE = "Here are the next available appointment times. Please pick the one that works best for you."

NO_SLOTS_MESSAGE = (
    "I'm sorry, but I don't see any available appointment times right now. "
    "Would you like me to escalate this to our clinic staff?"
)

AVAILABILITY_ERROR_MESSAGE = (
    "I encountered an error while checking availability. "
    "Would you like me to escalate this to our clinic staff?"
)

NONE_OF_THESE_WORK_MESSAGE = (
    "I understand none of these times work for you. I'll notify a "
    "representative to reach out to you directly. In the meantime, feel free "
    "to ask me any policy questions you might have."
)

STALE_SLOT_REASON_TEMPLATE = "The time you picked ({slot_id}) is no longer on offer. Please pick one of the times below."

CONFIRM_TIME_TEMPLATE = "Great! I'd like to confirm your appointment for {slot}. Is this correct?"

TIME_REJECTED_MESSAGE = "No problem, let me find some other times for you."

RESCHEDULING_MESSAGE = "Rescheduling your appointment..."

RESCHEDULE_FAILED_TEMPLATE = (
    "I'm sorry, but I couldn't reschedule your appointment: {reason}. "
    "Please choose a different time."
)

APPOINTMENT_CONFIRMED_TEMPLATE = "Perfect! Your appointment has been {action} to {slot}."

APPOINTMENT_PENDING_TEMPLATE = (
    "Thanks! I've noted {slot} for you, but I couldn't finish the booking in our "
    "calendar. A member of our staff will confirm it with you shortly."
)

ESCALATION_REASONS = {
    "beyond_window": "the requested date is beyond our {days}-day scheduling window",
    "times_unacceptable": "none of the available times work for you",
    "no_slots": "no appointment slots are currently available",
    "generic": "we need additional assistance with your request",
}

ESCALATION_MESSAGE_TEMPLATE = (
    "I understand that {reason}. A representative will contact you within 15 "
    "minutes to assist with your scheduling needs. In the meantime, I can help "
    "answer any questions about our wellness clinic policies. What would you "
    "like to know?"
)

# ── Intent classification ────────────────────────────────────────────

INTENT_SYSTEM_PROMPT = """You are an intent classification assistant for a university wellness clinic chatbot.
Classify the user's message into exactly one intent:

- "policy": questions about clinic policies, rules, procedures, cancellation or
  no-show fees, insurance, what is allowed, hours, eligibility.
- "scheduling": booking, changing, moving or rescheduling an appointment,
  asking for available times.
- "unknown": anything else, or when you are not confident (confidence < 0.6).

Also extract, when the user states them explicitly:
- preferred_date: the calendar date they ask for, as YYYY-MM-DD. Today is {today}.
- preferred_provider: the name of the provider they ask for.

Leave those fields empty when the user does not mention them."""

INTENT_USER_PROMPT = 'Classify the intent of this user message:\n\n"{user_query}"'


def get_intent_system_prompt() -> str:
    """Build the classifier system prompt with today's date injected."""
    return INTENT_SYSTEM_PROMPT.format(today=datetime.now(UTC).strftime("%Y-%m-%d (%A)"))


# ── Policy answering ─────────────────────────────────────────────────

POLICY_SYSTEM_PROMPT = "You are a helpful assistant for the wellness clinic."

POLICY_ANSWER_PROMPT = """Answer the user's question about clinic policies using ONLY the provided context.

IMPORTANT RULES:
- Answer using ONLY information from the provided context
- If the context doesn't contain information to answer the question, say "{no_information}"
- Be concise but complete
- Include specific details like page numbers when relevant
- Do not make up information or use external knowledge

Context from policy documents:
{context}

User Question: {user_query}

Answer:"""

VALIDATION_SYSTEM_PROMPT = "You are an expert validator for policy answers."

VALIDATION_PROMPT = """Determine whether a proposed answer is fully supported by the provided context.

QUESTION: {user_query}

PROPOSED ANSWER: {answer}

CONTEXT FROM POLICY DOCUMENTS:
{context}

Check that the proposed answer:
1. Is fully supported by information in the context
2. Does not contradict any information in the context
3. Does not include information not present in the context
4. Directly addresses the user's question

Respond with a JSON object in exactly this format:
{{"isValid": true or false, "reasoning": "brief explanation", "confidence": number between 0 and 1}}"""

CONSERVATIVE_PROMPT = """Answer a policy question for a university wellness clinic using ONLY the context below.

CRITICAL INSTRUCTIONS:
- Only use information explicitly stated in the provided context
- If the context doesn't fully answer the question, state what is available and what is not
- Do not make assumptions or inferences beyond what's explicitly stated
- If the question cannot be fully answered from the context, recommend consulting clinic staff

Context from policy documents:
{context}

User question: {user_query}

Provide a conservative answer using only the information available in the context above."""


def format_context(chunks: Sequence[RetrievedChunk]) -> str:
    """Render retrieved chunks as the context block shared by all policy prompts."""
    return "\n\n".join(f"[Page {chunk.page_number}] {chunk.content}" for chunk in chunks)


# ── Slot offering ────────────────────────────────────────────────────

OFFER_REQUEST_PROMPT = (
    "Find available appointment times for this user. Use their preferred date "
    "({preferred_date}) and provider ({preferred_provider})."
)
