"""Prompt construction for article summaries."""

from typing import Optional

from ..config.settings import settings

NO_BODY_REPLY = "This article has no body text."

SUMMARY_PROMPT = """# Role
You are an assistant that reads a news article and summarizes only its key points.

# Rules
1. Write the summary as exactly {sentences} complete sentences.
2. Keep proper nouns, figures and dates exactly as they appear in the source. Never add facts that are not in the source, and never add opinions or speculation.
3. Keep each sentence short and easy to follow when read aloud by a text-to-speech reader.
4. Output only the summary. Do not add any preamble, acknowledgement, label such as "Summary:", markdown, or commentary about the task.
5. If the material is too short or has no meaningful information, or the body is only a URL, do not invent a summary; reply only with "{no_body}"

# Task
Summarize the news article in the material below according to the rules above.

# Material
- Title: {title}
- Body: {body}"""


def build_summary_prompt(title: str, body: Optional[str], url: str = None, sentences: int = None) -> str:
    """Render the summary instruction for an article.

    When the body could not be extracted the URL is passed instead, which the
    model is told to answer with the fixed no-body reply.
    """
    if not body:
        body = f"URL: {url}" if url else ""
    return SUMMARY_PROMPT.format(
        sentences=sentences or settings.summary_sentences,
        no_body=NO_BODY_REPLY,
        title=title or "",
        body=body,
    )
