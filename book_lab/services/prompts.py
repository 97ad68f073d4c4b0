"""
Prompt templates for the content pipeline.
"""

from typing import List

from book_lab.services.gateway import Message


TOPIC_SYSTEM = "You are a helpful assistant that extracts topics from text. Return only topic names as a comma-separated list."

TOPIC_USER = (
    "Analyze the following paragraph and identify 1-3 relevant topics or themes. "
    "Return only the topic names as a comma-separated list. "
    "Be specific and use clear, concise topic names.\n\n"
    "Paragraph: {text}"
)

OUTLINE_SYSTEM = "You are a professional book writing assistant. Create detailed, well-structured chapter outlines."

OUTLINE_USER = """You are helping write a book chapter about "{topic}". Based on these notes, create a detailed chapter outline with main sections and key points.

Notes:
{notes}

Return a structured outline with:
- Introduction
- Main sections (3-5)
- Conclusion

Format the outline with clear headers and bullet points."""

REFINE_OUTLINE_SYSTEM = "You are a professional book writing assistant. Refine chapter outlines based on user feedback."

REFINE_OUTLINE_USER = (
    "Here is a chapter outline:\n\n{outline}\n\n"
    "Please refine it based on these instructions: {instructions}\n\n"
    "Return the improved outline maintaining the same structure."
)

CHAPTER_SYSTEM = "You are a professional book writer. Write engaging, well-structured chapters with smooth transitions and professional prose."

CHAPTER_USER = """Write a complete book chapter based on this outline and source notes. Use professional, engaging writing. Include smooth transitions. Aim for approximately 2000-3000 words.

Outline:
{outline}

Source Notes:
{notes}

Write the complete chapter in HTML format suitable for a rich text editor. Use <h2> for section headers, <p> for paragraphs, and appropriate formatting."""

REFINE_CONTENT_SYSTEM = "You are a professional book editor. Refine and improve text based on specific instructions while maintaining the author's voice."

REFINE_CONTENT_USER = (
    "Here is some text from a book chapter:\n\n{content}\n\n"
    "Please refine it based on these instructions: {instructions}\n\n"
    "Return the improved text in HTML format."
)


def chat(system: str, user: str) -> List[Message]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def topic_messages(text: str) -> List[Message]:
    return chat(TOPIC_SYSTEM, TOPIC_USER.format(text=text))


def outline_messages(topic: str, notes: str) -> List[Message]:
    return chat(OUTLINE_SYSTEM, OUTLINE_USER.format(topic=topic, notes=notes))


def refine_outline_messages(outline: str, instructions: str) -> List[Message]:
    return chat(REFINE_OUTLINE_SYSTEM, REFINE_OUTLINE_USER.format(outline=outline, instructions=instructions))


def chapter_messages(outline: str, notes: str) -> List[Message]:
    return chat(CHAPTER_SYSTEM, CHAPTER_USER.format(outline=outline, notes=notes))


def refine_content_messages(content: str, instructions: str) -> List[Message]:
    return chat(REFINE_CONTENT_SYSTEM, REFINE_CONTENT_USER.format(content=content, instructions=instructions))
