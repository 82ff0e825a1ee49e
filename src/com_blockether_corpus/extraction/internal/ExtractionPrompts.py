"""
Prompts for the page extraction passes.

The primary and verification prompts ask for the same transcription with
different phrasing so that the two passes fail independently.
"""


def primary_prompt(page_number: int, total_pages: int, language: str) -> str:
    return f"""You are transcribing a {language} textbook. This is page {page_number} of {total_pages}.

Transcribe ALL of the content on this page:
1. Capture every word, number, exercise, caption and footnote. Never skip or summarize content.
2. Preserve reading order. {language} text runs right-to-left; keep embedded numbers, formulas
   and Latin-script terms in their correct left-to-right order inside the sentence.
3. Keep the layout structure: headings, numbered exercises, lists and tables (as rows separated by |).
4. Mark any span you cannot read with certainty as [unclear: best guess] and illegible spans as [illegible].
5. Describe non-text elements (diagrams, drawings, charts, number lines) in a single line as
   [image: short description of what it shows, including any numbers or labels].

Return only the transcribed page text, with no commentary."""


def verification_prompt(page_number: int, total_pages: int, language: str) -> str:
    return f"""Extract the text of page {page_number} (out of {total_pages}) from a {language} textbook.

Rules:
- Output the complete text exactly as printed, from the top of the page to the bottom, nothing omitted.
- Right-to-left {language} sentences keep numbers and mathematical expressions in the order they are read.
- Exercises keep their numbering; tables are written row by row with | between cells.
- Uncertain characters go inside [unclear: ...]; unreadable parts become [illegible].
- Pictures and diagrams become one line each: [image: what is shown, with its labels and numbers].

Output the page text only."""


def reextraction_prompt(page_number: int, total_pages: int, language: str) -> str:
    return f"""Carefully re-read page {page_number} of {total_pages} of this {language} textbook.
A previous transcription of this page was unreliable, so work slowly and completely.

{primary_prompt(page_number, total_pages, language)}"""
