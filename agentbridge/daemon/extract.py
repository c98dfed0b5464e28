"""Turns free-text agent output into structured code suggestions.

This is a heuristic, not a Markdown parser. It recognises fenced code
blocks (``` or ~~~, three or more characters) and guesses the rest:

- language: first word of the fence's info string ("text" if absent).
  A "lang:path" info string also names the target file.
- file: explicit path in the info string ("lang:path", "file=path",
  "title=path"), else a path mentioned on the prose line just above the
  fence, else the request's current file, else "unknown".
- description: the nearest prose line above the fence, else
  "Code suggestion".

Unterminated fences are dropped. The result is best-effort and may name
files that do not exist.
"""

import re
from typing import List, Optional, Tuple

from agentbridge.core.protocol import CodeSuggestion

DEFAULT_LANGUAGE = "text"
DEFAULT_DESCRIPTION = "Code suggestion"
UNKNOWN_FILE = "unknown"

_OPEN_FENCE = re.compile(r"^\s{0,3}(?P<fence>`{3,}|~{3,})\s*(?P<info>[^`]*?)\s*$")
_INFO_FILE = re.compile(r"""(?:file|title|path)\s*=\s*["']?(?P<path>[^"'\s]+)["']?""")
_BACKTICK_PATH = re.compile(r"`(?P<path>[\w./\\-]+\.[A-Za-z0-9]+)`")
_KEYWORD_PATH = re.compile(r"\b(?:file|File|FILE|in|In|to|To)\s*:?\s+(?P<path>[\w./\\-]+\.[A-Za-z0-9]+)")
_SLASH_PATH = re.compile(r"(?P<path>[\w.-]*[/\\][\w./\\-]*\.[A-Za-z0-9]+)")


class SuggestionExtractor:
    """Extracts CodeSuggestion entries from fenced blocks in agent output."""

    @staticmethod
    def extract(text: str, default_file: Optional[str] = None) -> List[CodeSuggestion]:
        """
        Scan text for fenced code blocks.

        Args:
            text: Raw agent output
            default_file: File to attribute blocks to when none is named

        Returns:
            One CodeSuggestion per terminated fenced block, in order
        """
        suggestions: List[CodeSuggestion] = []
        lines = text.splitlines()
        prose_before: List[str] = []
        i = 0

        while i < len(lines):
            match = _OPEN_FENCE.match(lines[i])
            if not match:
                if lines[i].strip():
                    prose_before.append(lines[i].strip())
                i += 1
                continue

            fence = match.group("fence")
            closing = re.compile(r"^\s{0,3}" + re.escape(fence[0]) + "{" + str(len(fence)) + r",}\s*$")
            end = i + 1
            while end < len(lines) and not closing.match(lines[end]):
                end += 1
            if end >= len(lines):
                # Unterminated fence: nothing after it is reliable
                break

            body = lines[i + 1:end]
            code = "\n".join(body) + "\n" if body else ""
            language, info_file = SuggestionExtractor._parse_info(match.group("info"))
            lead = prose_before[-1] if prose_before else ""

            suggestions.append(
                CodeSuggestion(
                    file=info_file or _path_in_prose(lead) or default_file or UNKNOWN_FILE,
                    code=code,
                    language=language,
                    description=_describe(lead),
                )
            )
            prose_before = []
            i = end + 1

        return suggestions

    @staticmethod
    def _parse_info(info: str) -> Tuple[str, Optional[str]]:
        """Split a fence info string into (language, explicit file)."""
        info = info.strip()
        if not info:
            return DEFAULT_LANGUAGE, None

        explicit = _INFO_FILE.search(info)
        first = info.split()[0]
        if explicit and first.startswith(("file", "title", "path")):
            return DEFAULT_LANGUAGE, explicit.group("path")

        language, _, rest = first.partition(":")
        path = rest or (explicit.group("path") if explicit else None)
        language = language.strip("{}.").lower() or DEFAULT_LANGUAGE
        return language, path or None


def _path_in_prose(line: str) -> Optional[str]:
    if not line:
        return None
    for pattern in (_BACKTICK_PATH, _KEYWORD_PATH, _SLASH_PATH):
        match = pattern.search(line)
        if match:
            return match.group("path").rstrip(".")
    return None


def _describe(line: str) -> str:
    text = line.strip().lstrip("#>*-0123456789. ").rstrip(":").strip()
    return text or DEFAULT_DESCRIPTION


def extract_code_suggestions(text: str, default_file: Optional[str] = None) -> List[CodeSuggestion]:
    """Convenience wrapper for SuggestionExtractor.extract()."""
    return SuggestionExtractor.extract(text, default_file)
