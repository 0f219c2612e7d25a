"""Convert Jira wiki markup to GitLab markdown.

Jira text formatting notation:
https://jira.atlassian.com/secure/WikiRendererHelpAction.jspa?section=all
GitLab markdown: https://docs.gitlab.com/ee/user/markdown.html

Generated fragments that must not be touched by later substitutions (code,
links, mentions, attachment embeds) are swapped out for placeholders and
restored at the end.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .exceptions import FormatError
from .issue_builder import build_description_header, build_note_header
from .models import FormattedText

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .models import Comment, RelocatedAttachment, SourceIssue, UserMap

_PLACEHOLDER = "\x00{}\x00"
_PLACEHOLDER_PATTERN = re.compile(r"\x00(\d+)\x00")

# Block macros are single-brace tokens; "{{code}}" is monospace text
_CODE_BLOCK = re.compile(r"(?<!\{)\{code(?::([^}]*))?\}(?!\})(.*?)(?<!\{)\{code\}(?!\})", re.DOTALL)
_NOFORMAT_BLOCK = re.compile(r"(?<!\{)\{noformat\}(?!\})(.*?)(?<!\{)\{noformat\}(?!\})", re.DOTALL)
_QUOTE_BLOCK = re.compile(r"(?<!\{)\{quote\}(?!\})(.*?)(?<!\{)\{quote\}(?!\})", re.DOTALL)
_BLOCK_MACRO = re.compile(r"(?<!\{)\{(code|noformat|quote)(?::[^}]*)?\}(?!\})")
_MONOSPACE = re.compile(r"\{\{(.+?)\}\}")
_MENTION = re.compile(r"\[~(?:accountid:)?([^\]]+)\]")
_ATTACHMENT_EMBED = re.compile(r"!([^!\s|][^!|\n]*?)(?:\|[^!\n]*)?!")
_ATTACHMENT_LINK = re.compile(r"\[\^([^\]\n]+)\]")
_LINK_WITH_TEXT = re.compile(r"\[([^|\]\n]+)\|([^\]\s]+)\]")
_BARE_LINK = re.compile(r"\[((?:https?|ftp|mailto):[^\]\s]+)\]")
_COLOR = re.compile(r"\{color(?::[^}]*)?\}")
_HEADING = re.compile(r"^h([1-6])\.[ \t]+", re.MULTILINE)
_BLOCKQUOTE = re.compile(r"^bq\.[ \t]+", re.MULTILINE)
_RULER = re.compile(r"^-{4,}[ \t]*$", re.MULTILINE)
_LIST_ITEM = re.compile(r"^[ \t]*([*#-]+)[ \t]+", re.MULTILINE)
_BOLD = re.compile(r"(?<![\w*])\*(?=\S)([^*\n]+?)(?<=\S)\*(?![\w*])")
_STRIKE = re.compile(r"(?<![\w-])-(?=[^\s-])([^-\n]+?)(?<=[^\s-])-(?![\w-])")
_UNDERLINE = re.compile(r"(?<![\w+])\+(?=\S)([^+\n]+?)(?<=\S)\+(?![\w+])")
_ITALIC = re.compile(r"(?<![\w_])_(?=\S)([^_\n]+?)(?<=\S)_(?![\w_])")
_TABLE_HEADER = re.compile(r"^\|\|(.*)\|\|[ \t]*$", re.MULTILINE)
_URL_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*:", re.IGNORECASE)

_EMOTICONS: dict[str, str] = {
    "(y)": ":thumbsup:",
    "(n)": ":thumbsdown:",
    "(i)": ":information_source:",
    "(/)": ":white_check_mark:",
    "(x)": ":x:",
    "(!)": ":warning:",
    "(?)": ":grey_question:",
    "(on)": ":bulb:",
    "(*)": ":star:",
}


class _Conversion:
    """State of converting one piece of markup.

    Jira references attachments by file name. When several attachments share
    a name (pasted "image.png"), references resolve to the first one in the
    order of ``attachments``; the others are never embedded inline.
    """

    def __init__(self, user_map: UserMap, attachments: Mapping[str, RelocatedAttachment]) -> None:
        self.user_map = user_map
        self.by_name: dict[str, tuple[str, RelocatedAttachment]] = {}
        for attachment_id, attachment in attachments.items():
            self.by_name.setdefault(attachment.name, (attachment_id, attachment))
        self.embedded: set[str] = set()
        self.fragments: list[str] = []

    def protect(self, fragment: str) -> str:
        self.fragments.append(fragment)
        return _PLACEHOLDER.format(len(self.fragments) - 1)

    def restore(self, text: str) -> str:
        # A fragment may hold placeholders of earlier fragments (e.g. monospace
        # inside link text), never its own or later ones
        return _PLACEHOLDER_PATTERN.sub(lambda m: self.restore(self.fragments[int(m.group(1))]), text)

    def code_block(self, match: re.Match[str]) -> str:
        language = ""
        for param in (match.group(1) or "").split("|"):
            key, sep, value = param.partition("=")
            if not sep and key.strip():
                language = key.strip()
            elif key.strip() == "language":
                language = value.strip()
        content = match.group(2).strip("\r\n")
        return self.protect(f"\n```{language}\n{content}\n```\n")

    def noformat_block(self, match: re.Match[str]) -> str:
        content = match.group(1).strip("\n")
        return self.protect(f"\n```\n{content}\n```\n")

    def monospace(self, match: re.Match[str]) -> str:
        return self.protect(f"`{match.group(1)}`")

    def mention(self, match: re.Match[str]) -> str:
        name = match.group(1)
        username = self.user_map.get(name)
        return self.protect(f"@{username}" if username else name)

    def attachment(self, match: re.Match[str]) -> str:
        name = match.group(1).strip()
        found = self.by_name.get(name)
        if found is not None:
            attachment_id, relocated = found
            self.embedded.add(attachment_id)
            return self.protect(relocated.markdown)
        if match.group(0).startswith("!") and _URL_SCHEME.match(name):
            return self.protect(f"![]({name})")
        return match.group(0)

    def link(self, match: re.Match[str]) -> str:
        return self.protect(f"[{match.group(1).strip()}]({match.group(2)})")

    def bare_link(self, match: re.Match[str]) -> str:
        return self.protect(f"<{match.group(1)}>")


def _quote(match: re.Match[str]) -> str:
    lines = match.group(1).strip("\n").split("\n")
    return "\n" + "\n".join(f"> {line}" if line else ">" for line in lines) + "\n"


def _list_item(match: re.Match[str]) -> str:
    markers = match.group(1)
    if set(markers) == {"-"} and len(markers) > 1:
        # "--" is a dash, not a nested list
        return match.group(0)
    depth = len(markers) - 1
    if markers[-1] == "#":
        return "   " * depth + "1. "
    return "  " * depth + "- "


def _table(text: str) -> str:
    lines: list[str] = []
    for line in text.split("\n"):
        header = _TABLE_HEADER.match(line)
        if header:
            cells = [cell.strip() for cell in header.group(1).split("||")]
            lines.append("| " + " | ".join(cells) + " |")
            lines.append("|" + "|".join(" --- " for _ in cells) + "|")
        elif line.startswith("|") and line.rstrip().endswith("|") and len(line.strip()) > 1:
            cells = [cell.strip() for cell in line.strip()[1:-1].split("|")]
            lines.append("| " + " | ".join(cells) + " |")
        else:
            lines.append(line)
    return "\n".join(lines)


def _check_balanced(text: str, context: str) -> None:
    leftover = _BLOCK_MACRO.search(text)
    if leftover is not None:
        msg = f"Unterminated {leftover.group(1)} block in {context or 'markup'}"
        raise FormatError(msg, operation="format markup")


def convert_markup(
    text: str,
    user_map: UserMap,
    attachments: Mapping[str, RelocatedAttachment],
    context: str = "",
) -> FormattedText:
    """Convert Jira markup to GitLab markdown.

    Args:
        text: Jira wiki markup (may be empty)
        user_map: Jira user -> GitLab username; unmapped mentions keep the Jira name
        attachments: Relocated attachments keyed by Jira attachment id
        context: Context for error messages (e.g., "PROJ-1 comment 10001")

    Returns:
        FormattedText with the markdown and the ids of attachments embedded inline.
        References to attachments that were not relocated stay literal.

    Raises:
        FormatError: If a code, noformat or quote block is not terminated
    """
    if not text:
        return FormattedText(body="")

    conv = _Conversion(user_map, attachments)
    # NUL is reserved for placeholders
    t = text.replace("\r\n", "\n").replace("\x00", "")

    # Verbatim blocks first, their content is not markup
    t = _CODE_BLOCK.sub(conv.code_block, t)
    t = _NOFORMAT_BLOCK.sub(conv.noformat_block, t)
    t = _QUOTE_BLOCK.sub(_quote, t)
    t = _MONOSPACE.sub(conv.monospace, t)
    _check_balanced(t, context)

    # References
    t = _MENTION.sub(conv.mention, t)
    t = _ATTACHMENT_EMBED.sub(conv.attachment, t)
    t = _ATTACHMENT_LINK.sub(conv.attachment, t)
    t = _LINK_WITH_TEXT.sub(conv.link, t)
    t = _BARE_LINK.sub(conv.bare_link, t)
    t = _COLOR.sub("", t)

    # Block structure; lists before headings, "#" means both
    t = _RULER.sub("---", t)
    t = _LIST_ITEM.sub(_list_item, t)
    t = _HEADING.sub(lambda m: "#" * int(m.group(1)) + " ", t)
    t = _BLOCKQUOTE.sub("> ", t)
    t = _table(t)

    # Text effects
    t = _BOLD.sub(r"**\1**", t)
    t = _STRIKE.sub(r"~~\1~~", t)
    t = _UNDERLINE.sub(r"<ins>\1</ins>", t)
    # After bold, whose output uses the same marker
    t = _ITALIC.sub(r"*\1*", t)
    for emoticon, emoji in _EMOTICONS.items():
        t = t.replace(emoticon, emoji)

    return FormattedText(body=conv.restore(t).strip("\n"), embedded=frozenset(conv.embedded))


def format_description(
    issue: SourceIssue,
    user_map: UserMap,
    attachments: Mapping[str, RelocatedAttachment],
    *,
    is_epic: bool,
) -> FormattedText:
    """Build the GitLab description of a migrated epic or issue."""
    converted = convert_markup(issue.description, user_map, attachments, context=issue.key)
    body = build_description_header(issue, user_map, is_epic=is_epic) + converted.body
    return FormattedText(body=body, embedded=converted.embedded)


def format_note(
    issue_key: str,
    comment: Comment,
    user_map: UserMap,
    attachments: Mapping[str, RelocatedAttachment],
    *,
    is_epic: bool,
) -> FormattedText:
    """Build the GitLab note body of a migrated comment."""
    converted = convert_markup(comment.body, user_map, attachments, context=f"{issue_key} comment {comment.id}")
    body = build_note_header(comment, user_map, is_epic=is_epic) + converted.body
    return FormattedText(body=body, embedded=converted.embedded)
