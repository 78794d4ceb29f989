"""Rendering a parent and its children into one markdown content block."""

from synchub.models.items import RawItem


class ContentRenderer:
    """Builds the content block merged into a parent's record.

    Output is an optional summary section followed by one block per child:
    the child body quoted line by line, an optional note line, and a blank
    separator. Children are rendered in the order given.
    """

    def __init__(
        self,
        summary_key: str = "summary",
        body_key: str = "content",
        note_key: str = "note",
        summary_heading: str = "## Summary",
        children_heading: str = "## Highlights",
    ):
        self._summary_key = summary_key
        self._body_key = body_key
        self._note_key = note_key
        self._summary_heading = summary_heading
        self._children_heading = children_heading

    def render(self, parent: RawItem, children: list[RawItem]) -> str:
        """
        Render the content block.

        Args:
            parent: Parent item, optionally carrying a summary
            children: Children in emission order

        Returns:
            Markdown block, or an empty string when there is nothing to write
        """
        parts: list[str] = []

        summary = parent.get(self._summary_key)
        if summary:
            parts.append(f"{self._summary_heading}\n")
            parts.append(str(summary))
            parts.append("")

        if children:
            parts.append(f"{self._children_heading}\n")
            for child in children:
                parts.append(self.quote(child.get(self._body_key, "")))

                note = child.get(self._note_key)
                if note:
                    parts.append("")
                    parts.append(f"**Note:** {note}")
                parts.append("")

        return "\n".join(parts)

    @staticmethod
    def quote(text: str) -> str:
        if not text:
            return ""
        return "\n".join(f"> {line}" for line in str(text).split("\n"))
