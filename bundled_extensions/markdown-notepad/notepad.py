"""
Markdown notepad extension.

Exports its component through a ``components`` mapping; ids, labels and the
config schema come from the manifest.
"""

HOST_API = "pagehost/1"


class NotepadPanel:
    """Panel rendering a markdown note."""

    def __init__(self, config):
        self.config = config

    def render(self):
        return {"title": self.config.get("title", "Notes"), "markdown": self.config.get("body", "")}


components = {
    "NotepadPanel": NotepadPanel,
}
