"""
Derived renditions rendered from a fetched export.
"""

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from .error_tracker import ConversionError


class _TargetBlankProcessor(Treeprocessor):
    def run(self, root):
        for element in root.iter('a'):
            element.set('target', '_blank')


class TargetBlankExtension(Extension):
    """Open every link of the rendered page in a new tab."""
    def extendMarkdown(self, md):
        md.treeprocessors.register(_TargetBlankProcessor(md), 'target_blank', 5)


def markdown_to_html(content: bytes) -> bytes:
    """
    Render a markdown export to HTML.

    Headings get ids so sections can be linked to directly.
    """
    try:
        text = content.decode('utf-8-sig')
        html = markdown.markdown(text, extensions=['extra', 'toc', TargetBlankExtension()])
    except (UnicodeDecodeError, ValueError) as e:
        raise ConversionError(f"Failed to render markdown to HTML: {e}")
    return html.encode('utf-8')
