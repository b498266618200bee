"""
UI sinks for Vessel.

- Silent: the default, discards everything
- Capture: records messages (tests, programmatic use)
- Prefixed: tags messages with a machine name
- Basic: plain text to stdout/stderr
- Colored: Rich console output
"""

from vessel.ui.base import Capture, Interface, Level, Message, Prefixed, Silent
from vessel.ui.basic import Basic
from vessel.ui.rich_ui import Colored

__all__ = [
    "Basic",
    "Capture",
    "Colored",
    "Interface",
    "Level",
    "Message",
    "Prefixed",
    "Silent",
]
