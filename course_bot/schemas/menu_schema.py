"""Menu and outgoing reply schemas."""

from pydantic import BaseModel, Field
from typing import List, Optional


class MenuButton(BaseModel):
    """One selectable entry; ``selector`` becomes the callback data."""
    label: str = Field(..., min_length=1)
    selector: str = Field(..., min_length=1, max_length=64)


class Menu(BaseModel):
    """Inline keyboard laid out as rows of buttons."""
    rows: List[List[MenuButton]] = Field(default_factory=list)

    def selectors(self) -> List[str]:
        return [button.selector for row in self.rows for button in row]


class BotReply(BaseModel):
    """
    Outgoing message produced by the conversation engine.

    ``alert`` replies answer a button press as a popup instead of a chat message.
    """
    text: str
    menu: Optional[Menu] = None
    alert: bool = False
