"""ElementInfo - what we know about a DOM element we acted on."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class ElementInfo(BaseModel):
    """
    Snapshot of a resolved element, read from the page after resolution.

    Only used to describe *what* was acted on (toasts, logs, reports);
    never used to locate the element again.
    """
    model_config = ConfigDict(populate_by_name=True)

    tag: str = "element"
    element_id: Optional[str] = Field(default=None, alias="id")
    classes: List[str] = Field(default_factory=list)
    aria_label: Optional[str] = Field(default=None, alias="ariaLabel")
    text: Optional[str] = None
    placeholder: Optional[str] = None

    def describe(self) -> str:
        """Short human-readable description: aria-label, text, placeholder, tag."""
        if self.aria_label:
            return f'{self.tag}: "{self.aria_label}"'
        text = (self.text or "").strip()[:50]
        if text:
            return f'{self.tag}: "{text}"'
        if self.placeholder:
            return f'{self.tag} with placeholder "{self.placeholder}"'
        return self.tag

    def to_selector(self) -> str:
        """Selector used to report the element: #id, tag.class1.class2, or tag."""
        if self.element_id:
            return f"#{self.element_id}"
        classes = [c for c in self.classes if c][:2]
        if classes:
            return f"{self.tag}." + ".".join(classes)
        return self.tag
