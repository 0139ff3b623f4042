import re
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class SubTask:
    text: str
    done: bool = False

    CHECKLIST_PATTERN = re.compile(r"^\s*[-*]\s*\[(x|X| )\]\s*(.+?)\s*$")

    def to_markdown(self) -> str:
        return f"- [{'x' if self.done else ' '}] {self.text}"

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "done": self.done}

    @classmethod
    def from_markdown(cls, line: str) -> Optional["SubTask"]:
        match = cls.CHECKLIST_PATTERN.match(line or "")
        if not match:
            return None
        return cls(text=match.group(2), done=match.group(1).lower() == "x")

    @classmethod
    def from_value(cls, value: Any) -> "SubTask":
        """Accept either a plain string or a {text, done} mapping."""
        if isinstance(value, SubTask):
            return cls(text=value.text, done=value.done)
        if isinstance(value, dict):
            return cls(text=str(value.get("text", "") or "").strip(), done=bool(value.get("done", False)))
        return cls(text=str(value or "").strip())
