"""Function registry — declarations offered to the model as tools."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .role import Role

logger = logging.getLogger("parley.functions")


@dataclass
class FunctionDeclaration:
    name: str
    description: str
    parameters: dict                    # JSON Schema for parameters
    enabled: bool = True

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class FunctionRegistry:
    """Known function declarations, in registration order."""

    def __init__(self):
        self._functions: dict[str, FunctionDeclaration] = {}

    def register(
        self,
        name: str,
        description: str,
        parameters: Optional[dict] = None,
    ):
        """Register (or replace) a function declaration."""
        self._functions[name] = FunctionDeclaration(
            name=name,
            description=description,
            parameters=parameters or {"type": "object", "properties": {}},
        )

    def unregister(self, name: str):
        """Remove a function."""
        self._functions.pop(name, None)

    def get(self, name: str) -> Optional[FunctionDeclaration]:
        return self._functions.get(name)

    def list_functions(self) -> list[FunctionDeclaration]:
        return [f for f in self._functions.values() if f.enabled]

    def select(self, role: "Role") -> Optional[list[dict]]:
        """Declarations the role may call, in OpenAI tool format.

        `use_tools` is None (no tools), "all", or a comma-separated list of
        names. Unknown names are skipped with a warning. Returns None rather
        than an empty list so callers can omit the field entirely.
        """
        use_tools = role.use_tools
        if not use_tools:
            return None
        if use_tools.strip() == "all":
            selected = self.list_functions()
        else:
            selected = []
            for name in (n.strip() for n in use_tools.split(",")):
                if not name:
                    continue
                func = self.get(name)
                if func is None or not func.enabled:
                    logger.warning(f"Role {role.name} requests unknown function '{name}'")
                    continue
                selected.append(func)
        if not selected:
            return None
        return [f.to_openai_schema() for f in selected]
