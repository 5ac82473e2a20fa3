from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from services.errors import StationError


class ActionResult(BaseModel):
    """Uniform envelope returned by every unload / stock operation."""
    success: bool
    message: str
    data: Optional[Any] = None
    errors: Optional[Dict[str, List[str]]] = None
    code: Optional[str] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, exc: StationError) -> "ActionResult":
        return cls(success=False, message=exc.message, errors=exc.errors, code=exc.code)


def field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Flatten pydantic errors into field -> [messages]."""
    out: Dict[str, List[str]] = {}
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "__root__"
        out.setdefault(field, []).append(err.get("msg", "invalid value"))
    return out
