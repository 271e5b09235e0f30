from .manager import Session, SessionHandle

__all__ = ["Session", "SessionHandle"]
