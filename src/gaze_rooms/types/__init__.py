from .end import EndToken, _END

__all__ = ["EndToken", "_END"]
