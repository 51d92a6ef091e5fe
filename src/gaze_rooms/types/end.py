class EndToken:
    """
    Marks the end of a frame queue or dispatcher lane.

    There is exactly one instance, `_END`, so consumers compare with `is`.
    """
    __slots__ = ()
    _instance = None

    def __new__(cls) -> "EndToken":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __reduce__(self) -> str:
        return "_END"

    def __repr__(self) -> str:
        return "<EndToken>"


_END = EndToken()
