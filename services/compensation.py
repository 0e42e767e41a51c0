# dapurasri/services/compensation.py

import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class Compensation:
    """
    Undo list for multi-step writes (header + children).

    Usage:
        with Compensation("sales create") as undo:
            header = db.insert(...)[0]
            undo.push("hapus header", lambda: db.delete(..., eq={"id": header["id"]}))
            db.insert(... details ...)

    If the block raises, the pushed actions run in reverse order and the
    original exception propagates. A failing undo action is logged and the
    remaining actions still run.
    """

    def __init__(self, name: str):
        self.name = name
        self._actions: List[Tuple[str, Callable[[], object]]] = []
        self.failures: List[Tuple[str, Exception]] = []

    def push(self, label: str, action: Callable[[], object]) -> None:
        self._actions.append((label, action))

    def run(self) -> None:
        while self._actions:
            label, action = self._actions.pop()
            try:
                action()
                logger.info("[%s] compensated: %s", self.name, label)
            except Exception as e:
                self.failures.append((label, e))
                logger.error("[%s] compensation '%s' failed: %s", self.name, label, e)

    def __enter__(self) -> "Compensation":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            logger.warning("[%s] failed (%s), rolling back %d step(s)",
                           self.name, exc, len(self._actions))
            self.run()
        self._actions.clear()
        return False
