from functools import partial
from typing import Any, Callable, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from database import session_scope
from models import CollectionDocument


SHARED_LISTS = "shared_lists"
SHARED_TASKS = "shared_tasks"
SHARED_IDEAS = "shared_ideas"

Documents = Sequence[dict[str, Any]]


class DocumentStore:
    """Whole-collection persistence: every save replaces the stored list."""

    def __init__(self, bind: Optional[Engine] = None) -> None:
        if bind is None:
            from database import engine

            bind = engine
        self.session_factory = sessionmaker(
            bind=bind, autoflush=False, expire_on_commit=False
        )

    def load(self, name: str) -> list[dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            row = session.get(CollectionDocument, name)
            return list(row.payload) if row else []

    def save(self, name: str, documents: Documents) -> None:
        with session_scope(self.session_factory) as session:
            row = session.get(CollectionDocument, name)
            if row is None:
                session.add(CollectionDocument(name=name, payload=list(documents)))
            else:
                row.payload = list(documents)

    def sink(self, name: str) -> Callable[[Documents], None]:
        return partial(self.save, name)

    def save_shared_hub(
        self,
        lists: Optional[Documents],
        tasks: Optional[Documents],
        ideas: Optional[Documents],
    ) -> None:
        """Save the hub collections that changed; ``None`` leaves one untouched."""
        for name, documents in (
            (SHARED_LISTS, lists),
            (SHARED_TASKS, tasks),
            (SHARED_IDEAS, ideas),
        ):
            if documents is not None:
                self.save(name, documents)
