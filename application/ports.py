from typing import Callable, Dict, Iterable, List, Optional, Protocol

from core import Candidate, TaskRecord


class RecordStore(Protocol):
    def exists(self, task_id: str) -> bool:
        ...

    def ids(self) -> List[str]:
        ...

    def read(self, task_id: str) -> Optional[TaskRecord]:
        ...

    def get(self, task_id: str) -> TaskRecord:
        ...

    def create(self, record: TaskRecord) -> TaskRecord:
        ...

    def save(self, record: TaskRecord) -> TaskRecord:
        ...

    def update(self, task_id: str, mutator: Callable[[TaskRecord], None]) -> TaskRecord:
        ...

    def delete(self, task_id: str) -> bool:
        ...

    def list(self, predicate: Optional[Callable[[TaskRecord], bool]] = None) -> List[TaskRecord]:
        ...

    def refresh(self) -> None:
        ...


class BacklogRepository(Protocol):
    def ids(self) -> List[str]:
        ...

    def find(self, task_id: str) -> Optional[Candidate]:
        ...

    def insert(self, candidates: Iterable[Candidate]) -> List[Candidate]:
        ...

    def mark_promoted(self, task_id: str) -> Candidate:
        ...

    def update(self, task_id: str, fields: Dict[str, object]) -> Candidate:
        ...

    def remove(self, task_id: str) -> Candidate:
        ...

    def entries(self, priority: Optional[str] = None, include_promoted: bool = True) -> List[Candidate]:
        ...

    def refresh(self) -> None:
        ...


class SequenceStore(Protocol):
    def high_water(self, project: str) -> int:
        ...

    def advance(self, project: str, number: int) -> None:
        ...


Clock = Callable[[], str]
