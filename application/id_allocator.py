from typing import Iterable, List, Set

from core import format_task_id
from core.task_record import TASK_ID_PATTERN, normalize_project
from infrastructure.workspace import ProjectWorkspace


class IdentifierAllocator:
    """Hands out ``{PROJECT}-{NNN}`` ids that no tier has used before.

    The scan covers backlog, active and archive plus the persisted high-water
    mark, so a number stays burned after its task is removed. Nothing is
    reserved until the caller writes the record; two allocations made before
    either write can collide.
    """

    def __init__(self, workspace: ProjectWorkspace):
        self.workspace = workspace

    def _used_numbers(self, project: str, ids: Iterable[str]) -> Set[int]:
        numbers: Set[int] = set()
        for task_id in ids:
            match = TASK_ID_PATTERN.match(task_id or "")
            if match and match.group(1) == project:
                numbers.add(int(match.group(2)))
        return numbers

    def _floor(self, project: str) -> tuple:
        used = self._used_numbers(project, self.workspace.known_ids())
        floor = max(used) if used else 0
        floor = max(floor, self.workspace.sequences.high_water(project))
        return floor, used

    def next(self, project: str) -> str:
        project = normalize_project(project)
        floor, _ = self._floor(project)
        return format_task_id(project, floor + 1)

    def allocate_batch(self, project: str, count: int) -> List[str]:
        project = normalize_project(project)
        floor, used = self._floor(project)
        ids: List[str] = []
        number = floor
        while len(ids) < count:
            number += 1
            if number in used:
                continue
            ids.append(format_task_id(project, number))
        return ids
