"""Fakes and payload builders shared by the test suite."""

from timesync.models.domain.task_domain import Task
from timesync.services.ai.client import AIClientError
from timesync.services.time_entry.intervals_client import TimeTrackingError

USER = "user@example.com"


class FakeAIClient:
    """Scripted language model: returns (or raises) queued responses in order."""

    def __init__(self, responses=None, configured: bool = True):
        self.responses = list(responses or [])
        self.prompts: list[str] = []
        self.configured = configured

    async def complete(self, prompt: str, temperature=None, max_tokens=None) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise AIClientError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeIntervalsClient:
    """In-memory time-tracking account."""

    def __init__(self, tasks=None, person_id: str = "42"):
        self.tasks: list[Task] = list(tasks or [])
        self.person_id = person_id
        self.posted = []
        self.catalog_error: Exception | None = None
        self.post_error: Exception | None = None

    async def fetch_tasks(self):
        if self.catalog_error:
            raise self.catalog_error
        return list(self.tasks)

    async def get_task(self, task_id: str) -> Task:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise TimeTrackingError(f"Task {task_id} not found", error_code="task_not_found", status_code=404)

    async def get_me(self):
        return {"id": self.person_id, "firstname": "Test", "lastname": "User", "email": USER}

    async def post_time_entry(self, entry):
        if self.post_error:
            raise self.post_error
        created = entry.model_copy(update={"id": f"te-{len(self.posted) + 1}", "person_id": self.person_id})
        self.posted.append(created)
        return created, {"status": "Created", "time": {"id": created.id}}

    async def close(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


def make_task(
    task_id: str = "101",
    title: str = "Sprint Planning & Retro",
    project: str = "Internal",
    module: str = "Scrum",
    resolvable: bool = True,
) -> Task:
    return Task(
        id=task_id,
        title=title,
        project=project,
        project_id="11" if resolvable else None,
        module=module,
        module_id="22" if resolvable else None,
        status="Active",
    )


def make_raw_meeting(
    meeting_id: str = "m-1",
    subject: str = "Sprint Planning",
    start: str = "2024-01-15T10:00:00Z",
    end: str = "2024-01-15T11:00:00Z",
    attended: dict[str, int] | None = None,
) -> dict:
    """Flattened meeting payload with embedded attendance."""
    attended = {USER: 3000} if attended is None else attended
    return {
        "id": meeting_id,
        "subject": subject,
        "startTime": start,
        "endTime": end,
        "attendees": [{"emailAddress": {"address": email, "name": email.split("@")[0]}} for email in attended],
        "attendanceRecords": [
            {"email": email, "name": email.split("@")[0], "duration": seconds} for email, seconds in attended.items()
        ],
    }
