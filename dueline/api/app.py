"""FastAPI web application for dueline."""

import logging
import os
from datetime import date, datetime, timedelta
from typing import List, Optional, Dict
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from dueline.database.database import get_db, init_db
from dueline.database.ledger_repository import CompletionRepository, ExceptionRepository
from dueline.database.repository import TaskRepository
from dueline.engine.deletion import DeletionChoice
from dueline.engine.ports import CalendarProvider
from dueline.engine.reminders import Reminder
from dueline.engine.service import OccurrenceService, OperationResult
from dueline.errors import PersistenceError, TaskValidationError
from dueline.integrations.google_calendar import GoogleCalendarClient
from dueline.models.occurrence import CalendarItem, CalendarView
from dueline.models.task import NotifySettings, Recurrence, Task, TaskUpdate, Urgency
from dueline.models.task_factory import create_task_base

logger = logging.getLogger(__name__)

# Longest range a single calendar request may cover
MAX_RANGE_DAYS = 366

# Initialize FastAPI app
app = FastAPI(
    title="dueline API",
    description="Recurring task occurrences, completions and exceptions in one calendar",
    version="0.1.0"
)


@app.on_event("startup")
def _startup():
    init_db()


# Request / response models
class TaskCreateRequest(BaseModel):
    """Request body for creating a task."""
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    anchor_date: Optional[date] = None
    anchor_time: Optional[str] = None
    recurrence: Recurrence = Recurrence.NONE
    urgency: Urgency = Urgency.NORMAL
    notify_settings: NotifySettings = Field(default_factory=NotifySettings)
    shared_with: List[str] = Field(default_factory=list)


class TaskResponse(BaseModel):
    task: Task


class TaskListResponse(BaseModel):
    tasks: List[Task]
    count: int


class ToggleRequest(BaseModel):
    completed: bool


class DayResponse(BaseModel):
    date: date
    view: CalendarView
    items: List[CalendarItem]


class RangeResponse(BaseModel):
    start: date
    end: date
    view: CalendarView
    days: Dict[date, List[CalendarItem]]


class CountResponse(BaseModel):
    date: date
    count: int


class HistoryResponse(BaseModel):
    items: List[CalendarItem]


class RemindersResponse(BaseModel):
    reminders: List[Reminder]


def get_calendar_provider() -> Optional[CalendarProvider]:
    """External calendar, enabled with GOOGLE_CALENDAR_ENABLED=true."""
    if os.getenv("GOOGLE_CALENDAR_ENABLED", "False").lower() != "true":
        return None
    try:
        return GoogleCalendarClient()
    except Exception as e:
        logger.warning(f"Google Calendar disabled: {type(e).__name__}: {str(e)}")
        return None


async def get_service(
    db: Session = Depends(get_db),
    calendar_provider: Optional[CalendarProvider] = Depends(get_calendar_provider),
) -> OccurrenceService:
    """Request-scoped occurrence service loaded from the database."""
    service = OccurrenceService(
        TaskRepository(db),
        CompletionRepository(db),
        ExceptionRepository(db),
        calendar_provider=calendar_provider,
    )
    await service.load()
    return service


def _raise_on_failure(result: OperationResult) -> OperationResult:
    if not result.ok:
        raise HTTPException(status_code=503, detail=result.error or "Persistence failed; change was rolled back")
    return result


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/tasks", response_model=TaskListResponse)
async def list_tasks(service: OccurrenceService = Depends(get_service)):
    tasks = service.tasks.all()
    return TaskListResponse(tasks=tasks, count=len(tasks))


@app.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(body: TaskCreateRequest, service: OccurrenceService = Depends(get_service)):
    try:
        task = create_task_base(
            title=body.title,
            description=body.description,
            anchor_date=body.anchor_date,
            anchor_time=body.anchor_time,
            recurrence=body.recurrence,
            urgency=body.urgency,
            notify_settings=body.notify_settings,
            shared_with=body.shared_with,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if task.is_recurring and task.anchor_date is None:
        raise HTTPException(status_code=400, detail="Recurring tasks need an anchor_date")
    try:
        saved = await service.add_task(task)
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Failed to create task: {str(e)}")
    return TaskResponse(task=saved)


@app.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, service: OccurrenceService = Depends(get_service)):
    task = service.tasks.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return TaskResponse(task=task)


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(task_id: str, body: TaskUpdate, service: OccurrenceService = Depends(get_service)):
    try:
        task = await service.update_task(task_id, body)
    except TaskValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=f"Failed to update task: {str(e)}")
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return TaskResponse(task=task)


@app.delete("/tasks/{task_id}", response_model=OperationResult)
async def delete_task(
    task_id: str,
    scope: Optional[DeletionChoice] = Query(None, description="Required for recurring tasks"),
    day: Optional[date] = Query(None, alias="date", description="Occurrence date when scope=occurrence"),
    service: OccurrenceService = Depends(get_service),
):
    try:
        result = await service.delete_task(task_id, scope, day)
    except TaskValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _raise_on_failure(result)


@app.get("/occurrences", response_model=DayResponse)
async def occurrences_for_date(
    day: date = Query(..., alias="date"),
    view: CalendarView = CalendarView.ACTIVE,
    service: OccurrenceService = Depends(get_service),
):
    return DayResponse(date=day, view=view, items=service.get_occurrences_for_date(day, view))


@app.get("/calendar", response_model=RangeResponse)
async def occurrences_for_range(
    start: date,
    end: date,
    view: CalendarView = CalendarView.ACTIVE,
    service: OccurrenceService = Depends(get_service),
):
    if end < start:
        raise HTTPException(status_code=400, detail="end must be on or after start")
    if (end - start) > timedelta(days=MAX_RANGE_DAYS):
        raise HTTPException(status_code=400, detail=f"Range may span at most {MAX_RANGE_DAYS} days")
    return RangeResponse(start=start, end=end, view=view, days=service.get_occurrences_for_range(start, end, view))


@app.post("/occurrences/{task_id}/{day}/toggle", response_model=OperationResult)
async def toggle_occurrence(
    task_id: str,
    day: date,
    body: ToggleRequest,
    service: OccurrenceService = Depends(get_service),
):
    return _raise_on_failure(await service.toggle_completion(task_id, day, body.completed))


@app.post("/occurrences/{task_id}/{day}/exclude", response_model=OperationResult)
async def exclude_occurrence(task_id: str, day: date, service: OccurrenceService = Depends(get_service)):
    return _raise_on_failure(await service.exclude_occurrence(task_id, day))


@app.get("/due-count", response_model=CountResponse)
async def due_count(day: date = Query(..., alias="date"), service: OccurrenceService = Depends(get_service)):
    return CountResponse(date=day, count=service.count_due_on(day))


@app.get("/history", response_model=HistoryResponse)
async def history(task_id: Optional[str] = None, service: OccurrenceService = Depends(get_service)):
    return HistoryResponse(items=service.history(task_id))


@app.get("/reminders/due", response_model=RemindersResponse)
async def due_reminders(
    now: Optional[datetime] = None,
    sent: List[str] = Query([], description="Reminder keys already delivered"),
    service: OccurrenceService = Depends(get_service),
):
    return RemindersResponse(reminders=service.due_reminders(now or datetime.now(), set(sent)))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
