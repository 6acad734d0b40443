from functools import lru_cache
import logging
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from gradeseer.config.settings import configure_logging, settings
from gradeseer.core.context import assemble_subject_context
from gradeseer.core.gpa import CourseResult, calc_gwa
from gradeseer.core.grades import SCALE_B, evaluate_subject
from gradeseer.core.models import Subject
from gradeseer.services.advisor_service import AdvisorService
from gradeseer.services.email_service import EmailService, deliver_notification_email
from gradeseer.services.gemini_service import GeminiAuthError
from gradeseer.services.storage import NotFoundError, Storage, StorageError


configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="GradeSeer API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def get_storage() -> Storage:
    return Storage.from_settings()


@lru_cache
def get_advisor() -> AdvisorService:
    return AdvisorService.from_settings()


@lru_cache
def get_email_service() -> EmailService:
    return EmailService.from_settings()


class ComponentPayload(BaseModel):
    name: str = Field(min_length=1)
    percentage: float = Field(ge=0, le=100)
    priority: int


class SubjectPayload(BaseModel):
    name: str = Field(min_length=1)
    is_major: bool = False
    target_grade: Optional[float] = Field(default=None, ge=0)
    color: Optional[str] = None
    units: int = Field(default=3, ge=1)
    components: List[ComponentPayload] = Field(default_factory=list)


class SubjectUpdatePayload(BaseModel):
    name: Optional[str] = None
    is_major: Optional[bool] = None
    target_grade: Optional[float] = Field(default=None, ge=0)
    color: Optional[str] = None
    units: Optional[int] = Field(default=None, ge=1)


class ComponentUpdatePayload(BaseModel):
    name: Optional[str] = None
    percentage: Optional[float] = Field(default=None, ge=0, le=100)


class ItemPayload(BaseModel):
    component_id: str
    name: str = Field(min_length=1)
    score: Optional[float] = Field(default=None, ge=0)
    max: Optional[float] = Field(default=None, gt=0)
    date: Optional[str] = None
    target: Optional[float] = None
    topic: Optional[str] = None


class ItemUpdatePayload(BaseModel):
    name: Optional[str] = None
    score: Optional[float] = Field(default=None, ge=0)
    max: Optional[float] = Field(default=None, gt=0)
    date: Optional[str] = None
    target: Optional[float] = None
    topic: Optional[str] = None


class NotificationPayload(BaseModel):
    type: str = Field(min_length=1)
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    due_date: Optional[str] = None


class NotificationReadPayload(BaseModel):
    read: bool


class ChatPayload(BaseModel):
    message: Optional[str] = None


def _required_email(x_user_email: Optional[str]) -> str:
    email = (x_user_email or "").strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing x-user-email header")
    return email


def _storage_error(exc: StorageError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _auth_error(exc: GeminiAuthError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/subjects")
def list_subjects(
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> List[Dict]:
    email = _required_email(x_user_email)
    return storage.list_subjects(email)


@app.post("/subjects", status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectPayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        return storage.create_subject(email, **payload.model_dump())
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.get("/subjects/{subject_id}")
def get_subject(
    subject_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        return storage.get_subject(subject_id, email)
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.patch("/subjects/{subject_id}")
def update_subject(
    subject_id: str,
    payload: SubjectUpdatePayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        return storage.update_subject(subject_id, email, payload.model_dump(exclude_unset=True))
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.delete("/subjects/{subject_id}")
def delete_subject(
    subject_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict[str, str]:
    email = _required_email(x_user_email)
    try:
        storage.delete_subject(subject_id, email)
        return {"status": "deleted"}
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.get("/subjects/{subject_id}/context")
def subject_context(
    subject_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        tree = storage.get_subject(subject_id, email)
    except StorageError as exc:
        raise _storage_error(exc) from exc
    return assemble_subject_context(Subject.from_dict(tree))


@app.post("/subjects/{subject_id}/components", status_code=status.HTTP_201_CREATED)
def add_component(
    subject_id: str,
    payload: ComponentPayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        return storage.add_component(subject_id, email, **payload.model_dump())
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.post("/subjects/{subject_id}/finish")
def finish_subject(
    subject_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        record = storage.finish_subject(subject_id, email)
    except StorageError as exc:
        raise _storage_error(exc) from exc
    logger.info("Subject %s finished with %s (%s)", subject_id, record["final_grade"], record["status"])
    return {
        "success": True,
        "final_grade": record["final_grade"],
        "status": record["status"],
        "history_record": record,
    }


@app.patch("/components/{component_id}")
def update_component(
    component_id: str,
    payload: ComponentUpdatePayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        return storage.update_component(component_id, email, **payload.model_dump())
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.delete("/components/{component_id}")
def delete_component(
    component_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict[str, str]:
    email = _required_email(x_user_email)
    try:
        storage.delete_component(component_id, email)
        return {"status": "deleted"}
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.post("/items", status_code=status.HTTP_201_CREATED)
def create_item(
    payload: ItemPayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    values = payload.model_dump(exclude={"component_id"})
    try:
        return storage.create_item(payload.component_id, email, values)
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.get("/items/upcoming")
def list_upcoming_items(
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> List[Dict]:
    email = _required_email(x_user_email)
    return storage.list_upcoming_items(email)


@app.patch("/items/{item_id}")
def update_item(
    item_id: str,
    payload: ItemUpdatePayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        return storage.update_item(item_id, email, payload.model_dump(exclude_unset=True))
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.delete("/items/{item_id}")
def delete_item(
    item_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict[str, str]:
    email = _required_email(x_user_email)
    try:
        storage.delete_item(item_id, email)
        return {"status": "deleted"}
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.get("/dashboard")
def dashboard(
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict[str, Any]:
    email = _required_email(x_user_email)
    cards = []
    courses = []
    for row in storage.list_subjects(email):
        subject = Subject.from_dict(row)
        percentage, grade_point, completion = evaluate_subject(subject, SCALE_B)
        courses.append(CourseResult(units=subject.units, grade_point=grade_point))
        cards.append(
            {
                "id": subject.id,
                "name": subject.name,
                "color": subject.color,
                "units": subject.units,
                "target_grade": subject.target_grade if subject.has_target else None,
                "percentage": percentage,
                "grade_point": grade_point,
                "completion": completion,
            }
        )
    summary = calc_gwa(courses)
    return {
        "subjects": cards,
        "gwa": summary.gwa,
        "total_weighted": summary.total_weighted,
        "total_units": summary.total_units,
    }


@app.get("/history")
def list_history(
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> List[Dict]:
    email = _required_email(x_user_email)
    return storage.list_history(email)


@app.delete("/history/{history_id}")
def delete_history(
    history_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict[str, str]:
    email = _required_email(x_user_email)
    try:
        storage.delete_history(history_id, email)
        return {"status": "deleted"}
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.get("/notifications")
def list_notifications(
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> List[Dict]:
    email = _required_email(x_user_email)
    return storage.list_notifications(email)


@app.post("/notifications")
def create_notification(
    payload: NotificationPayload,
    background_tasks: BackgroundTasks,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
    email_service: EmailService = Depends(get_email_service),
) -> Dict:
    email = _required_email(x_user_email)
    notification, created = storage.create_notification(email, **payload.model_dump())
    if created:
        background_tasks.add_task(deliver_notification_email, email_service, notification)
    return {"notification": notification, "created": created}


@app.post("/notifications/mark-all-read")
def mark_all_notifications_read(
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict[str, int]:
    email = _required_email(x_user_email)
    return {"updated": storage.mark_all_notifications_read(email)}


@app.patch("/notifications/{notification_id}")
def set_notification_read(
    notification_id: str,
    payload: NotificationReadPayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        return storage.set_notification_read(notification_id, email, payload.read)
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.delete("/notifications/{notification_id}")
def delete_notification(
    notification_id: str,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
) -> Dict[str, str]:
    email = _required_email(x_user_email)
    try:
        storage.delete_notification(notification_id, email)
        return {"status": "deleted"}
    except StorageError as exc:
        raise _storage_error(exc) from exc


@app.post("/ai/subject/{subject_id}/chat")
def subject_chat(
    subject_id: str,
    payload: ChatPayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
    advisor: AdvisorService = Depends(get_advisor),
) -> Dict:
    email = _required_email(x_user_email)
    try:
        subject = Subject.from_dict(storage.get_subject(subject_id, email))
    except StorageError as exc:
        raise _storage_error(exc) from exc
    try:
        return advisor.subject_chat(subject, payload.message).to_dict()
    except GeminiAuthError as exc:
        raise _auth_error(exc) from exc


@app.post("/ai/dashboard/chat")
def dashboard_chat(
    payload: ChatPayload,
    x_user_email: Optional[str] = Header(default=None),
    storage: Storage = Depends(get_storage),
    advisor: AdvisorService = Depends(get_advisor),
) -> Dict:
    email = _required_email(x_user_email)
    subjects = [Subject.from_dict(row) for row in storage.list_subjects(email)]
    try:
        return advisor.dashboard_chat(subjects, payload.message).to_dict()
    except GeminiAuthError as exc:
        raise _auth_error(exc) from exc


@app.post("/ai/app/chat")
def app_chat(payload: ChatPayload, advisor: AdvisorService = Depends(get_advisor)) -> Dict:
    try:
        return advisor.app_chat(payload.message).to_dict()
    except GeminiAuthError as exc:
        raise _auth_error(exc) from exc


def main() -> None:
    import uvicorn

    uvicorn.run("gradeseer.app:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
