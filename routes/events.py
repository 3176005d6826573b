import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import JSONResponse

from auth import require_login, require_manager
from manager import EventManager, TemplateManager
from models import AuthenticatedUser
from routes.crud import add_crud_routes
from schemas import EventTemplateForm, OccurrenceForm
from utils import db_errors, optional_int, parse_page, redirect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


def get_manager(request: Request) -> EventManager:
    return request.app.state.events


def get_templates(request: Request) -> TemplateManager:
    return request.app.state.templates


def participant_id_of(user: AuthenticatedUser) -> int:
    if not user.participant_id:
        raise HTTPException(status_code=400, detail="Your account is not linked to a participant")
    return user.participant_id


@router.get("", response_model=dict, summary="List events")
def list_events(filter: str = "future", page: str = "1", type: str = "", name: str = "", year: str = "",
                month: str = "", registered: str = "", user: AuthenticatedUser = Depends(require_login),
                manager: EventManager = Depends(get_manager)):
    """Managers see every occurrence with filters; participants see what they registered for."""
    when = "past" if filter == "past" else "future"
    page = parse_page(page)
    with db_errors("Error loading events"):
        if user.is_manager:
            template_id, filter_year, filter_month = optional_int(name), optional_int(year), optional_int(month)
            result = manager.list_occurrences(page, when, type or None, template_id, filter_year, filter_month)
            return {"message": "Events retrieved", "data": {
                **result.to_dict("events"),
                **manager.filter_options(type or None),
                "is_manager": True,
                "filter": when,
                "event_type": type,
                "event_name": name,
                "filter_year": year,
                "filter_month": month,
            }}

        result = manager.registrations_for(participant_id_of(user), page, when)
        return {"message": "Registered events retrieved", "data": {
            **result.to_dict("events"),
            "is_manager": False,
            "filter": when,
            "registered": registered or None,
        }}


@router.get("/browse", response_model=dict, summary="Browse future events open for registration")
def browse_events(page: str = "1", type: str = "", name: str = "", year: str = "", month: str = "",
                  error: str = "", user: AuthenticatedUser = Depends(require_login),
                  manager: EventManager = Depends(get_manager)):
    """Future occurrences the participant has not registered for yet."""
    with db_errors("Error loading events"):
        result = manager.list_occurrences(
            parse_page(page), "future", type or None, optional_int(name), optional_int(year), optional_int(month),
            exclude_participant_id=user.participant_id,
        )
        return {"message": "Events retrieved", "data": {
            **result.to_dict("events"),
            **manager.filter_options(type or None, future_only=True),
            "is_manager": user.is_manager,
            "event_type": type,
            "event_name": name,
            "filter_year": year,
            "filter_month": month,
            "error": error or None,
        }}


@router.post("/register/{occurrence_id}", summary="Register for an event")
def register_for_event(occurrence_id: int, user: AuthenticatedUser = Depends(require_login),
                       manager: EventManager = Depends(get_manager)):
    participant_id = participant_id_of(user)
    with db_errors("Error registering"):
        if manager.get(occurrence_id) is None:
            raise HTTPException(status_code=404, detail="Event not found")
        registration_id = manager.register(participant_id, occurrence_id)
    if registration_id is None:
        logger.info(f"Participant {participant_id} already registered for occurrence {occurrence_id}")
        return redirect("/events/browse?error=already_registered")
    logger.info(f"Participant {participant_id} registered for occurrence {occurrence_id}")
    return redirect("/events?registered=success")


@router.post("/unregister/{registration_id}", summary="Cancel a registration")
def unregister_from_event(registration_id: int, user: AuthenticatedUser = Depends(require_login),
                          manager: EventManager = Depends(get_manager)):
    participant_id = participant_id_of(user)
    with db_errors("Error unregistering"):
        if manager.unregister(registration_id, participant_id):
            logger.info(f"Registration {registration_id} removed by participant {participant_id}")
    return redirect("/events")


@router.get("/teapot", summary="Easter egg", status_code=418)
def teapot():
    """Public. Always 418."""
    return JSONResponse(status_code=418, content={"message": "I'm a teapot", "data": {}})


@router.get("/templates", response_model=dict, summary="List event templates")
def list_templates(page: str = "1", search: str = "", user: AuthenticatedUser = Depends(require_manager),
                   templates: TemplateManager = Depends(get_templates)):
    with db_errors("Error loading event templates"):
        result = templates.list_page(parse_page(page), search.strip())
        return {"message": "Event templates retrieved", "data": result.to_dict("templates")}


@router.post("/templates/add", summary="Create an event template")
def add_template(form: Annotated[EventTemplateForm, Form()], user: AuthenticatedUser = Depends(require_manager),
                 templates: TemplateManager = Depends(get_templates)):
    with db_errors("Error adding event template"):
        template_id = templates.create(form.model_dump())
    logger.info(f"Event template {template_id} added by {user.username}")
    return redirect("/events/templates")


add_crud_routes(
    router,
    noun="event",
    get_manager=get_manager,
    form_model=OccurrenceForm,
    redirect_to="/events",
    form_options=lambda request: {"templates": request.app.state.templates.all()},
)
