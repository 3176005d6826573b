import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Request

from auth import require_login, require_manager
from manager import SurveyManager
from models import AuthenticatedUser, SurveyFilters
from schemas import SurveyForm
from utils import db_errors, optional_int, parse_page, redirect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/surveys", tags=["Surveys"])


def get_manager(request: Request) -> SurveyManager:
    return request.app.state.surveys


@router.get("", response_model=dict, summary="Survey dashboard")
def list_surveys(request: Request, page: str = "1", search: str = "", type: str = "", name: str = "",
                 year: str = "", month: str = "", error: str = "", submitted: str = "",
                 user: AuthenticatedUser = Depends(require_login), manager: SurveyManager = Depends(get_manager)):
    """
    Managers get the filtered responses, aggregate scores for the same filters,
    the unfiltered response total and the cascading filter options.
    Participants get the surveys they still owe and the ones they completed.
    """
    with db_errors("Error loading surveys"):
        if user.is_manager:
            filters = SurveyFilters(
                event_type=type or None,
                template_id=optional_int(name),
                year=optional_int(year),
                month=optional_int(month),
            )
            result = manager.list_filtered(filters, parse_page(page), search.strip())
            stats, grand_total = manager.stats(filters)
            return {"message": "Surveys retrieved", "data": {
                **result.to_dict("surveys"),
                **request.app.state.events.filter_options(filters.event_type),
                "stats": asdict(stats),
                "grand_total": grand_total,
                "is_manager": True,
                "event_type": type,
                "event_name": name,
                "filter_year": year,
                "filter_month": month,
            }}

        if not user.participant_id:
            return {"message": "Surveys retrieved", "data": {
                "pending_surveys": [], "completed_surveys": [], "is_manager": False,
            }}
        return {"message": "Surveys retrieved", "data": {
            "pending_surveys": manager.pending_for(user.participant_id),
            "completed_surveys": manager.completed_for(user.participant_id),
            "is_manager": False,
            "error": error or None,
            "submitted": submitted or None,
        }}


@router.post("/submit/{registration_id}", summary="Submit a post-event survey")
def submit_survey(registration_id: int, form: Annotated[SurveyForm, Form()],
                  user: AuthenticatedUser = Depends(require_login), manager: SurveyManager = Depends(get_manager)):
    """Only the participant's own registrations for events that already started, once each."""
    with db_errors("Error submitting survey"):
        pending = manager.pending_registration(registration_id, user.participant_id) if user.participant_id else None
        if pending is None:
            logger.info(f"User {user.username} tried to submit unavailable survey for registration {registration_id}")
            return redirect("/surveys?error=survey_unavailable")
        survey_id = manager.submit(registration_id, form)
    logger.info(f"Survey {survey_id} submitted for registration {registration_id}")
    return redirect("/surveys?submitted=1")


@router.get("/view/{survey_id}", response_model=dict, summary="View one survey response")
def view_survey(survey_id: int, user: AuthenticatedUser = Depends(require_manager),
                manager: SurveyManager = Depends(get_manager)):
    with db_errors("Error loading survey"):
        survey = manager.view(survey_id)
    if not survey:
        raise HTTPException(status_code=404, detail="Survey not found")
    return {"message": "Survey retrieved", "data": {"survey": survey}}


@router.get("/edit/{survey_id}", response_model=dict, summary="Edit survey form")
def edit_survey_form(survey_id: int, user: AuthenticatedUser = Depends(require_manager),
                     manager: SurveyManager = Depends(get_manager)):
    return view_survey(survey_id, user, manager)


@router.post("/edit/{survey_id}", summary="Update a survey response")
def edit_survey(survey_id: int, form: Annotated[SurveyForm, Form()],
                user: AuthenticatedUser = Depends(require_manager), manager: SurveyManager = Depends(get_manager)):
    """Rescore a response; the overall score and NPS rule are derived again."""
    with db_errors("Error updating survey"):
        if not manager.update(survey_id, manager.score_values(form)):
            raise HTTPException(status_code=404, detail="Survey not found")
    logger.info(f"Survey {survey_id} updated by {user.username}")
    return redirect("/surveys")


@router.post("/delete/{survey_id}", summary="Delete a survey response")
def delete_survey(survey_id: int, user: AuthenticatedUser = Depends(require_manager),
                  manager: SurveyManager = Depends(get_manager)):
    with db_errors("Error deleting survey"):
        manager.delete(survey_id)
    logger.info(f"Survey {survey_id} deleted by {user.username}")
    return redirect("/surveys")
