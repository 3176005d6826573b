import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Form, Request

from auth import get_session_user, require_login
from manager import DonationManager
from models import AuthenticatedUser, SessionUser
from routes.crud import add_crud_routes
from schemas import DonationForm, PublicDonationForm
from utils import db_errors, parse_page, redirect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/donations", tags=["Donations"])


def get_manager(request: Request) -> DonationManager:
    return request.app.state.donations


@router.get("", response_model=dict, summary="List donations")
def list_donations(page: str = "1", search: str = "", user: AuthenticatedUser = Depends(require_login),
                   manager: DonationManager = Depends(get_manager)):
    """
    Managers get every donation with donor details and the grand total.
    Participants get their own donations and the list of supporters
    (names and latest donation date only).
    """
    page = parse_page(page)
    search = search.strip()
    with db_errors("Error loading donations"):
        if user.is_manager:
            result = manager.list_page(page, search)
            return {"message": "Donations retrieved", "data": {
                **result.to_dict("donations"),
                "total_donations": manager.total_amount(),
                "is_manager": True,
            }}

        my_donations = manager.for_participant(user.participant_id) if user.participant_id else []
        supporters = manager.supporters(page, search)
        return {"message": "Supporters retrieved", "data": {
            **supporters.to_dict("supporters"),
            "my_donations": my_donations,
            "is_manager": False,
        }}


@router.post("/donate", summary="Public donation form")
def donate(form: Annotated[PublicDonationForm, Form()], user: SessionUser = Depends(get_session_user),
           manager: DonationManager = Depends(get_manager)):
    """Open to everyone. Logged-in participants are credited; anyone else donates anonymously."""
    participant_id = user.participant_id if isinstance(user, AuthenticatedUser) else None
    with db_errors("Error recording donation"):
        donation_id = manager.record(form.donation_amount, participant_id)
    logger.info(f"Donation {donation_id} of {form.donation_amount} received"
                f"{' from participant ' + str(participant_id) if participant_id else ' anonymously'}")
    return redirect("/?donated=1")


add_crud_routes(
    router,
    noun="donation",
    get_manager=get_manager,
    form_model=DonationForm,
    redirect_to="/donations",
    form_options=lambda request: {"participants": request.app.state.participants.options()},
    to_values=lambda form: {**form.model_dump(), "donation_date": form.donation_date or date.today()},
)
