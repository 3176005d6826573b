from fastapi import APIRouter, Depends, HTTPException, Request

from auth import require_login
from manager import ParticipantManager
from models import AuthenticatedUser
from routes.crud import add_crud_routes
from schemas import ParticipantForm
from utils import db_errors, parse_page

router = APIRouter(prefix="/participants", tags=["Participants"])


def get_manager(request: Request) -> ParticipantManager:
    return request.app.state.participants


@router.get("", response_model=dict, summary="List participants or show own profile")
def list_participants(page: str = "1", search: str = "", user: AuthenticatedUser = Depends(require_login),
                      manager: ParticipantManager = Depends(get_manager)):
    """Managers get the searchable participant list; everyone else their own profile."""
    with db_errors("Error loading participants"):
        if user.is_manager:
            result = manager.list_page(parse_page(page), search.strip())
            return {"message": "Participants retrieved", "data": {**result.to_dict("participants"), "is_manager": True}}

        participant = manager.get(user.participant_id) if user.participant_id else None
        if participant is None:
            raise HTTPException(status_code=404, detail="Participant profile not found")
        return {"message": "Profile retrieved", "data": {"participant": participant, "is_manager": False}}


add_crud_routes(
    router,
    noun="participant",
    get_manager=get_manager,
    form_model=ParticipantForm,
    redirect_to="/participants",
    # roles change only through /users; fields left off the form keep their stored values
    update_values=lambda form: form.model_dump(exclude_unset=True, exclude={"participant_role"}),
)
