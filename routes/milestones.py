from fastapi import APIRouter, Depends, Request

from auth import require_login
from manager import MilestoneManager
from models import AuthenticatedUser
from routes.crud import add_crud_routes
from schemas import MilestoneForm
from utils import db_errors, parse_page

router = APIRouter(prefix="/milestones", tags=["Milestones"])


def get_manager(request: Request) -> MilestoneManager:
    return request.app.state.milestones


@router.get("", response_model=dict, summary="List milestones")
def list_milestones(page: str = "1", search: str = "", user: AuthenticatedUser = Depends(require_login),
                    manager: MilestoneManager = Depends(get_manager)):
    """Managers search every milestone; participants see the ones they achieved."""
    with db_errors("Error loading milestones"):
        if user.is_manager:
            result = manager.list_page(parse_page(page), search.strip())
            return {"message": "Milestones retrieved", "data": {**result.to_dict("milestones"), "is_manager": True}}
        milestones = manager.for_participant(user.participant_id) if user.participant_id else []
        return {"message": "Milestones retrieved", "data": {"milestones": milestones, "is_manager": False}}


add_crud_routes(
    router,
    noun="milestone",
    get_manager=get_manager,
    form_model=MilestoneForm,
    redirect_to="/milestones",
    form_options=lambda request: {"participants": request.app.state.participants.options()},
)
