import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Request

from auth import hash_password, require_manager
from manager import UserManager
from models import AuthenticatedUser
from schemas import UserEditForm, UserForm
from utils import db_errors, parse_page, redirect

logger = logging.getLogger(__name__)

# every users route is manager-only
router = APIRouter(prefix="/users", tags=["Users"])


def get_manager(request: Request) -> UserManager:
    return request.app.state.users


@router.get("", response_model=dict, summary="List user accounts")
def list_users(page: str = "1", search: str = "", user: AuthenticatedUser = Depends(require_manager),
               manager: UserManager = Depends(get_manager)):
    with db_errors("Error loading users"):
        result = manager.list_page(parse_page(page), search.strip())
    return {"message": "Users retrieved", "data": result.to_dict("users")}


@router.get("/add", response_model=dict, summary="Add user form")
def add_user_form(request: Request, error: str = "", user: AuthenticatedUser = Depends(require_manager)):
    with db_errors("Error loading user form"):
        participants = request.app.state.participants.without_accounts()
    return {"message": "Add user", "data": {"participants": participants, "error": error or None}}


@router.post("/add", summary="Create a user account")
def add_user(form: Annotated[UserForm, Form()], user: AuthenticatedUser = Depends(require_manager),
             manager: UserManager = Depends(get_manager)):
    """Link the account to an existing participant, to a new one created alongside it, or to none."""
    with db_errors("Error adding user"):
        if manager.username_taken(form.username):
            return redirect("/users/add?error=username_taken")
        password_hash = hash_password(form.password)
        if form.wants_new_participant:
            if not (form.participant_first_name and form.participant_last_name and form.participant_email):
                raise HTTPException(
                    status_code=400,
                    detail="First name, last name, and email are required for new participants",
                )
            user_id, participant_id = manager.create_with_participant(
                form.participant_values(), form.username, password_hash
            )
            logger.info(f"User {user_id} and participant {participant_id} added by {user.username}")
        else:
            user_id = manager.create_user(form.username, password_hash, form.participant_id)
            logger.info(f"User {user_id} added by {user.username}")
    return redirect("/users")


@router.get("/edit/{user_id}", response_model=dict, summary="Edit user form")
def edit_user_form(user_id: int, request: Request, user: AuthenticatedUser = Depends(require_manager),
                   manager: UserManager = Depends(get_manager)):
    with db_errors("Error loading user"):
        account = manager.get(user_id)
        if not account:
            raise HTTPException(status_code=404, detail="User not found")
        participants = request.app.state.participants.options()
    return {"message": "Edit user", "data": {"user": account, "participants": participants}}


@router.post("/edit/{user_id}", summary="Update a user account")
def edit_user(user_id: int, form: Annotated[UserEditForm, Form()],
              user: AuthenticatedUser = Depends(require_manager), manager: UserManager = Depends(get_manager)):
    """A blank password keeps the current one."""
    with db_errors("Error updating user"):
        if manager.username_taken(form.username, exclude_id=user_id):
            return redirect(f"/users/edit/{user_id}?error=username_taken")
        password_hash = hash_password(form.password) if form.password else None
        if not manager.update_user(user_id, form.username, password_hash, form.participant_id, form.participant_role):
            raise HTTPException(status_code=404, detail="User not found")
    logger.info(f"User {user_id} updated by {user.username}")
    return redirect("/users")


@router.post("/delete/{user_id}", summary="Delete a user account")
def delete_user(user_id: int, user: AuthenticatedUser = Depends(require_manager),
                manager: UserManager = Depends(get_manager)):
    if user_id == user.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    with db_errors("Error deleting user"):
        manager.delete(user_id)
    logger.info(f"User {user_id} deleted by {user.username}")
    return redirect("/users")
